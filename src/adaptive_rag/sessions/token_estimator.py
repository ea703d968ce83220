"""Token estimators for context-window accounting."""

from __future__ import annotations

import math
import re

import tiktoken

from adaptive_rag.config.settings import Settings
from adaptive_rag.exceptions import ConfigurationError
from adaptive_rag.protocols.token_estimator import TokenEstimator

_CJK = re.compile(r"[一-鿿]")


class TiktokenEstimator:
    def __init__(self, encoding: str = "cl100k_base") -> None:
        self._encoding = tiktoken.get_encoding(encoding)

    def count(self, text: str) -> int:
        return len(self._encoding.encode(text or ""))


class HeuristicEstimator:
    """CJK characters cost ~1/1.5 token each, everything else ~1/4."""

    def count(self, text: str) -> int:
        if not text:
            return 0
        cjk = len(_CJK.findall(text))
        other = len(text) - cjk
        return math.ceil(cjk / 1.5 + other / 4)


def create_estimator(settings: Settings) -> TokenEstimator:
    if settings.token_estimator == "tiktoken":
        return TiktokenEstimator(settings.tiktoken_encoding)
    if settings.token_estimator == "heuristic":
        return HeuristicEstimator()
    raise ConfigurationError(f"Unknown token estimator: {settings.token_estimator}")
