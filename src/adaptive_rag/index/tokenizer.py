"""Text preprocessing for BM25 keyword search."""

from __future__ import annotations

import re

from adaptive_rag.config.constants import STOPWORDS

_CJK_RUN = re.compile(r"[一-鿿]+")
_NON_WORD = re.compile(r"[^\w\s]")


def _cjk_bigrams(run: str) -> list[str]:
    if len(run) == 1:
        return [run]
    return [run[i : i + 2] for i in range(len(run) - 1)]


def tokenize(text: str) -> list[str]:
    """Tokenize text for BM25.

    Latin text is lowercased, stripped of punctuation and stopwords. Runs of
    CJK characters have no whitespace boundaries, so they are split into
    overlapping character bigrams instead.
    """
    text = text.lower()
    tokens: list[str] = []
    for run in _CJK_RUN.findall(text):
        tokens.extend(t for t in _cjk_bigrams(run) if t not in STOPWORDS)
    latin = _CJK_RUN.sub(" ", text)
    latin = _NON_WORD.sub(" ", latin)
    tokens.extend(t for t in latin.split() if t not in STOPWORDS and len(t) > 1)
    return tokens


def extract_keywords(text: str, limit: int = 8) -> list[str]:
    """Distinct tokens in first-seen order."""
    seen: dict[str, None] = {}
    for token in tokenize(text):
        seen.setdefault(token, None)
    return list(seen)[:limit]
