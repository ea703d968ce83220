"""Protocol for token estimators used by the context window."""

from __future__ import annotations

from typing import Protocol


class TokenEstimator(Protocol):
    def count(self, text: str) -> int: ...
