"""BM25 keyword search index using rank_bm25."""

from __future__ import annotations

import asyncio
import os
import pickle
from pathlib import Path

import numpy as np
from rank_bm25 import BM25Okapi

from adaptive_rag.index.tokenizer import tokenize
from adaptive_rag.observability.logger import get_logger

logger = get_logger("bm25_index")


class BM25Index:
    def __init__(self, index_path: str | None = None) -> None:
        self._bm25: BM25Okapi | None = None
        self._doc_ids: list[str] = []
        self._index_path = index_path
        self._write_lock = asyncio.Lock()

        if index_path:
            self._try_load(index_path)

    def _try_load(self, path: str) -> None:
        index_file = os.path.join(path, "bm25.pkl")
        if os.path.exists(index_file):
            with open(index_file, "rb") as f:
                data = pickle.load(f)
            self._bm25 = data["bm25"]
            self._doc_ids = data["doc_ids"]
            logger.info("bm25_loaded", size=len(self._doc_ids), path=path)

    def build(self, documents: list[tuple[str, str]]) -> None:
        """Build the index from (doc_id, text) pairs. Replaces the existing index."""
        self._doc_ids = [doc_id for doc_id, _ in documents]
        corpus = [tokenize(text) for _, text in documents]
        self._bm25 = BM25Okapi(corpus) if corpus else None
        logger.info("bm25_built", size=len(self._doc_ids))

    async def rebuild(self, documents: list[tuple[str, str]]) -> None:
        async with self._write_lock:
            await asyncio.to_thread(self.build, documents)

    def search(self, query: str, top_k: int = 50) -> list[tuple[str, float]]:
        """Returns (doc_id, score) pairs with positive scores, best first."""
        if self._bm25 is None or not self._doc_ids:
            return []
        tokenized_query = tokenize(query)
        if not tokenized_query:
            return []
        scores = self._bm25.get_scores(tokenized_query)
        top_indices = np.argsort(scores, kind="stable")[::-1][:top_k]
        return [
            (self._doc_ids[i], float(scores[i]))
            for i in top_indices
            if scores[i] > 0
        ]

    def save(self, path: str | None = None) -> None:
        path = path or self._index_path
        if not path:
            return
        Path(path).mkdir(parents=True, exist_ok=True)
        with open(os.path.join(path, "bm25.pkl"), "wb") as f:
            pickle.dump({"bm25": self._bm25, "doc_ids": self._doc_ids}, f)
        logger.info("bm25_saved", path=path, size=len(self._doc_ids))

    @property
    def size(self) -> int:
        return len(self._doc_ids)
