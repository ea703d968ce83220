"""Local VectorIndex backed by FAISS, BM25 and a JSONL document table.

The corpus is produced out of band (see ``scripts/build_index.py``): one JSON
object per line with ``id``, ``content`` and optional ``metadata``.
"""

from __future__ import annotations

import asyncio
import json
import os

import numpy as np

from adaptive_rag.index.bm25_index import BM25Index
from adaptive_rag.index.faiss_store import FAISSStore
from adaptive_rag.models.domain import RetrievedDocument
from adaptive_rag.observability.logger import get_logger

logger = get_logger("local_index")


def load_documents(path: str) -> dict[str, dict]:
    documents: dict[str, dict] = {}
    if not os.path.exists(path):
        return documents
    with open(path, encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            record = json.loads(line)
            documents[record["id"]] = {
                "content": record["content"],
                "metadata": record.get("metadata", {}),
            }
    return documents


class LocalVectorIndex:
    def __init__(
        self,
        faiss_store: FAISSStore,
        bm25_index: BM25Index,
        documents: dict[str, dict],
    ) -> None:
        self._faiss = faiss_store
        self._bm25 = bm25_index
        self._documents = documents

    @property
    def supports_sparse(self) -> bool:
        return self._bm25.size > 0

    @property
    def size(self) -> int:
        return self._faiss.size

    @property
    def bm25_size(self) -> int:
        return self._bm25.size

    def _to_documents(
        self, hits: list[tuple[str, float]], source: str
    ) -> list[RetrievedDocument]:
        results = []
        for doc_id, score in hits:
            record = self._documents.get(doc_id)
            if record is None:
                continue
            results.append(
                RetrievedDocument(
                    id=doc_id,
                    content=record["content"],
                    metadata=record["metadata"],
                    score=score,
                    source=source,
                )
            )
        return results

    async def dense_search(
        self, vector: list[float], top_k: int, collection: str | None = None
    ) -> list[RetrievedDocument]:
        query = np.array(vector, dtype=np.float32)
        hits = await asyncio.to_thread(self._faiss.search, query, top_k)
        return self._to_documents(hits, "dense")

    async def sparse_search(
        self, query: str, top_k: int, collection: str | None = None
    ) -> list[RetrievedDocument]:
        hits = await asyncio.to_thread(self._bm25.search, query, top_k)
        return self._to_documents(hits, "sparse")
