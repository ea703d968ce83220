"""FAISS inner-product index with string id mapping and persistence."""

from __future__ import annotations

import json
import os
from pathlib import Path

import faiss
import numpy as np

from adaptive_rag.observability.logger import get_logger

logger = get_logger("faiss_store")


class FAISSStore:
    def __init__(self, dimensions: int, index_path: str | None = None) -> None:
        self._dimensions = dimensions
        self._index_path = index_path
        self._index = faiss.IndexIDMap(faiss.IndexFlatIP(dimensions))
        self._int_to_doc_id: dict[int, str] = {}
        self._doc_id_to_int: dict[str, int] = {}
        self._next_id = 0

        if index_path:
            self._try_load(index_path)

    def _try_load(self, path: str) -> None:
        index_file = os.path.join(path, "index.faiss")
        mapping_file = os.path.join(path, "id_mapping.json")
        if os.path.exists(index_file) and os.path.exists(mapping_file):
            self._index = faiss.read_index(index_file)
            with open(mapping_file) as f:
                data = json.load(f)
            self._int_to_doc_id = {int(k): v for k, v in data["int_to_doc_id"].items()}
            self._doc_id_to_int = data["doc_id_to_int"]
            self._next_id = data["next_id"]
            logger.info("faiss_loaded", size=self._index.ntotal, path=path)

    def add(self, doc_ids: list[str], embeddings: np.ndarray) -> None:
        if not doc_ids:
            return
        embeddings = np.ascontiguousarray(embeddings, dtype=np.float32)
        faiss.normalize_L2(embeddings)
        int_ids = []
        for doc_id in doc_ids:
            if doc_id not in self._doc_id_to_int:
                self._doc_id_to_int[doc_id] = self._next_id
                self._int_to_doc_id[self._next_id] = doc_id
                self._next_id += 1
            int_ids.append(self._doc_id_to_int[doc_id])
        self._index.add_with_ids(embeddings, np.array(int_ids, dtype=np.int64))
        logger.info("faiss_added", count=len(doc_ids), total=self._index.ntotal)

    def search(self, vector: np.ndarray, top_k: int) -> list[tuple[str, float]]:
        if self._index.ntotal == 0:
            return []
        vector = np.ascontiguousarray(vector, dtype=np.float32).reshape(1, -1)
        faiss.normalize_L2(vector)
        scores, indices = self._index.search(vector, min(top_k, self._index.ntotal))
        results = []
        for idx, score in zip(indices[0], scores[0]):
            doc_id = self._int_to_doc_id.get(int(idx))
            if doc_id:
                results.append((doc_id, float(score)))
        return results

    def save(self, path: str | None = None) -> None:
        path = path or self._index_path
        if not path:
            return
        Path(path).mkdir(parents=True, exist_ok=True)
        faiss.write_index(self._index, os.path.join(path, "index.faiss"))
        with open(os.path.join(path, "id_mapping.json"), "w") as f:
            json.dump(
                {
                    "int_to_doc_id": self._int_to_doc_id,
                    "doc_id_to_int": self._doc_id_to_int,
                    "next_id": self._next_id,
                },
                f,
            )
        logger.info("faiss_saved", path=path, size=self._index.ntotal)

    @property
    def size(self) -> int:
        return self._index.ntotal
