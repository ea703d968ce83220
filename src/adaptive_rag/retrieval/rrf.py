"""Reciprocal Rank Fusion for merging retrieval results."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import replace

from adaptive_rag.models.domain import RetrievedDocument


def reciprocal_rank_fusion(
    result_lists: list[list[str]],
    k: int = 60,
) -> list[tuple[str, float]]:
    """Merge multiple ranked id lists using RRF.

    Args:
        result_lists: Each list contains document ids, best first.
        k: RRF constant (higher = more weight to lower-ranked results).

    Returns:
        (doc_id, rrf_score) tuples sorted by RRF score descending. Equal scores
        keep the order in which ids were first seen across the lists.
    """
    scores: dict[str, float] = defaultdict(float)
    for result_list in result_lists:
        for rank, doc_id in enumerate(result_list):
            scores[doc_id] += 1.0 / (k + rank + 1)
    return sorted(scores.items(), key=lambda x: x[1], reverse=True)


def fuse_documents(
    result_lists: list[list[RetrievedDocument]],
    k: int = 60,
    top_k: int | None = None,
) -> list[RetrievedDocument]:
    """RRF over document lists; returns deduplicated hybrid documents."""
    first_seen: dict[str, RetrievedDocument] = {}
    id_lists = []
    for result_list in result_lists:
        ids = []
        for doc in result_list:
            first_seen.setdefault(doc.id, doc)
            ids.append(doc.id)
        id_lists.append(ids)

    fused = reciprocal_rank_fusion(id_lists, k=k)
    if top_k is not None:
        fused = fused[:top_k]
    return [replace(first_seen[doc_id], score=score, source="hybrid") for doc_id, score in fused]
