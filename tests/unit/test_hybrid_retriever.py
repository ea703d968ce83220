"""Tests for the hybrid retriever: fan-out, fusion, degradation and rerank fallback."""

import pytest

from adaptive_rag.exceptions import EmbeddingError, RerankError, RetrievalError
from adaptive_rag.retrieval.hybrid_retriever import HybridRetriever

from conftest import FakeModelProvider, FakeVectorIndex


class ReverseReranker:
    async def rerank(self, query, documents, top_n=10):
        return list(reversed(documents))[:top_n]


class FailingReranker:
    async def rerank(self, query, documents, top_n=10):
        raise RerankError("model not loaded")


@pytest.fixture
def documents():
    return [(f"d{i}", f"passage {i}") for i in range(6)]


async def test_merged_and_reranked_invariants(documents):
    retriever = HybridRetriever(FakeVectorIndex(documents), FakeModelProvider())
    result = await retriever.retrieve("query", top_k=4, rerank_top_k=2, enable_rerank=False)

    merged_ids = [d.id for d in result.merged_results]
    assert len(merged_ids) == len(set(merged_ids))
    assert len(result.merged_results) <= 4
    assert len(result.reranked_results) <= 2
    assert all(d.source == "hybrid" for d in result.merged_results)
    assert result.reranked_results == result.merged_results[:2]
    assert result.statistics.degraded_branches == []
    assert result.statistics.dense_count == 4
    assert result.statistics.sparse_count == 4


async def test_dense_ranked_first_on_ties(documents):
    # Sparse returns the dense order reversed, so d0 (dense rank 0) and d5
    # (sparse rank 0) tie; dense lists are inserted first
    retriever = HybridRetriever(FakeVectorIndex(documents), FakeModelProvider())
    result = await retriever.retrieve("query", top_k=6, rerank_top_k=6, enable_rerank=False)
    assert result.merged_results[0].id == "d0"


async def test_sparse_failure_degrades(documents):
    index = FakeVectorIndex(documents, sparse_error=RuntimeError("bm25 offline"))
    retriever = HybridRetriever(index, FakeModelProvider())
    result = await retriever.retrieve("query", top_k=3, rerank_top_k=3, enable_rerank=False)

    assert result.statistics.degraded_branches == ["sparse"]
    assert result.sparse_results == []
    assert [d.id for d in result.merged_results] == ["d0", "d1", "d2"]


async def test_dense_failure_degrades(documents):
    llm = FakeModelProvider(embed_error=EmbeddingError("quota"))
    retriever = HybridRetriever(FakeVectorIndex(documents), llm)
    result = await retriever.retrieve("query", top_k=3, rerank_top_k=3, enable_rerank=False)

    assert result.statistics.degraded_branches == ["dense"]
    assert [d.id for d in result.merged_results] == ["d5", "d4", "d3"]


async def test_branch_timeout_degrades(documents):
    index = FakeVectorIndex(documents, sparse_delay=0.5)
    retriever = HybridRetriever(index, FakeModelProvider(), branch_timeout_s=0.05)
    result = await retriever.retrieve("query", top_k=3, rerank_top_k=3, enable_rerank=False)
    assert result.statistics.degraded_branches == ["sparse"]


async def test_all_branches_fail(documents):
    index = FakeVectorIndex(documents, sparse_error=RuntimeError("bm25 offline"))
    llm = FakeModelProvider(embed_error=EmbeddingError("quota"))
    retriever = HybridRetriever(index, llm)

    with pytest.raises(RetrievalError) as exc:
        await retriever.retrieve("query")
    assert sorted(exc.value.failed_branches) == ["dense", "sparse"]


async def test_bm25_disabled_runs_dense_only(documents):
    retriever = HybridRetriever(FakeVectorIndex(documents), FakeModelProvider())
    result = await retriever.retrieve("query", top_k=3, enable_bm25=False, enable_rerank=False)
    assert result.statistics.sparse_count == 0
    assert result.statistics.degraded_branches == []


async def test_rerank_applied(documents):
    retriever = HybridRetriever(FakeVectorIndex(documents), FakeModelProvider(), reranker=ReverseReranker())
    result = await retriever.retrieve("query", top_k=3, rerank_top_k=2)
    assert [d.id for d in result.reranked_results] == [
        d.id for d in reversed(result.merged_results)
    ][:2]


async def test_rerank_failure_falls_back(documents):
    retriever = HybridRetriever(FakeVectorIndex(documents), FakeModelProvider(), reranker=FailingReranker())
    result = await retriever.retrieve("query", top_k=4, rerank_top_k=2)

    assert result.reranked_results == result.merged_results[:2]
    assert result.statistics.degraded_branches == ["rerank"]


async def test_extra_queries_join_fan_out(documents):
    retriever = HybridRetriever(FakeVectorIndex(documents), FakeModelProvider())
    result = await retriever.retrieve(
        "query", top_k=3, enable_rerank=False, extra_queries=["sub one", "query"]
    )
    # The duplicate of the main query is dropped
    assert result.statistics.queries_used == 2
    assert result.statistics.dense_count == 6


async def test_similarity_threshold_filters_dense(documents):
    index = FakeVectorIndex(documents, supports_sparse=False)
    retriever = HybridRetriever(index, FakeModelProvider())
    result = await retriever.retrieve(
        "query", top_k=6, rerank_top_k=6, enable_rerank=False, similarity_threshold=0.8
    )
    # Dense scores are 0.9, 0.85, 0.8, 0.75, ...
    assert [d.id for d in result.dense_results] == ["d0", "d1", "d2"]
