"""Shared test fixtures."""

from __future__ import annotations

import asyncio
import json
import tempfile
from pathlib import Path

import pytest

from adaptive_rag.config.settings import Settings
from adaptive_rag.generation.answer_generator import AnswerGenerator
from adaptive_rag.grading.grader import QualityGrader
from adaptive_rag.grading.rewriter import QueryRewriter
from adaptive_rag.models.domain import RetrievedDocument
from adaptive_rag.models.schemas import QueryConfig
from adaptive_rag.orchestration.lane_executor import LaneExecutor
from adaptive_rag.query.decomposition import QueryDecomposer
from adaptive_rag.retrieval.hybrid_retriever import HybridRetriever
from adaptive_rag.routing.intent_router import IntentRouter
from adaptive_rag.scoring.retrieval_quality import RetrievalQualityScorer
from adaptive_rag.sessions.context_manager import ContextManager
from adaptive_rag.storage.sqlite_session_store import SQLiteSessionStore
from adaptive_rag.verification.hallucination import HallucinationChecker

# Leading text of each prompt template, used to script the fake model
ROUTER = "You are an intent classifier"
GRADE = "Judge whether the passage"
REWRITE = "mostly judged irrelevant"
PLAN = "Break the following complex question"
VERIFY = "Check each claim"
SUMMARY = "Compress the following conversation"
RERANK = "Score how well each passage"


def grade_json(is_relevant: bool, confidence: float = 0.9) -> str:
    return json.dumps({"is_relevant": is_relevant, "confidence": confidence, "reasoning": "test"})


def grade_by_marker(marker: str = "[relevant]"):
    """Grader script: a passage is relevant when its text contains ``marker``."""

    def respond(prompt: str) -> str:
        return grade_json(marker in prompt)

    return respond


class FakeModelProvider:
    """Scripted ModelProvider.

    ``responses`` maps a prompt marker to a string, an exception, a callable
    taking the prompt, or a list of those consumed in order (the last one
    repeats).
    """

    name = "fake"

    def __init__(
        self,
        responses: dict | None = None,
        answer: str = "Paris is the capital of France [1].",
        delay: float = 0.0,
        delays: dict | None = None,
        embed_error: Exception | None = None,
        stream_error: Exception | None = None,
    ) -> None:
        self.responses = dict(responses or {})
        self.answer = answer
        self.delay = delay
        self.delays = dict(delays or {})
        self.embed_error = embed_error
        self.stream_error = stream_error
        self.prompts: list[str] = []
        self.models: list[tuple[str | None, str | None]] = []
        self.cancelled = 0

    async def _sleep(self, seconds: float) -> None:
        if not seconds:
            return
        try:
            await asyncio.sleep(seconds)
        except asyncio.CancelledError:
            self.cancelled += 1
            raise

    def _marker(self, prompt: str) -> str | None:
        for marker in self.responses:
            if marker in prompt:
                return marker
        return None

    async def complete(
        self,
        prompt: str,
        model: str | None = None,
        system: str | None = None,
        temperature: float = 0.1,
        max_tokens: int = 2048,
        json_mode: bool = False,
    ) -> str:
        self.prompts.append(prompt)
        marker = self._marker(prompt)
        self.models.append((marker, model))
        await self._sleep(self.delays.get(marker, self.delay))
        if marker is None:
            return "{}"
        response = self.responses[marker]
        if isinstance(response, list):
            response = response.pop(0) if len(response) > 1 else response[0]
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(prompt)
        return response

    def calls(self, marker: str) -> int:
        return sum(1 for p in self.prompts if marker in p)

    async def stream(
        self,
        prompt: str,
        model: str | None = None,
        system: str | None = None,
        temperature: float = 0.1,
        max_tokens: int = 2048,
    ):
        self.prompts.append(prompt)
        await self._sleep(self.delays.get("stream", 0.0))
        if self.stream_error is not None:
            raise self.stream_error
        words = self.answer.split(" ")
        for i, word in enumerate(words):
            yield word if i == 0 else " " + word

    async def embed(self, text: str, model: str | None = None) -> list[float]:
        if self.embed_error is not None:
            raise self.embed_error
        return [0.1, 0.2, 0.3]


class FakeVectorIndex:
    """In-memory VectorIndex over a fixed document list."""

    def __init__(
        self,
        documents: list[tuple[str, str]],
        sparse_order: list[str] | None = None,
        dense_error: Exception | None = None,
        sparse_error: Exception | None = None,
        sparse_delay: float = 0.0,
        supports_sparse: bool = True,
    ) -> None:
        self._documents = documents
        self._sparse_order = sparse_order
        self.dense_error = dense_error
        self.sparse_error = sparse_error
        self.sparse_delay = sparse_delay
        self._supports_sparse = supports_sparse
        self.size = len(documents)
        self.bm25_size = len(documents) if supports_sparse else 0

    @property
    def supports_sparse(self) -> bool:
        return self._supports_sparse

    async def dense_search(self, vector, top_k, collection=None):
        if self.dense_error is not None:
            raise self.dense_error
        return [
            RetrievedDocument(
                id=doc_id, content=text, metadata={}, score=round(0.9 - i * 0.05, 4), source="dense"
            )
            for i, (doc_id, text) in enumerate(self._documents[:top_k])
        ]

    async def sparse_search(self, query, top_k, collection=None):
        if self.sparse_delay:
            await asyncio.sleep(self.sparse_delay)
        if self.sparse_error is not None:
            raise self.sparse_error
        by_id = dict(self._documents)
        order = self._sparse_order or [doc_id for doc_id, _ in reversed(self._documents)]
        return [
            RetrievedDocument(
                id=doc_id, content=by_id[doc_id], metadata={}, score=float(10 - i), source="sparse"
            )
            for i, doc_id in enumerate(order[:top_k])
        ]


class FixedEstimator:
    def __init__(self, tokens: int = 10) -> None:
        self.tokens = tokens

    def count(self, text: str) -> int:
        return self.tokens


@pytest.fixture
def tmp_dir():
    """Create a temporary directory."""
    return tempfile.mkdtemp()


@pytest.fixture
def settings(tmp_dir):
    """Test settings with temp paths and no model downloads."""
    return Settings(
        openai_api_key="test-key",
        google_api_key="test-key",
        enable_rerank=False,
        token_estimator="heuristic",
        sqlite_session_db_path=str(Path(tmp_dir) / "test_sessions.db"),
        sqlite_trace_db_path=str(Path(tmp_dir) / "test_traces.db"),
        faiss_index_path=str(Path(tmp_dir) / "faiss_index"),
        bm25_index_path=str(Path(tmp_dir) / "bm25_index"),
        documents_path=str(Path(tmp_dir) / "documents.jsonl"),
    )


@pytest.fixture
def sample_documents():
    """Ten passages; three carry the relevance marker the grader script looks for."""
    docs = []
    for i in range(10):
        marker = " [relevant]" if i in (0, 4, 7) else ""
        docs.append((f"doc-{i}", f"Passage {i} about retrieval pipelines and ranking.{marker}"))
    return docs


@pytest.fixture
def make_config(settings):
    def factory(**overrides):
        return QueryConfig(**overrides).resolve(settings)

    return factory


@pytest.fixture
def build_executor(settings):
    def factory(llm, index, trace_store=None, reranker=None):
        retriever = HybridRetriever(
            index=index,
            llm=llm,
            reranker=reranker,
            scorer=RetrievalQualityScorer(settings),
            rrf_k=settings.rrf_k,
            branch_timeout_s=settings.branch_timeout_s,
        )
        return LaneExecutor(
            retriever=retriever,
            grader=QualityGrader(llm, model="fast"),
            rewriter=QueryRewriter(llm, model="fast"),
            generator=AnswerGenerator(llm),
            checker=HallucinationChecker(llm, model="verify"),
            decomposer=QueryDecomposer(llm, model="reasoning"),
            trace_store=trace_store,
        )

    return factory


@pytest.fixture
def build_manager(settings, build_executor):
    async def factory(llm, index, estimator=None, window_config=None):
        store = SQLiteSessionStore(settings.sqlite_session_db_path)
        manager = ContextManager(
            settings=settings,
            router=IntentRouter(llm, model="router"),
            executor=build_executor(llm, index),
            store=store,
            llm=llm,
            estimator=estimator or FixedEstimator(),
            window_config=window_config,
        )
        await manager.startup()
        return manager

    return factory
