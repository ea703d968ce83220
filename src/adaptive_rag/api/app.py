"""FastAPI application factory with lifespan management."""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI

from adaptive_rag.api.middleware import RequestTimingMiddleware
from adaptive_rag.api.routes_health import router as health_router
from adaptive_rag.api.routes_query import router as query_router
from adaptive_rag.api.routes_sessions import router as sessions_router
from adaptive_rag.api.routes_traces import router as traces_router
from adaptive_rag.config.settings import Settings
from adaptive_rag.generation.answer_generator import AnswerGenerator
from adaptive_rag.grading.grader import QualityGrader
from adaptive_rag.grading.rewriter import QueryRewriter
from adaptive_rag.index.bm25_index import BM25Index
from adaptive_rag.index.faiss_store import FAISSStore
from adaptive_rag.index.local_index import LocalVectorIndex, load_documents
from adaptive_rag.observability.logger import get_logger, setup_logging
from adaptive_rag.orchestration.lane_executor import LaneExecutor
from adaptive_rag.protocols.llm import ModelProvider
from adaptive_rag.protocols.reranker import Reranker
from adaptive_rag.protocols.token_estimator import TokenEstimator
from adaptive_rag.protocols.vector_index import VectorIndex
from adaptive_rag.providers.factory import create_provider
from adaptive_rag.query.decomposition import QueryDecomposer
from adaptive_rag.retrieval.hybrid_retriever import HybridRetriever
from adaptive_rag.routing.intent_router import IntentRouter
from adaptive_rag.scoring.retrieval_quality import RetrievalQualityScorer
from adaptive_rag.sessions.context_manager import ContextManager
from adaptive_rag.sessions.token_estimator import create_estimator
from adaptive_rag.storage.sqlite_session_store import SQLiteSessionStore
from adaptive_rag.storage.sqlite_trace_store import SQLiteTraceStore
from adaptive_rag.verification.hallucination import HallucinationChecker

logger = get_logger("app")


def build_local_index(settings: Settings) -> LocalVectorIndex:
    return LocalVectorIndex(
        faiss_store=FAISSStore(settings.embedding_dimensions, settings.faiss_index_path),
        bm25_index=BM25Index(index_path=settings.bm25_index_path),
        documents=load_documents(settings.documents_path),
    )


def build_reranker(settings: Settings, llm: ModelProvider) -> Reranker | None:
    if not settings.enable_rerank:
        return None
    if settings.reranker == "llm":
        from adaptive_rag.retrieval.reranker_llm import LLMReranker

        return LLMReranker(llm, model=settings.fast_model)
    from adaptive_rag.retrieval.reranker_cross_encoder import CrossEncoderReranker

    return CrossEncoderReranker(model_name=settings.cross_encoder_model)


def create_app(
    settings: Settings | None = None,
    llm: ModelProvider | None = None,
    vector_index: VectorIndex | None = None,
    estimator: TokenEstimator | None = None,
) -> FastAPI:
    """Build the app. Collaborators default to the configured providers and local index."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        cfg = settings or Settings()
        setup_logging()

        for path in [cfg.sqlite_session_db_path, cfg.sqlite_trace_db_path]:
            Path(path).parent.mkdir(parents=True, exist_ok=True)

        # Storage
        trace_store = SQLiteTraceStore(cfg.sqlite_trace_db_path)
        await trace_store.initialize()
        session_store = SQLiteSessionStore(cfg.sqlite_session_db_path)

        # Collaborators
        model_provider = llm or create_provider(cfg)
        index = vector_index or build_local_index(cfg)

        # Retrieval
        retriever = HybridRetriever(
            index=index,
            llm=model_provider,
            reranker=build_reranker(cfg, model_provider),
            scorer=RetrievalQualityScorer(cfg),
            rrf_k=cfg.rrf_k,
            branch_timeout_s=cfg.branch_timeout_s,
        )

        # Lane execution
        executor = LaneExecutor(
            retriever=retriever,
            grader=QualityGrader(model_provider, model=cfg.fast_model, pass_threshold=cfg.grade_pass_threshold),
            rewriter=QueryRewriter(model_provider, model=cfg.fast_model),
            generator=AnswerGenerator(model_provider, max_tokens=cfg.max_output_tokens),
            checker=HallucinationChecker(model_provider, model=cfg.verification_model),
            decomposer=QueryDecomposer(
                model_provider, model=cfg.reasoning_model, max_sub_questions=cfg.max_sub_queries
            ),
            trace_store=trace_store,
        )

        context_manager = ContextManager(
            settings=cfg,
            router=IntentRouter(model_provider, model=cfg.router_model, timeout_ms=cfg.router_timeout_ms),
            executor=executor,
            store=session_store,
            llm=model_provider,
            estimator=estimator or create_estimator(cfg),
        )
        await context_manager.startup()

        app.state.settings = cfg
        app.state.context_manager = context_manager
        app.state.trace_store = trace_store
        app.state.vector_index = index

        logger.info(
            "startup_complete",
            provider=cfg.model_provider,
            index_size=getattr(index, "size", 0),
            sessions=await context_manager.count_sessions(),
        )

        yield

        await context_manager.shutdown()
        logger.info("shutdown_complete")

    app = FastAPI(
        title="Adaptive RAG Engine",
        version="1.0.0",
        description="Intent-routed, self-correcting retrieval-augmented generation",
        lifespan=lifespan,
    )
    app.add_middleware(RequestTimingMiddleware)
    app.include_router(health_router, tags=["health"])
    app.include_router(query_router, tags=["query"])
    app.include_router(sessions_router, tags=["sessions"])
    app.include_router(traces_router, tags=["traces"])
    return app
