"""Central configuration via Pydantic Settings. All values driven by env vars."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Provider
    model_provider: str = "openai"  # "openai" or "gemini"
    openai_api_key: str = ""
    openai_base_url: str | None = None
    google_api_key: str = ""

    # Models
    router_model: str = "gpt-4o-mini"
    fast_model: str = "gpt-4o-mini"
    reasoning_model: str = "gpt-4o"
    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int = 1536
    summary_model: str = "gpt-4o-mini"
    verification_model: str = "gpt-4o-mini"
    temperature: float = 0.1
    max_output_tokens: int = 2048

    # Routing
    enable_routing: bool = True
    router_timeout_ms: int = 5000

    # Retrieval
    top_k: int = 5
    rerank_top_k: int = 3
    rrf_k: int = 60
    similarity_threshold: float = 0.3
    branch_timeout_s: float = 10.0
    enable_bm25: bool = True
    enable_rerank: bool = True
    reranker: str = "cross_encoder"  # "cross_encoder" or "llm"
    cross_encoder_model: str = "cross-encoder/ms-marco-MiniLM-L-6-v2"

    # Grading / rewrite loop
    grade_pass_threshold: float = 0.6
    max_retries: int = 3

    # Lane execution
    thinking_timeout_ms: int = 60000
    max_sub_queries: int = 3

    # Context window
    window_strategy: str = "hybrid"  # "sliding", "summarize" or "hybrid"
    window_max_rounds: int = 10
    window_max_tokens: int = 4000
    window_keep_recent_rounds: int = 2
    token_estimator: str = "tiktoken"  # "tiktoken" or "heuristic"
    tiktoken_encoding: str = "cl100k_base"

    # Retrieval quality scoring weights (statistics only)
    rq_w_relevance: float = 0.45
    rq_w_margin: float = 0.20
    rq_w_coverage: float = 0.15
    rq_w_consistency: float = 0.20

    # Storage paths
    sqlite_session_db_path: str = "data/sessions.db"
    sqlite_trace_db_path: str = "data/traces.db"
    faiss_index_path: str = "data/faiss_index"
    bm25_index_path: str = "data/bm25_index"
    documents_path: str = "data/documents.jsonl"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    model_config = {"env_file": ".env", "env_prefix": "ADAPTIVE_RAG_"}
