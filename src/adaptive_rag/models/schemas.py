"""Pydantic models for API request/response serialization."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from adaptive_rag.config.settings import Settings


class QueryConfig(BaseModel):
    """Per-request overrides. Unset fields fall back to Settings defaults."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    router_model: str | None = None
    enable_routing: bool | None = None
    fast_model: str | None = None
    reasoning_model: str | None = None
    embedding_model: str | None = None
    top_k: int | None = Field(default=None, ge=1, le=100)
    rerank_top_k: int | None = Field(default=None, ge=1, le=100)
    similarity_threshold: float | None = Field(default=None, ge=0.0, le=1.0)
    enable_bm25: bool | None = None
    enable_rerank: bool | None = None
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    thinking_timeout_ms: int | None = Field(default=None, ge=1)
    collection_name: str | None = None
    force_lane: Literal[1, 2, 3] | None = None
    max_retries: int | None = Field(default=None, ge=0, le=10)
    grade_pass_threshold: float | None = Field(default=None, ge=0.0, le=1.0)

    def resolve(self, settings: Settings) -> ResolvedQueryConfig:
        values = {
            name: getattr(settings, name)
            for name in ResolvedQueryConfig.model_fields
            if hasattr(settings, name)
        }
        values.update(self.model_dump(exclude_none=True))
        return ResolvedQueryConfig(**values)

    def merged_with(self, other: QueryConfig | None) -> QueryConfig:
        """Overlay ``other``'s explicitly set fields on top of this config."""
        if other is None:
            return self
        data = self.model_dump(exclude_none=True)
        data.update(other.model_dump(exclude_none=True))
        return QueryConfig(**data)


class ResolvedQueryConfig(BaseModel):
    router_model: str
    enable_routing: bool
    fast_model: str
    reasoning_model: str
    embedding_model: str
    top_k: int
    rerank_top_k: int
    similarity_threshold: float
    enable_bm25: bool
    enable_rerank: bool
    temperature: float
    thinking_timeout_ms: int
    collection_name: str | None = None
    force_lane: int | None = None
    max_retries: int
    grade_pass_threshold: float


class QueryRequest(BaseModel):
    query: str = Field(min_length=1)
    session_id: str | None = Field(default=None, alias="sessionId")
    config: QueryConfig = Field(default_factory=QueryConfig)

    model_config = ConfigDict(populate_by_name=True)


class QueryResponse(BaseModel):
    session_id: str | None = None
    lane: int
    lane_name: str
    answer: str
    classification: dict[str, Any] | None = None
    result: dict[str, Any]


class WindowConfigUpdate(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    strategy: Literal["sliding", "summarize", "hybrid"] | None = None
    max_rounds: int | None = Field(default=None, ge=1)
    max_tokens: int | None = Field(default=None, ge=1)
    keep_recent_rounds: int | None = Field(default=None, ge=0)


SessionAction = Literal[
    "create", "get", "list", "delete", "query", "stream-query", "compress", "update-config"
]


class SessionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    action: SessionAction
    session_id: str | None = Field(default=None, alias="sessionId")
    user_id: str | None = Field(default=None, alias="userId")
    query: str | None = None
    config: QueryConfig | None = None
    window_config: WindowConfigUpdate | None = Field(default=None, alias="windowConfig")


class LaneInfo(BaseModel):
    lane: int
    name: str
    description: str
    estimated_time: str


class HealthResponse(BaseModel):
    status: str
    provider: str
    index_size: int
    bm25_size: int
    active_sessions: int
