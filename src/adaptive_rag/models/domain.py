"""Core domain objects used throughout the system."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal
from uuid import uuid4

IntentType = Literal["chat", "fast_rag", "reasoning"]
Complexity = Literal["low", "medium", "high"]
DocumentSource = Literal["dense", "sparse", "hybrid"]
NodeStatus = Literal["pending", "running", "completed", "skipped", "error"]
TraceStatus = Literal["completed", "error", "timeout"]
Role = Literal["user", "assistant", "system"]
WindowStrategy = Literal["sliding", "summarize", "hybrid"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Query:
    text: str
    rewritten_text: str | None = None
    attempt: int = 0

    @property
    def effective_text(self) -> str:
        return self.rewritten_text or self.text


@dataclass
class IntentClassification:
    intent: IntentType
    confidence: float
    reasoning: str
    keywords: list[str]
    complexity: Complexity
    requires_retrieval: bool
    requires_reasoning: bool
    suggested_lane: int
    estimated_time: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class RetrievedDocument:
    id: str
    content: str
    metadata: dict
    score: float
    source: DocumentSource
    rerank_score: float | None = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class RetrievalStatistics:
    dense_count: int = 0
    sparse_count: int = 0
    merged_count: int = 0
    final_count: int = 0
    dense_ms: float = 0.0
    sparse_ms: float = 0.0
    rerank_ms: float = 0.0
    total_ms: float = 0.0
    degraded_branches: list[str] = field(default_factory=list)
    quality_score: float = 0.0
    queries_used: int = 1


@dataclass
class HybridRetrievalResult:
    dense_results: list[RetrievedDocument]
    sparse_results: list[RetrievedDocument]
    merged_results: list[RetrievedDocument]
    reranked_results: list[RetrievedDocument]
    statistics: RetrievalStatistics

    @property
    def documents(self) -> list[RetrievedDocument]:
        return self.reranked_results

    def summary(self) -> dict:
        return {
            "dense_count": self.statistics.dense_count,
            "sparse_count": self.statistics.sparse_count,
            "merged_count": self.statistics.merged_count,
            "final_count": self.statistics.final_count,
            "degraded_branches": list(self.statistics.degraded_branches),
            "quality_score": round(self.statistics.quality_score, 4),
            "total_ms": round(self.statistics.total_ms, 2),
        }


@dataclass
class DocumentGrade:
    doc_id: str
    is_relevant: bool
    confidence: float
    reasoning: str


@dataclass
class GraderResult:
    pass_rate: float
    pass_count: int
    total_count: int
    should_rewrite: bool
    document_grades: list[DocumentGrade]

    @property
    def relevant_ids(self) -> set[str]:
        return {g.doc_id for g in self.document_grades if g.is_relevant}

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class RewriteRecord:
    original: str
    rewritten: str
    reason: str
    keywords: list[str]
    attempt: int

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class NodeExecution:
    node: str
    status: NodeStatus
    duration_ms: float
    input: dict = field(default_factory=dict)
    output: dict = field(default_factory=dict)
    error: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class WorkflowTrace:
    trace_id: str
    lane: int
    node_executions: list[NodeExecution]
    decision_path: list[str]
    total_duration_ms: float
    retry_count: int
    status: TraceStatus
    query: str = ""
    session_id: str | None = None
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        return data


@dataclass
class HallucinationCheck:
    has_hallucination: bool
    confidence: float
    problematic_claims: list[str]
    supported_claims: list[str]
    overall_factual_score: float

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ChatMessage:
    role: Role
    content: str
    token_count: int
    id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
            "token_count": self.token_count,
        }

    @classmethod
    def from_dict(cls, data: dict) -> ChatMessage:
        return cls(
            id=data["id"],
            role=data["role"],
            content=data["content"],
            token_count=data["token_count"],
            timestamp=datetime.fromisoformat(data["timestamp"]),
        )


@dataclass
class SessionMetadata:
    message_count: int = 0
    total_tokens: int = 0
    truncated_count: int = 0
    summarized_rounds: int = 0
    last_active_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["last_active_at"] = self.last_active_at.isoformat()
        return data


@dataclass
class SessionState:
    session_id: str
    messages: list[ChatMessage] = field(default_factory=list)
    metadata: SessionMetadata = field(default_factory=SessionMetadata)
    user_id: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    summary: str | None = None

    def recompute(self) -> None:
        """Re-derive message_count and total_tokens from the retained messages."""
        self.metadata.message_count = len(self.messages)
        self.metadata.total_tokens = sum(m.token_count for m in self.messages)

    @property
    def rounds(self) -> int:
        return sum(1 for m in self.messages if m.role != "system") // 2

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "user_id": self.user_id,
            "messages": [m.to_dict() for m in self.messages],
            "metadata": self.metadata.to_dict(),
            "created_at": self.created_at.isoformat(),
            "summary": self.summary,
        }


@dataclass
class ContextWindowConfig:
    strategy: WindowStrategy = "hybrid"
    max_rounds: int = 10
    max_tokens: int = 4000
    keep_recent_rounds: int = 2


@dataclass
class LaneResult:
    lane: int
    lane_name: str
    answer: str
    documents: list[RetrievedDocument]
    trace: WorkflowTrace
    classification: IntentClassification | None = None
    retrieval: HybridRetrievalResult | None = None
    grader_results: list[GraderResult] = field(default_factory=list)
    rewrites: list[RewriteRecord] = field(default_factory=list)
    hallucination_check: HallucinationCheck | None = None
    sub_queries: list[str] = field(default_factory=list)

    def summary(self) -> dict:
        return {
            "lane": self.lane,
            "lane_name": self.lane_name,
            "answer": self.answer,
            "documents": [d.to_dict() for d in self.documents],
            "retrieval": self.retrieval.summary() if self.retrieval else None,
            "grader_results": [g.to_dict() for g in self.grader_results],
            "rewrites": [r.to_dict() for r in self.rewrites],
            "hallucination_check": (
                self.hallucination_check.to_dict() if self.hallucination_check else None
            ),
            "sub_queries": list(self.sub_queries),
            "trace": self.trace.to_dict(),
        }


@dataclass
class CompressionResult:
    success: bool
    summary: str | None = None
    compressed_count: int = 0
