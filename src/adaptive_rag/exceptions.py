"""Custom exception hierarchy for the adaptive RAG engine."""


class AdaptiveRAGError(Exception):
    """Base exception for all adaptive RAG errors."""


class ConfigurationError(AdaptiveRAGError):
    """Error in system configuration."""


class ClassificationError(AdaptiveRAGError):
    """Intent classification failed."""


class EmbeddingError(AdaptiveRAGError):
    """Error generating embeddings."""


class RetrievalError(AdaptiveRAGError):
    """Error during retrieval."""

    def __init__(self, message: str, failed_branches: list[str] | None = None) -> None:
        super().__init__(message)
        self.failed_branches = failed_branches or []


class RerankError(AdaptiveRAGError):
    """Error during reranking."""


class GradingError(AdaptiveRAGError):
    """Document grading model call failed."""


class RewriteError(AdaptiveRAGError):
    """Query rewrite model call failed."""


class GenerationError(AdaptiveRAGError):
    """Error during answer generation."""


class VerificationError(AdaptiveRAGError):
    """Error during answer verification."""


class LaneExecutionError(AdaptiveRAGError):
    """A lane aborted in a specific node."""

    def __init__(self, message: str, node: str, elapsed_ms: float) -> None:
        super().__init__(message)
        self.node = node
        self.elapsed_ms = elapsed_ms


class LaneTimeoutError(AdaptiveRAGError):
    """The lane exceeded its wall-clock budget."""

    def __init__(self, message: str, node: str | None, elapsed_ms: float) -> None:
        super().__init__(message)
        self.node = node
        self.elapsed_ms = elapsed_ms


class SessionNotFoundError(AdaptiveRAGError):
    """Referenced session does not exist."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id
