"""Context window policies: sliding, summarize and hybrid."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from adaptive_rag.models.domain import ChatMessage, ContextWindowConfig, SessionState
from adaptive_rag.observability.logger import get_logger
from adaptive_rag.protocols.token_estimator import TokenEstimator

logger = get_logger("context_window")

Summarizer = Callable[[str], Awaitable[str]]


@dataclass
class WindowOutcome:
    triggered: bool = False
    strategy_applied: str | None = None
    removed: int = 0
    summarized: bool = False


def needs_truncation(state: SessionState, config: ContextWindowConfig) -> tuple[bool, bool]:
    """(over the round limit, over the token budget)."""
    return state.rounds > config.max_rounds, state.metadata.total_tokens > config.max_tokens


def render_conversation(messages: list[ChatMessage]) -> str:
    labels = {"user": "User", "assistant": "Assistant", "system": "Earlier summary"}
    return "\n".join(f"{labels[m.role]}: {m.content}" for m in messages)


def slide(state: SessionState, config: ContextWindowConfig) -> int:
    """Drop the oldest rounds until both limits hold.

    System (summary) messages are kept, and the latest round always survives.
    """
    removed = 0
    while True:
        over_rounds, over_tokens = needs_truncation(state, config)
        if not (over_rounds or over_tokens):
            break
        conversational = [m for m in state.messages if m.role != "system"]
        if len(conversational) <= 2:
            break
        # A user message leaves together with the reply that follows it
        drop = conversational[:1]
        if conversational[0].role == "user" and conversational[1].role == "assistant":
            drop = conversational[:2]
        for message in drop:
            state.messages.remove(message)
        state.recompute()
        removed += len(drop)
    return removed


async def summarize(
    state: SessionState,
    keep_messages: int,
    summarizer: Summarizer,
    estimator: TokenEstimator,
) -> int:
    """Collapse everything but the last ``keep_messages`` into one summary message.

    Returns the number of conversational messages removed. The summarizer may
    raise; the session is untouched in that case.
    """
    conversational = [m for m in state.messages if m.role != "system"]
    if len(conversational) <= keep_messages:
        return 0
    keep = conversational[-keep_messages:] if keep_messages else []
    old = conversational[: len(conversational) - keep_messages]
    previous = [m for m in state.messages if m.role == "system"]

    summary = (await summarizer(render_conversation(previous + old))).strip()
    summary_message = ChatMessage(role="system", content=summary, token_count=estimator.count(summary))

    state.messages = [summary_message] + keep
    state.summary = summary
    state.recompute()
    return len(old)


async def apply_window(
    state: SessionState,
    config: ContextWindowConfig,
    estimator: TokenEstimator,
    summarizer: Summarizer,
) -> WindowOutcome:
    over_rounds, over_tokens = needs_truncation(state, config)
    outcome = WindowOutcome(triggered=over_rounds or over_tokens)
    if not outcome.triggered:
        return outcome

    use_summary = config.strategy == "summarize" or (config.strategy == "hybrid" and over_tokens)
    if use_summary:
        try:
            outcome.removed = await summarize(
                state, config.keep_recent_rounds * 2, summarizer, estimator
            )
            outcome.summarized = outcome.removed > 0
            outcome.strategy_applied = "summarize"
        except Exception as e:
            logger.warning("summarize_failed_sliding", session_id=state.session_id, error=str(e))

    # Sliding covers the sliding strategy, hybrid round overflow, and anything summarization left over
    slid = slide(state, config)
    if slid:
        outcome.removed += slid
        outcome.strategy_applied = outcome.strategy_applied or "sliding"

    state.metadata.truncated_count += outcome.removed
    if outcome.summarized:
        state.metadata.summarized_rounds += (outcome.removed - slid) // 2

    logger.info(
        "context_window_applied",
        session_id=state.session_id,
        strategy=config.strategy,
        applied=outcome.strategy_applied,
        removed=outcome.removed,
        total_tokens=state.metadata.total_tokens,
        rounds=state.rounds,
    )
    return outcome
