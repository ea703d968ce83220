"""Session-scoped conversation state and the query entry points.

The manager composes the intent router and the lane executor, appends each
successful turn to its session, enforces the context window, and persists the
result. Requests for the same session are serialized by a per-session lock;
different sessions proceed concurrently.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator
from contextlib import aclosing, asynccontextmanager
from dataclasses import dataclass, field, replace
from uuid import uuid4

from adaptive_rag.config.constants import COMPRESS_KEEP_MESSAGES, COMPRESS_MIN_MESSAGES, LANE_NAMES
from adaptive_rag.config.settings import Settings
from adaptive_rag.exceptions import LaneExecutionError, LaneTimeoutError, SessionNotFoundError
from adaptive_rag.generation.prompt_templates import SUMMARY_PROMPT
from adaptive_rag.models.domain import (
    ChatMessage,
    CompressionResult,
    ContextWindowConfig,
    IntentClassification,
    LaneResult,
    SessionState,
    utcnow,
)
from adaptive_rag.models.events import (
    CompleteData,
    CompleteEvent,
    RoutingData,
    RoutingEvent,
)
from adaptive_rag.models.schemas import QueryConfig, ResolvedQueryConfig, WindowConfigUpdate
from adaptive_rag.observability.logger import get_logger
from adaptive_rag.observability.metrics import log_routing_metrics
from adaptive_rag.orchestration.lane_executor import LaneExecutor
from adaptive_rag.protocols.token_estimator import TokenEstimator
from adaptive_rag.routing.intent_router import IntentRouter
from adaptive_rag.sessions.window import WindowOutcome, apply_window, summarize
from adaptive_rag.storage.sqlite_session_store import SQLiteSessionStore

logger = get_logger("context_manager")


@dataclass
class TurnResult:
    session: SessionState | None = None
    result: LaneResult | None = None
    classification: IntentClassification | None = None
    error: LaneExecutionError | LaneTimeoutError | None = None


@dataclass
class _SessionLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class ContextManager:
    def __init__(
        self,
        settings: Settings,
        router: IntentRouter,
        executor: LaneExecutor,
        store: SQLiteSessionStore,
        llm,
        estimator: TokenEstimator,
        window_config: ContextWindowConfig | None = None,
    ) -> None:
        self._settings = settings
        self._router = router
        self._executor = executor
        self._store = store
        self._llm = llm
        self._estimator = estimator
        self.window_config = window_config or ContextWindowConfig(
            strategy=settings.window_strategy,
            max_rounds=settings.window_max_rounds,
            max_tokens=settings.window_max_tokens,
            keep_recent_rounds=settings.window_keep_recent_rounds,
        )
        self.query_defaults = QueryConfig()
        # Entries live only while a request holds or waits on them
        self._locks: dict[str, _SessionLock] = {}

    async def startup(self) -> None:
        await self._store.initialize()
        logger.info("context_manager_started", window=self.window_config.strategy)

    async def shutdown(self) -> None:
        await self._executor.drain()
        logger.info("context_manager_stopped")

    @asynccontextmanager
    async def _session_lock(self, session_id: str):
        """Serialize requests for one session; drop the lock once nobody holds or awaits it."""
        entry = self._locks.get(session_id)
        if entry is None:
            entry = self._locks[session_id] = _SessionLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[session_id]

    # Session CRUD

    async def create_session(self, user_id: str | None = None, session_id: str | None = None) -> SessionState:
        state = SessionState(session_id=session_id or str(uuid4()), user_id=user_id)
        await self._store.save_session(state)
        logger.info("session_created", session_id=state.session_id, user_id=user_id)
        return state

    async def get_session(self, session_id: str) -> SessionState:
        state = await self._store.get_session(session_id)
        if state is None:
            raise SessionNotFoundError(session_id)
        return state

    async def list_sessions(self, limit: int = 100) -> list[SessionState]:
        return await self._store.list_sessions(limit)

    async def delete_session(self, session_id: str) -> None:
        async with self._session_lock(session_id):
            if not await self._store.delete_session(session_id):
                raise SessionNotFoundError(session_id)
        logger.info("session_deleted", session_id=session_id)

    async def count_sessions(self) -> int:
        return await self._store.count_sessions()

    # Queries

    async def process_query(
        self, session_id: str | None, question: str, config: QueryConfig | None = None
    ) -> TurnResult:
        turn = TurnResult()
        async for _ in self._turn(session_id, question, config, turn):
            pass
        if turn.error is not None:
            raise turn.error
        return turn

    async def stream_query(
        self, session_id: str | None, question: str, config: QueryConfig | None = None
    ) -> AsyncIterator:
        async with aclosing(self._turn(session_id, question, config, TurnResult())) as events:
            async for event in events:
                yield event

    async def route(
        self, question: str, config: ResolvedQueryConfig
    ) -> tuple[IntentClassification, bool]:
        if config.force_lane is not None:
            return IntentRouter.forced(config.force_lane), True
        if not config.enable_routing:
            return IntentRouter.default(), False
        # Routing spends from the same wall-clock budget as the lane
        timeout_ms = min(self._settings.router_timeout_ms, config.thinking_timeout_ms)
        classification = await self._router.classify(
            question, model=config.router_model, timeout_ms=timeout_ms
        )
        return classification, False

    async def _turn(
        self,
        session_id: str | None,
        question: str,
        config: QueryConfig | None,
        turn: TurnResult,
    ) -> AsyncIterator:
        session_id = session_id or str(uuid4())
        resolved = self.query_defaults.merged_with(config).resolve(self._settings)

        async with self._session_lock(session_id):
            session = await self._store.get_session(session_id)
            if session is None:
                session = await self.create_session(session_id=session_id)

            start = time.monotonic()
            classification, forced = await self.route(question, resolved)
            routing_ms = (time.monotonic() - start) * 1000
            turn.classification = classification
            log_routing_metrics(classification, forced, routing_ms)
            lane = classification.suggested_lane
            yield RoutingEvent(
                data=RoutingData(
                    lane=lane,
                    lane_name=LANE_NAMES[lane],
                    classification=classification.to_dict(),
                    forced=forced,
                    duration_ms=round(routing_ms, 2),
                )
            )

            run = self._executor.start(
                question,
                classification,
                resolved,
                session_id=session_id,
                history=[(m.role, m.content) for m in session.messages],
                spent_ms=routing_ms,
            )
            async with aclosing(run.events()) as events:
                async for event in events:
                    yield event

            if run.result is None:
                # Failed and timed-out turns leave the session untouched
                turn.error = run.error
                return

            self._append(session, "user", question)
            self._append(session, "assistant", run.result.answer)
            outcome = await apply_window(
                session, self.window_config, self._estimator, self._summarize
            )
            session.metadata.last_active_at = utcnow()
            await self._store.save_session(session)

            turn.session, turn.result = session, run.result
            yield CompleteEvent(
                data=CompleteData(
                    session_id=session_id,
                    result=run.result.summary(),
                    context=self._context_summary(session, outcome),
                )
            )

    def _append(self, session: SessionState, role: str, content: str) -> None:
        session.messages.append(
            ChatMessage(role=role, content=content, token_count=self._estimator.count(content))
        )
        session.recompute()

    async def _summarize(self, conversation: str) -> str:
        return await self._llm.complete(
            SUMMARY_PROMPT.format(conversation=conversation),
            model=self._settings.summary_model,
            temperature=0.2,
            max_tokens=512,
        )

    def _context_summary(self, session: SessionState, outcome: WindowOutcome) -> dict:
        return {
            "message_count": session.metadata.message_count,
            "total_tokens": session.metadata.total_tokens,
            "truncated_count": session.metadata.truncated_count,
            "summarized_rounds": session.metadata.summarized_rounds,
            "window_triggered": outcome.triggered,
            "window_removed": outcome.removed,
            "strategy": self.window_config.strategy,
        }

    # Maintenance

    async def compress_by_summary(self, session_id: str) -> CompressionResult:
        async with self._session_lock(session_id):
            session = await self.get_session(session_id)
            conversational = [m for m in session.messages if m.role != "system"]
            if len(conversational) < COMPRESS_MIN_MESSAGES:
                return CompressionResult(success=False)
            try:
                removed = await summarize(
                    session, COMPRESS_KEEP_MESSAGES, self._summarize, self._estimator
                )
            except Exception as e:
                logger.warning("compress_failed", session_id=session_id, error=str(e))
                return CompressionResult(success=False)

            session.metadata.truncated_count += removed
            session.metadata.summarized_rounds += removed // 2
            session.metadata.last_active_at = utcnow()
            await self._store.save_session(session)

        logger.info("session_compressed", session_id=session_id, compressed=removed)
        return CompressionResult(success=True, summary=session.summary, compressed_count=removed)

    def update_config(
        self,
        window: WindowConfigUpdate | None = None,
        query: QueryConfig | None = None,
    ) -> dict:
        if window is not None:
            self.window_config = replace(
                self.window_config, **window.model_dump(exclude_none=True)
            )
        if query is not None:
            self.query_defaults = self.query_defaults.merged_with(query)
        logger.info("config_updated", window=self.window_config.strategy)
        return {
            "window_config": {
                "strategy": self.window_config.strategy,
                "max_rounds": self.window_config.max_rounds,
                "max_tokens": self.window_config.max_tokens,
                "keep_recent_rounds": self.window_config.keep_recent_rounds,
            },
            "query_defaults": self.query_defaults.model_dump(exclude_none=True),
        }

    def get_token_stats(self, session: SessionState) -> dict:
        total = sum(m.token_count for m in session.messages)
        count = len(session.messages)
        return {
            "total_tokens": total,
            "message_count": count,
            "average_tokens_per_message": round(total / count) if count else 0,
            "is_over_limit": total > self.window_config.max_tokens,
        }
