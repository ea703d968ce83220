"""Integration tests for the session context manager over a real SQLite store."""

import asyncio
import json
import time

import pytest

from adaptive_rag.exceptions import GenerationError, LaneExecutionError, LaneTimeoutError, SessionNotFoundError
from adaptive_rag.models.domain import ContextWindowConfig
from adaptive_rag.models.events import CompleteEvent, RoutingEvent, TimeoutEvent
from adaptive_rag.models.schemas import QueryConfig, WindowConfigUpdate

from conftest import GRADE, ROUTER, SUMMARY, FakeModelProvider, FakeVectorIndex, grade_json

NO_ROUTING = QueryConfig(enable_routing=False)


@pytest.fixture
def llm():
    return FakeModelProvider({GRADE: grade_json(True), SUMMARY: "The user asked about ranking."})


@pytest.fixture
def index(sample_documents):
    return FakeVectorIndex(sample_documents)


async def test_sequential_queries_accumulate(build_manager, llm, index):
    manager = await build_manager(llm, index)

    first = await manager.process_query("s1", "how are passages ranked", NO_ROUTING)
    second = await manager.process_query("s1", "and how are they fused", NO_ROUTING)

    assert first.session.metadata.message_count == 2
    assert second.session.metadata.message_count == first.session.metadata.message_count + 2
    # FixedEstimator charges 10 tokens per message
    assert second.session.metadata.total_tokens == 40

    stored = await manager.get_session("s1")
    assert [m.role for m in stored.messages] == ["user", "assistant", "user", "assistant"]
    assert stored.messages[2].content == "and how are they fused"


async def test_unknown_session_is_created(build_manager, llm, index):
    manager = await build_manager(llm, index)
    turn = await manager.process_query(None, "hello", NO_ROUTING)

    assert turn.session.session_id
    assert await manager.count_sessions() == 1


async def test_failed_turn_not_persisted(build_manager, index):
    llm = FakeModelProvider({GRADE: grade_json(True)}, stream_error=GenerationError("overloaded"))
    manager = await build_manager(llm, index)

    with pytest.raises(LaneExecutionError):
        await manager.process_query("s1", "q", NO_ROUTING)

    state = await manager.get_session("s1")
    assert state.messages == []
    assert state.metadata.message_count == 0


async def test_timed_out_turn_not_persisted(build_manager, index):
    llm = FakeModelProvider({GRADE: grade_json(True)}, delays={GRADE: 0.2})
    manager = await build_manager(llm, index)

    config = QueryConfig(enable_routing=False, thinking_timeout_ms=100)
    with pytest.raises(LaneTimeoutError):
        await manager.process_query("s1", "q", config)
    assert (await manager.get_session("s1")).messages == []


async def test_stream_query_events(build_manager, llm, index):
    manager = await build_manager(llm, index)
    events = [e async for e in manager.stream_query("s1", "你好")]

    assert isinstance(events[0], RoutingEvent)
    assert events[0].data.lane == 1
    assert isinstance(events[-1], CompleteEvent)
    assert events[-1].data.session_id == "s1"
    assert events[-1].data.context["message_count"] == 2


async def test_forced_lane(build_manager, llm, index):
    manager = await build_manager(llm, index)
    turn = await manager.process_query("s1", "你好", QueryConfig(force_lane=3))

    assert turn.result.lane == 3
    assert turn.classification.confidence == 1.0


async def test_same_session_requests_serialized(build_manager, llm, index):
    manager = await build_manager(llm, index)
    await asyncio.gather(
        manager.process_query("s1", "first", NO_ROUTING),
        manager.process_query("s1", "second", NO_ROUTING),
    )
    state = await manager.get_session("s1")
    assert state.metadata.message_count == 4


async def test_window_applied_after_turn(build_manager, llm, index):
    window = ContextWindowConfig(strategy="sliding", max_rounds=2, max_tokens=10000)
    manager = await build_manager(llm, index, window_config=window)
    for i in range(3):
        turn = await manager.process_query("s1", f"question {i}", NO_ROUTING)

    assert turn.session.metadata.message_count == 4
    assert turn.session.metadata.truncated_count == 2
    assert turn.session.messages[0].content == "question 1"


async def test_session_not_found(build_manager, llm, index):
    manager = await build_manager(llm, index)
    with pytest.raises(SessionNotFoundError):
        await manager.get_session("missing")
    with pytest.raises(SessionNotFoundError):
        await manager.delete_session("missing")


async def test_create_list_delete(build_manager, llm, index):
    manager = await build_manager(llm, index)
    state = await manager.create_session(user_id="u1")

    assert [s.session_id for s in await manager.list_sessions()] == [state.session_id]
    await manager.delete_session(state.session_id)
    assert await manager.count_sessions() == 0


async def test_compress_by_summary(build_manager, llm, index):
    manager = await build_manager(llm, index)
    await manager.process_query("s1", "q0", NO_ROUTING)
    await manager.process_query("s1", "q1", NO_ROUTING)

    assert (await manager.compress_by_summary("s1")).success is False

    await manager.process_query("s1", "q2", NO_ROUTING)
    result = await manager.compress_by_summary("s1")

    assert result.success is True
    assert result.summary == "The user asked about ranking."
    assert result.compressed_count == 2

    state = await manager.get_session("s1")
    assert state.messages[0].role == "system"
    assert [m.content for m in state.messages[1:3]] == ["q1", llm.answer]
    assert state.metadata.truncated_count == 2
    assert state.metadata.summarized_rounds == 1


async def test_update_config(build_manager, llm, index):
    manager = await build_manager(llm, index)
    update = manager.update_config(
        window=WindowConfigUpdate(max_rounds=3), query=QueryConfig(force_lane=1)
    )
    assert update["window_config"]["max_rounds"] == 3
    assert update["query_defaults"] == {"force_lane": 1}

    turn = await manager.process_query("s1", "what is fusion", None)
    assert turn.result.lane == 1

    # Per-request values still win over the stored defaults
    turn = await manager.process_query("s1", "what is fusion", QueryConfig(force_lane=2))
    assert turn.result.lane == 2


async def test_token_stats(build_manager, llm, index):
    manager = await build_manager(llm, index)
    turn = await manager.process_query("s1", "q", NO_ROUTING)
    stats = manager.get_token_stats(turn.session)

    assert stats == {
        "total_tokens": 20,
        "message_count": 2,
        "average_tokens_per_message": 10,
        "is_over_limit": False,
    }


async def test_slow_router_spends_request_budget(build_manager, index):
    llm = FakeModelProvider(
        {ROUTER: json.dumps({"intent": "reasoning"}), GRADE: grade_json(True)},
        delays={ROUTER: 2.0},
    )
    manager = await build_manager(llm, index)
    config = QueryConfig(thinking_timeout_ms=100)

    start = time.monotonic()
    events = [e async for e in manager.stream_query("s1", "RAG 系统的工作原理是什么？", config)]

    assert time.monotonic() - start < 1.0
    assert isinstance(events[0], RoutingEvent)
    assert events[0].data.lane == 2
    assert events[0].data.classification["confidence"] == 0.5
    assert isinstance(events[-1], TimeoutEvent)
    assert events[-1].data.budget_ms == 100
    assert (await manager.get_session("s1")).messages == []


class ConcurrencyTrackingProvider(FakeModelProvider):
    """Records the peak number of grading calls in flight at once."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.in_flight = 0
        self.peak = 0

    async def complete(self, prompt, **kwargs):
        grading = GRADE in prompt
        if grading:
            self.in_flight += 1
            self.peak = max(self.peak, self.in_flight)
        try:
            return await super().complete(prompt, **kwargs)
        finally:
            if grading:
                self.in_flight -= 1


async def test_delete_keeps_queued_queries_serialized(build_manager, index):
    llm = ConcurrencyTrackingProvider({GRADE: grade_json(True)}, delays={GRADE: 0.02})
    manager = await build_manager(llm, index)

    first = asyncio.create_task(manager.process_query("s1", "A", NO_ROUTING))
    await asyncio.sleep(0.01)
    deleting = asyncio.create_task(manager.delete_session("s1"))
    await asyncio.sleep(0.01)
    second = asyncio.create_task(manager.process_query("s1", "B", NO_ROUTING))
    await asyncio.sleep(0.01)
    third = asyncio.create_task(manager.process_query("s1", "C", NO_ROUTING))
    await asyncio.gather(first, deleting, second, third)

    assert llm.peak == 1
    state = await manager.get_session("s1")
    assert [m.content for m in state.messages if m.role == "user"] == ["B", "C"]
    assert manager._locks == {}


async def test_session_locks_released(build_manager, llm, index):
    manager = await build_manager(llm, index)
    for _ in range(20):
        await manager.process_query(None, "hello", NO_ROUTING)
    await asyncio.gather(*(manager.process_query("s1", f"q{i}", NO_ROUTING) for i in range(3)))

    assert await manager.count_sessions() == 21
    assert manager._locks == {}
