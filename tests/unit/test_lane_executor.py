"""Tests for lane execution: the rewrite loop, lane paths, errors and the wall-clock budget."""

import json
import time
from contextlib import aclosing

import pytest

from adaptive_rag.exceptions import GenerationError, LaneExecutionError, LaneTimeoutError
from adaptive_rag.models.events import (
    CompleteEvent,
    ErrorEvent,
    NodeEvent,
    TimeoutEvent,
    TokenEvent,
)
from adaptive_rag.routing.intent_router import IntentRouter

from conftest import (
    GRADE,
    PLAN,
    REWRITE,
    VERIFY,
    FakeModelProvider,
    FakeVectorIndex,
    grade_by_marker,
    grade_json,
)

REWRITE_REPLY = json.dumps({"rewritten_query": "retrieval pipeline ranking details", "reason": "narrower"})
VERIFY_REPLY = json.dumps({"verdicts": [{"index": 1, "supported": True}], "confidence": 0.9})


class MemoryTraceStore:
    def __init__(self):
        self.traces = []

    async def save_trace(self, trace):
        self.traces.append(trace)


async def _collect(executor, query, lane, config):
    events = []
    async for event in executor.stream(query, IntentRouter.forced(lane), config):
        events.append(event)
    return events


def _nodes(events):
    return [e.data.node for e in events if isinstance(e, NodeEvent)]


async def test_rewrite_loop_bounded_by_max_retries(build_executor, make_config, sample_documents):
    llm = FakeModelProvider(
        {GRADE: grade_by_marker(), REWRITE: REWRITE_REPLY, VERIFY: VERIFY_REPLY}
    )
    executor = build_executor(llm, FakeVectorIndex(sample_documents))
    config = make_config(top_k=10, rerank_top_k=10, max_retries=2, grade_pass_threshold=0.6)

    result = await executor.execute("how are passages ranked", IntentRouter.forced(2), config)

    assert [g.pass_rate for g in result.grader_results] == [0.3, 0.3, 0.3]
    assert len(result.rewrites) == 2
    assert llm.calls(REWRITE) == 2
    assert result.trace.retry_count == 2
    assert result.trace.decision_path == [
        "init",
        "retrieve", "grade", "rewrite",
        "retrieve", "grade", "rewrite",
        "retrieve", "grade",
        "generate", "verify",
    ]
    assert result.trace.status == "completed"
    # Generation uses the relevant documents of the best round, in fused order
    assert [d.id for d in result.documents] == ["doc-0", "doc-7", "doc-4"]


async def test_rewrites_feed_next_retrieval(build_executor, make_config, sample_documents):
    llm = FakeModelProvider({GRADE: grade_by_marker(), REWRITE: REWRITE_REPLY})
    executor = build_executor(llm, FakeVectorIndex(sample_documents))
    result = await executor.execute(
        "how are passages ranked", IntentRouter.forced(2), make_config(max_retries=1)
    )

    retrieve_inputs = [n.input["query"] for n in result.trace.node_executions if n.node == "retrieve"]
    assert retrieve_inputs == ["how are passages ranked", "retrieval pipeline ranking details"]
    assert result.rewrites[0].original == "how are passages ranked"


async def test_stream_event_order(build_executor, make_config, sample_documents):
    llm = FakeModelProvider({GRADE: grade_json(True), VERIFY: VERIFY_REPLY})
    executor = build_executor(llm, FakeVectorIndex(sample_documents))
    events = await _collect(executor, "how are passages ranked", 2, make_config())

    assert _nodes(events) == ["init", "retrieve", "grade", "generate", "verify"]
    tokens = "".join(e.data.content for e in events if isinstance(e, TokenEvent))
    assert tokens == llm.answer
    assert isinstance(events[-1], CompleteEvent)
    assert sum(isinstance(e, CompleteEvent) for e in events) == 1
    assert events[-1].data.result["hallucination_check"]["has_hallucination"] is False


async def test_chat_lane_skips_retrieval(build_executor, make_config, sample_documents):
    llm = FakeModelProvider({GRADE: grade_json(True)})
    executor = build_executor(llm, FakeVectorIndex(sample_documents))
    result = await executor.execute("hello", IntentRouter.forced(1), make_config())

    assert result.trace.decision_path == ["init", "generate", "verify"]
    assert result.trace.node_executions[-1].status == "skipped"
    assert result.documents == []
    assert result.retrieval is None
    assert llm.calls(GRADE) == 0


async def test_reasoning_lane_plans_and_fans_out(build_executor, make_config, sample_documents):
    plan = json.dumps({"sub_questions": ["what is ranking", "what is fusion"], "reasoning_strategy": "combine"})
    llm = FakeModelProvider({PLAN: plan, GRADE: grade_json(True), VERIFY: VERIFY_REPLY})
    executor = build_executor(llm, FakeVectorIndex(sample_documents))
    result = await executor.execute("compare ranking and fusion", IntentRouter.forced(3), make_config())

    assert result.trace.decision_path[:4] == ["init", "plan", "retrieve", "grade"]
    assert result.sub_queries == ["what is ranking", "what is fusion"]
    assert result.retrieval.statistics.queries_used == 3
    assert result.lane_name == "Reasoning Agent"


async def test_no_relevant_documents_generates_without_context(build_executor, make_config, sample_documents):
    llm = FakeModelProvider({GRADE: grade_json(False)})
    executor = build_executor(llm, FakeVectorIndex(sample_documents))
    result = await executor.execute("q", IntentRouter.forced(2), make_config(max_retries=0))

    assert result.documents == []
    assert result.trace.node_executions[-1].status == "skipped"
    assert any("No relevant passages were found" in p for p in llm.prompts)


async def test_verification_failure_is_advisory(build_executor, make_config, sample_documents):
    llm = FakeModelProvider({GRADE: grade_json(True), VERIFY: RuntimeError("verifier down")})
    executor = build_executor(llm, FakeVectorIndex(sample_documents))
    result = await executor.execute("q", IntentRouter.forced(2), make_config())

    assert result.trace.status == "completed"
    assert result.hallucination_check is None
    assert result.trace.node_executions[-1].status == "skipped"


async def test_generation_failure_emits_error_event(build_executor, make_config, sample_documents):
    llm = FakeModelProvider({GRADE: grade_json(True)}, stream_error=GenerationError("model overloaded"))
    executor = build_executor(llm, FakeVectorIndex(sample_documents))
    events = await _collect(executor, "q", 2, make_config())

    assert isinstance(events[-1], ErrorEvent)
    assert events[-1].data.node == "generate"
    assert not any(isinstance(e, CompleteEvent) for e in events)
    failed = [e for e in events if isinstance(e, NodeEvent) and e.data.status == "error"]
    assert [e.data.node for e in failed] == ["generate"]

    with pytest.raises(LaneExecutionError) as exc:
        await executor.execute("q", IntentRouter.forced(2), make_config())
    assert exc.value.node == "generate"


async def test_grading_failure_is_fatal(build_executor, make_config, sample_documents):
    llm = FakeModelProvider({GRADE: RuntimeError("rate limited")})
    executor = build_executor(llm, FakeVectorIndex(sample_documents))
    with pytest.raises(LaneExecutionError) as exc:
        await executor.execute("q", IntentRouter.forced(2), make_config())
    assert exc.value.node == "grade"


async def test_timeout_ends_stream(build_executor, make_config, sample_documents):
    llm = FakeModelProvider({GRADE: grade_json(True)}, delays={GRADE: 0.2})
    executor = build_executor(llm, FakeVectorIndex(sample_documents))
    config = make_config(thinking_timeout_ms=100)

    start_ms = time.time() * 1000
    events = await _collect(executor, "q", 2, config)

    assert isinstance(events[-1], TimeoutEvent)
    assert not any(isinstance(e, CompleteEvent) for e in events)
    assert all(e.timestamp <= start_ms + 100 + 150 for e in events)
    assert llm.cancelled == 1

    timeout = events[-1].data
    assert timeout.node == "grade"
    assert timeout.budget_ms == 100
    partial = timeout.partial_trace
    assert partial["status"] == "timeout"
    assert partial["node_executions"][-1]["node"] == "grade"
    assert partial["node_executions"][-1]["error"] == "timeout"
    # The interrupted node is reported in the trace, not as a node event
    assert _nodes(events) == ["init", "retrieve"]


async def test_execute_raises_on_timeout(build_executor, make_config, sample_documents):
    llm = FakeModelProvider({GRADE: grade_json(True)}, delays={GRADE: 0.2})
    executor = build_executor(llm, FakeVectorIndex(sample_documents))
    with pytest.raises(LaneTimeoutError):
        await executor.execute("q", IntentRouter.forced(2), make_config(thinking_timeout_ms=100))


async def test_consumer_close_cancels_lane(build_executor, make_config, sample_documents):
    llm = FakeModelProvider({GRADE: grade_json(True)}, delays={GRADE: 1.0})
    executor = build_executor(llm, FakeVectorIndex(sample_documents))
    run = executor.start("q", IntentRouter.forced(2), make_config())

    async with aclosing(run.events()) as events:
        async for event in events:
            if isinstance(event, NodeEvent) and event.data.node == "retrieve":
                break

    assert llm.cancelled == 1
    assert run.result is None


async def test_traces_persisted(build_executor, make_config, sample_documents):
    store = MemoryTraceStore()
    llm = FakeModelProvider({GRADE: grade_json(True)})
    executor = build_executor(llm, FakeVectorIndex(sample_documents), trace_store=store)
    result = await executor.execute("q", IntentRouter.forced(2), make_config())
    await executor.drain()

    assert [t.trace_id for t in store.traces] == [result.trace.trace_id]


async def test_request_fast_model_reaches_grader_and_rewriter(build_executor, make_config, sample_documents):
    llm = FakeModelProvider({GRADE: grade_by_marker(), REWRITE: REWRITE_REPLY})
    executor = build_executor(llm, FakeVectorIndex(sample_documents))
    config = make_config(fast_model="request-fast", max_retries=1, grade_pass_threshold=0.9)

    await executor.execute("how are passages ranked", IntentRouter.forced(2), config)

    used = {marker: model for marker, model in llm.models if marker in (GRADE, REWRITE)}
    assert used == {GRADE: "request-fast", REWRITE: "request-fast"}


async def test_failure_between_nodes_blames_current_state(
    build_executor, make_config, sample_documents, monkeypatch
):
    def broken_metrics(*args, **kwargs):
        raise RuntimeError("metrics sink unavailable")

    monkeypatch.setattr("adaptive_rag.orchestration.lane_executor.log_retrieval_metrics", broken_metrics)
    llm = FakeModelProvider({GRADE: grade_json(True)})
    executor = build_executor(llm, FakeVectorIndex(sample_documents))
    events = await _collect(executor, "q", 2, make_config())

    assert isinstance(events[-1], ErrorEvent)
    assert events[-1].data.node == "retrieve"
    # The completed retrieve node is reported once, never re-emitted as the failure
    assert _nodes(events) == ["init", "retrieve"]
    assert all(e.data.status == "completed" for e in events if isinstance(e, NodeEvent))

    with pytest.raises(LaneExecutionError) as exc:
        await executor.execute("q", IntentRouter.forced(2), make_config())
    assert exc.value.node == "retrieve"
