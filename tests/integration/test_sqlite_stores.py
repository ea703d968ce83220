"""Integration tests for SQLite session and trace stores."""

import tempfile
from pathlib import Path
from uuid import uuid4

import pytest

from adaptive_rag.models.domain import ChatMessage, NodeExecution, SessionState, WorkflowTrace
from adaptive_rag.storage.sqlite_session_store import SQLiteSessionStore
from adaptive_rag.storage.sqlite_trace_store import SQLiteTraceStore


@pytest.fixture
async def session_store():
    tmp = tempfile.mkdtemp()
    store = SQLiteSessionStore(str(Path(tmp) / "test_sessions.db"))
    await store.initialize()
    return store


@pytest.fixture
async def trace_store():
    tmp = tempfile.mkdtemp()
    store = SQLiteTraceStore(str(Path(tmp) / "test_traces.db"))
    await store.initialize()
    return store


def _trace(session_id=None, query="What is RAG?"):
    return WorkflowTrace(
        trace_id=str(uuid4()),
        lane=2,
        node_executions=[
            NodeExecution(node="init", status="completed", duration_ms=0.4, input={"query": query}),
            NodeExecution(node="retrieve", status="completed", duration_ms=42.0, output={"merged_count": 5}),
        ],
        decision_path=["init", "retrieve"],
        total_duration_ms=42.4,
        retry_count=0,
        status="completed",
        query=query,
        session_id=session_id,
    )


@pytest.mark.asyncio
async def test_save_and_get_session(session_store):
    state = SessionState(session_id=str(uuid4()), user_id="u1", summary="earlier talk")
    state.messages.append(ChatMessage(role="user", content="检索增强生成是什么？", token_count=9))
    state.messages.append(ChatMessage(role="assistant", content="It combines retrieval with generation.", token_count=8))
    state.recompute()
    state.metadata.truncated_count = 2

    await session_store.save_session(state)
    loaded = await session_store.get_session(state.session_id)

    assert loaded is not None
    assert loaded.user_id == "u1"
    assert loaded.summary == "earlier talk"
    assert [m.content for m in loaded.messages] == [m.content for m in state.messages]
    assert loaded.messages[0].id == state.messages[0].id
    assert loaded.metadata.message_count == 2
    assert loaded.metadata.total_tokens == 17
    assert loaded.metadata.truncated_count == 2
    assert loaded.created_at == state.created_at


@pytest.mark.asyncio
async def test_get_missing_session(session_store):
    assert await session_store.get_session("missing") is None


@pytest.mark.asyncio
async def test_save_overwrites_session(session_store):
    state = SessionState(session_id="s1")
    await session_store.save_session(state)
    state.messages.append(ChatMessage(role="user", content="hi", token_count=1))
    state.recompute()
    await session_store.save_session(state)

    loaded = await session_store.get_session("s1")
    assert loaded.metadata.message_count == 1
    assert await session_store.count_sessions() == 1


@pytest.mark.asyncio
async def test_list_and_delete_sessions(session_store):
    for i in range(3):
        await session_store.save_session(SessionState(session_id=f"s{i}"))

    assert len(await session_store.list_sessions(limit=2)) == 2
    assert await session_store.delete_session("s0") is True
    assert await session_store.delete_session("s0") is False
    assert await session_store.count_sessions() == 2


@pytest.mark.asyncio
async def test_save_and_get_trace(trace_store):
    trace = _trace(session_id="s1")
    await trace_store.save_trace(trace)
    retrieved = await trace_store.get_trace(trace.trace_id)

    assert retrieved is not None
    assert retrieved.query == "What is RAG?"
    assert retrieved.decision_path == ["init", "retrieve"]
    assert retrieved.node_executions[1].output == {"merged_count": 5}
    assert retrieved.session_id == "s1"


@pytest.mark.asyncio
async def test_recent_traces(trace_store):
    for i in range(5):
        await trace_store.save_trace(_trace(session_id="s1" if i % 2 else "s2", query=f"Query {i}"))

    recent = await trace_store.get_recent_traces(limit=3)
    assert len(recent) == 3

    by_session = await trace_store.get_recent_traces(limit=10, session_id="s1")
    assert len(by_session) == 2
    assert all(t.session_id == "s1" for t in by_session)
