"""SQLite-backed workflow trace store for observability."""

from __future__ import annotations

import json
from datetime import datetime

import aiosqlite

from adaptive_rag.models.domain import NodeExecution, WorkflowTrace
from adaptive_rag.storage.migrations import initialize_trace_db


class SQLiteTraceStore:
    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    async def initialize(self) -> None:
        await initialize_trace_db(self._db_path)

    async def save_trace(self, trace: WorkflowTrace) -> None:
        async with aiosqlite.connect(self._db_path) as db:
            await db.execute(
                "INSERT OR REPLACE INTO workflow_traces "
                "(trace_id, session_id, lane, status, query, created_at, total_duration_ms, "
                "retry_count, decision_path, node_executions) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    trace.trace_id,
                    trace.session_id,
                    trace.lane,
                    trace.status,
                    trace.query,
                    trace.created_at.isoformat(),
                    trace.total_duration_ms,
                    trace.retry_count,
                    json.dumps(trace.decision_path),
                    json.dumps([n.to_dict() for n in trace.node_executions], ensure_ascii=False, default=str),
                ),
            )
            await db.commit()

    async def get_trace(self, trace_id: str) -> WorkflowTrace | None:
        async with aiosqlite.connect(self._db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                "SELECT * FROM workflow_traces WHERE trace_id = ?", (trace_id,)
            ) as cursor:
                row = await cursor.fetchone()
                if row is None:
                    return None
                return self._row_to_trace(row)

    async def get_recent_traces(
        self, limit: int = 100, session_id: str | None = None
    ) -> list[WorkflowTrace]:
        query = "SELECT * FROM workflow_traces"
        params: tuple = ()
        if session_id:
            query += " WHERE session_id = ?"
            params = (session_id,)
        query += " ORDER BY created_at DESC LIMIT ?"
        async with aiosqlite.connect(self._db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(query, params + (limit,)) as cursor:
                rows = await cursor.fetchall()
                return [self._row_to_trace(row) for row in rows]

    @staticmethod
    def _row_to_trace(row: aiosqlite.Row) -> WorkflowTrace:
        return WorkflowTrace(
            trace_id=row["trace_id"],
            session_id=row["session_id"],
            lane=row["lane"],
            status=row["status"],
            query=row["query"],
            created_at=datetime.fromisoformat(row["created_at"]),
            total_duration_ms=row["total_duration_ms"],
            retry_count=row["retry_count"],
            decision_path=json.loads(row["decision_path"]),
            node_executions=[NodeExecution(**n) for n in json.loads(row["node_executions"])],
        )
