"""Idempotent database schema creation."""

from __future__ import annotations

import aiosqlite

SESSIONS_TABLE = """
CREATE TABLE IF NOT EXISTS sessions (
    session_id TEXT PRIMARY KEY,
    user_id TEXT,
    created_at TEXT NOT NULL,
    last_active_at TEXT NOT NULL,
    summary TEXT,
    metadata TEXT NOT NULL DEFAULT '{}',
    messages TEXT NOT NULL DEFAULT '[]'
)
"""

SESSIONS_ACTIVE_INDEX = """
CREATE INDEX IF NOT EXISTS idx_sessions_last_active ON sessions(last_active_at)
"""

TRACES_TABLE = """
CREATE TABLE IF NOT EXISTS workflow_traces (
    trace_id TEXT PRIMARY KEY,
    session_id TEXT,
    lane INTEGER NOT NULL,
    status TEXT NOT NULL,
    query TEXT NOT NULL,
    created_at TEXT NOT NULL,
    total_duration_ms REAL NOT NULL,
    retry_count INTEGER NOT NULL,
    decision_path TEXT NOT NULL DEFAULT '[]',
    node_executions TEXT NOT NULL DEFAULT '[]'
)
"""

TRACES_CREATED_INDEX = """
CREATE INDEX IF NOT EXISTS idx_workflow_traces_created ON workflow_traces(created_at)
"""

TRACES_SESSION_INDEX = """
CREATE INDEX IF NOT EXISTS idx_workflow_traces_session ON workflow_traces(session_id)
"""


async def initialize_session_db(db_path: str) -> None:
    async with aiosqlite.connect(db_path) as db:
        await db.execute(SESSIONS_TABLE)
        await db.execute(SESSIONS_ACTIVE_INDEX)
        await db.commit()


async def initialize_trace_db(db_path: str) -> None:
    async with aiosqlite.connect(db_path) as db:
        await db.execute(TRACES_TABLE)
        await db.execute(TRACES_CREATED_INDEX)
        await db.execute(TRACES_SESSION_INDEX)
        await db.commit()
