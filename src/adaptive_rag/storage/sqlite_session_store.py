"""SQLite-backed conversation session store."""

from __future__ import annotations

import json
from datetime import datetime

import aiosqlite

from adaptive_rag.models.domain import ChatMessage, SessionMetadata, SessionState
from adaptive_rag.storage.migrations import initialize_session_db


class SQLiteSessionStore:
    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    async def initialize(self) -> None:
        await initialize_session_db(self._db_path)

    async def save_session(self, state: SessionState) -> None:
        async with aiosqlite.connect(self._db_path) as db:
            await db.execute(
                "INSERT OR REPLACE INTO sessions "
                "(session_id, user_id, created_at, last_active_at, summary, metadata, messages) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    state.session_id,
                    state.user_id,
                    state.created_at.isoformat(),
                    state.metadata.last_active_at.isoformat(),
                    state.summary,
                    json.dumps(state.metadata.to_dict()),
                    json.dumps([m.to_dict() for m in state.messages], ensure_ascii=False),
                ),
            )
            await db.commit()

    async def get_session(self, session_id: str) -> SessionState | None:
        async with aiosqlite.connect(self._db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                "SELECT * FROM sessions WHERE session_id = ?", (session_id,)
            ) as cursor:
                row = await cursor.fetchone()
                if row is None:
                    return None
                return self._row_to_session(row)

    async def list_sessions(self, limit: int = 100) -> list[SessionState]:
        async with aiosqlite.connect(self._db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                "SELECT * FROM sessions ORDER BY last_active_at DESC LIMIT ?", (limit,)
            ) as cursor:
                rows = await cursor.fetchall()
                return [self._row_to_session(row) for row in rows]

    async def delete_session(self, session_id: str) -> bool:
        async with aiosqlite.connect(self._db_path) as db:
            cursor = await db.execute("DELETE FROM sessions WHERE session_id = ?", (session_id,))
            await db.commit()
            return cursor.rowcount > 0

    async def count_sessions(self) -> int:
        async with aiosqlite.connect(self._db_path) as db:
            async with db.execute("SELECT COUNT(*) FROM sessions") as cursor:
                row = await cursor.fetchone()
                return row[0] if row else 0

    @staticmethod
    def _row_to_session(row: aiosqlite.Row) -> SessionState:
        meta = json.loads(row["metadata"])
        return SessionState(
            session_id=row["session_id"],
            user_id=row["user_id"],
            created_at=datetime.fromisoformat(row["created_at"]),
            summary=row["summary"],
            messages=[ChatMessage.from_dict(m) for m in json.loads(row["messages"])],
            metadata=SessionMetadata(
                message_count=meta["message_count"],
                total_tokens=meta["total_tokens"],
                truncated_count=meta["truncated_count"],
                summarized_rounds=meta["summarized_rounds"],
                last_active_at=datetime.fromisoformat(meta["last_active_at"]),
            ),
        )
