"""
SQLite storage for conversations.
This is the source of truth - one row per conversation, the full record
stored as JSON next to an indexed updated_at column for ordering.
Single portable file. Every operation is a suspension point: blocking
sqlite calls run in a worker thread on one shared connection.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path

from chatbench.models import Conversation

logger = logging.getLogger(__name__)

CREATE_TABLES = """
CREATE TABLE IF NOT EXISTS conversations (
    id TEXT PRIMARY KEY,
    updated_at INTEGER NOT NULL,
    record TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_conversations_updated_at
    ON conversations(updated_at);
"""


class StorageError(Exception):
    """A local persistence operation failed. The cause is chained."""


class ConversationStore:
    """Lazily-opened SQLite conversation store."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._conn: sqlite3.Connection | None = None
        self._init_lock = asyncio.Lock()
        self._io_lock = threading.Lock()

    async def init(self):
        """Open the database once. Concurrent callers share the same connection."""
        if self._conn is not None:
            return
        async with self._init_lock:
            if self._conn is not None:
                return
            try:
                self._conn = await asyncio.to_thread(self._open)
            except (sqlite3.Error, OSError) as e:
                raise StorageError(f"Failed to open {self.db_path}: {e}") from e

    def _open(self) -> sqlite3.Connection:
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.executescript(CREATE_TABLES)
        logger.info("SQLite store initialized at %s", self.db_path)
        return conn

    @contextmanager
    def _transaction(self):
        with self._io_lock:
            try:
                yield self._conn
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                raise

    async def _run(self, fn, *args):
        await self.init()
        try:
            return await asyncio.to_thread(fn, *args)
        except (sqlite3.Error, ValueError, KeyError) as e:
            raise StorageError(f"{fn.__name__.lstrip('_')} failed: {e}") from e

    # ── Public API ─────────────────────────────────────────────────────────

    async def upsert(self, conversation: Conversation):
        """Insert or fully replace the record for conversation.id."""
        await self._run(self._upsert, conversation)

    async def get(self, conversation_id: str) -> Conversation | None:
        """Point lookup. Returns None when absent."""
        return await self._run(self._get, conversation_id)

    async def list_all(self) -> list[Conversation]:
        """Every conversation, most recently updated first."""
        return await self._run(self._list_all)

    async def delete(self, conversation_id: str):
        """Remove a conversation. Deleting an absent id does nothing."""
        await self._run(self._delete, conversation_id)

    async def count(self) -> int:
        return await self._run(self._count)

    async def close(self):
        if self._conn is None:
            return
        conn, self._conn = self._conn, None
        await asyncio.to_thread(conn.close)

    # ── Blocking helpers (worker thread) ───────────────────────────────────

    def _upsert(self, conversation: Conversation):
        record = json.dumps(conversation.to_dict(), ensure_ascii=False)
        with self._transaction() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO conversations (id, updated_at, record) VALUES (?, ?, ?)",
                (conversation.id, conversation.updated_at, record),
            )
        logger.debug(
            "Stored conversation %s (%d messages)", conversation.id, len(conversation.messages)
        )

    def _get(self, conversation_id: str) -> Conversation | None:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT record FROM conversations WHERE id = ?",
                (conversation_id,),
            ).fetchone()
        if not row:
            return None
        return Conversation.from_dict(json.loads(row["record"]))

    def _list_all(self) -> list[Conversation]:
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT record FROM conversations ORDER BY updated_at DESC"
            ).fetchall()
        return [Conversation.from_dict(json.loads(r["record"])) for r in rows]

    def _delete(self, conversation_id: str):
        with self._transaction() as conn:
            cur = conn.execute("DELETE FROM conversations WHERE id = ?", (conversation_id,))
        if cur.rowcount:
            logger.debug("Deleted conversation %s", conversation_id)

    def _count(self) -> int:
        with self._transaction() as conn:
            return conn.execute("SELECT COUNT(*) FROM conversations").fetchone()[0]
