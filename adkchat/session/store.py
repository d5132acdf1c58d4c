"""
SQLite-backed transcript store.

Uses ``aiosqlite`` for async database access with a write lock to serialise
mutations (SQLite only supports one writer at a time in WAL mode).

Schema is version-tracked via a ``schema_version`` table.  Migrations are
applied automatically on ``init()``.

Only closed messages are stored; an open message is still owned by the
accumulator and may grow.
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime
from pathlib import Path

import aiosqlite

from adkchat.types import Message, SessionInfo

# ---------------------------------------------------------------------------
# Schema management
# ---------------------------------------------------------------------------

SCHEMA_VERSION = 1

MIGRATIONS: dict[int, list[str]] = {
    1: [
        """CREATE TABLE IF NOT EXISTS schema_version (
            version INTEGER NOT NULL
        )""",
        """CREATE TABLE IF NOT EXISTS sessions (
            session_id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            app_name TEXT NOT NULL,
            created_at TEXT NOT NULL
        )""",
        """CREATE TABLE IF NOT EXISTS messages (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            session_id TEXT NOT NULL,
            message_id TEXT NOT NULL UNIQUE,
            role TEXT NOT NULL,
            created_at TEXT NOT NULL,
            payload TEXT NOT NULL,
            FOREIGN KEY (session_id) REFERENCES sessions(session_id) ON DELETE CASCADE
        )""",
        """CREATE INDEX IF NOT EXISTS idx_messages_session ON messages(session_id)""",
    ],
}


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class TranscriptStore:
    """
    Async SQLite store for sessions and their transcripts.

    Usage::

        store = TranscriptStore("~/.adkchat/history.db")
        await store.init()
        await store.save_session(info)
        await store.append_message(info.session_id, message)
        messages = await store.get_messages(info.session_id)
        await store.close()
    """

    def __init__(self, db_path: str) -> None:
        self.db_path = Path(db_path).expanduser().resolve()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._write_lock = asyncio.Lock()
        self._db: aiosqlite.Connection | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def init(self) -> None:
        """Open the database and ensure the schema is up to date."""
        self._db = await aiosqlite.connect(str(self.db_path))
        await self._db.execute("PRAGMA journal_mode=WAL")
        await self._db.execute("PRAGMA foreign_keys=ON")
        await self._run_migrations()

    async def close(self) -> None:
        """Close the database connection."""
        if self._db is not None:
            await self._db.close()
            self._db = None

    # ------------------------------------------------------------------
    # Migration runner
    # ------------------------------------------------------------------

    async def _get_schema_version(self) -> int:
        """Return the current schema version, or 0 if not initialised."""
        assert self._db is not None
        cursor = await self._db.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name='schema_version'"
        )
        row = await cursor.fetchone()
        if row is None:
            return 0
        cursor = await self._db.execute("SELECT version FROM schema_version LIMIT 1")
        row = await cursor.fetchone()
        if row is None:
            return 0
        return int(row[0])

    async def _set_schema_version(self, version: int) -> None:
        assert self._db is not None
        cursor = await self._db.execute("SELECT COUNT(*) FROM schema_version")
        row = await cursor.fetchone()
        assert row is not None
        if row[0] == 0:
            await self._db.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )
        else:
            await self._db.execute(
                "UPDATE schema_version SET version = ?", (version,)
            )

    async def _run_migrations(self) -> None:
        """Apply any pending migrations sequentially."""
        assert self._db is not None
        current = await self._get_schema_version()
        if current >= SCHEMA_VERSION:
            return

        for version in range(current + 1, SCHEMA_VERSION + 1):
            stmts = MIGRATIONS.get(version)
            if stmts is None:
                raise RuntimeError(
                    f"Missing migration for schema version {version}"
                )
            for stmt in stmts:
                await self._db.execute(stmt)
            await self._set_schema_version(version)

        await self._db.commit()

    async def get_schema_version(self) -> int:
        """Public accessor for the current schema version."""
        return await self._get_schema_version()

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def save_session(self, session: SessionInfo) -> None:
        """Insert a session descriptor, updating it if it already exists."""
        assert self._db is not None
        async with self._write_lock:
            await self._db.execute(
                """INSERT INTO sessions (session_id, user_id, app_name, created_at)
                   VALUES (?, ?, ?, ?)
                   ON CONFLICT(session_id) DO UPDATE SET
                       user_id = excluded.user_id,
                       app_name = excluded.app_name""",
                (
                    session.session_id,
                    session.user_id,
                    session.app_name,
                    session.created_at.isoformat(),
                ),
            )
            await self._db.commit()

    async def get_session(self, session_id: str) -> SessionInfo | None:
        assert self._db is not None
        cursor = await self._db.execute(
            """SELECT session_id, user_id, app_name, created_at
               FROM sessions WHERE session_id = ?""",
            (session_id,),
        )
        row = await cursor.fetchone()
        return _row_to_session(row) if row is not None else None

    async def latest_session(self) -> SessionInfo | None:
        """Return the most recently created session, if any."""
        sessions = await self.list_sessions()
        return sessions[0] if sessions else None

    async def list_sessions(self) -> list[SessionInfo]:
        """Return all sessions ordered by creation time (newest first)."""
        assert self._db is not None
        cursor = await self._db.execute(
            """SELECT session_id, user_id, app_name, created_at
               FROM sessions ORDER BY created_at DESC"""
        )
        rows = await cursor.fetchall()
        return [_row_to_session(row) for row in rows]

    async def delete_session(self, session_id: str) -> None:
        """Delete a session and its transcript."""
        assert self._db is not None
        async with self._write_lock:
            await self._db.execute(
                "DELETE FROM messages WHERE session_id = ?", (session_id,)
            )
            await self._db.execute(
                "DELETE FROM sessions WHERE session_id = ?", (session_id,)
            )
            await self._db.commit()

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def append_message(self, session_id: str, message: Message) -> None:
        """
        Persist a closed message at the end of the session's transcript.

        Raises ``ValueError`` for an open message.
        """
        assert self._db is not None
        if message.is_open:
            raise ValueError(f"Refusing to store open message {message.id}")

        async with self._write_lock:
            await self._db.execute(
                """INSERT INTO messages
                   (session_id, message_id, role, created_at, payload)
                   VALUES (?, ?, ?, ?, ?)""",
                (
                    session_id,
                    message.id,
                    message.role.value,
                    message.created_at.isoformat(),
                    json.dumps(message.to_dict()),
                ),
            )
            await self._db.commit()

    async def get_messages(self, session_id: str) -> list[Message]:
        """Return the session's transcript in append order."""
        assert self._db is not None
        cursor = await self._db.execute(
            "SELECT payload FROM messages WHERE session_id = ? ORDER BY id ASC",
            (session_id,),
        )
        rows = await cursor.fetchall()
        return [Message.from_dict(json.loads(row[0])) for row in rows]

    async def clear_messages(self, session_id: str) -> None:
        assert self._db is not None
        async with self._write_lock:
            await self._db.execute(
                "DELETE FROM messages WHERE session_id = ?", (session_id,)
            )
            await self._db.commit()


def _row_to_session(row: tuple) -> SessionInfo:
    return SessionInfo(
        session_id=row[0],
        user_id=row[1],
        app_name=row[2],
        created_at=datetime.fromisoformat(row[3]),
    )
