from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from loguru import logger

from chat_session_manager.errors import SessionNotFoundError
from chat_session_manager.models import (
    Message,
    Sender,
    Session,
    token_count_from_db,
    token_count_to_db,
    utc_now,
)

_UPSERT_MESSAGE = """
    INSERT INTO messages (id, session_id, user_id, seq, sender, tokens, text, created_at)
    VALUES (?, ?, ?, (SELECT COALESCE(MAX(seq), 0) + 1 FROM messages WHERE session_id = ?), ?, ?, ?, ?)
    ON CONFLICT(id) DO UPDATE SET
        tokens = excluded.tokens,
        text = excluded.text
"""


class SqliteChatStore:
    """Document store for sessions and messages backed by a local SQLite file."""

    def __init__(self, db_path: str):
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._db_path = db_path
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")
        self._initialize_schema()

    def close(self) -> None:
        self._conn.close()

    def execute(self, query: str, params: tuple[Any, ...] = ()) -> sqlite3.Cursor:
        return self._conn.execute(query, params)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        try:
            yield
        except BaseException:
            self._conn.rollback()
            raise
        else:
            self._conn.commit()

    async def list_sessions(self, user_id: str) -> list[Session]:
        rows = self._conn.execute(
            """
            SELECT id, user_id, name, model_id, tokens_used
            FROM sessions
            WHERE user_id = ?
            ORDER BY created_at ASC, rowid ASC
            """,
            (user_id,),
        ).fetchall()
        return [self._row_to_session(row) for row in rows]

    async def list_messages(self, session_id: str, user_id: str) -> list[Message]:
        rows = self._conn.execute(
            """
            SELECT id, session_id, user_id, sender, tokens, text, created_at
            FROM messages
            WHERE session_id = ? AND user_id = ?
            ORDER BY seq ASC
            """,
            (session_id, user_id),
        ).fetchall()
        return [self._row_to_message(row) for row in rows]

    async def insert_session(self, session: Session) -> None:
        now = utc_now()
        with self.transaction():
            self._conn.execute(
                """
                INSERT INTO sessions (id, user_id, name, model_id, tokens_used, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (session.id, session.user_id, session.name, session.model_id, session.tokens_used, now, now),
            )

    async def update_session(self, session: Session) -> None:
        with self.transaction():
            cursor = self._conn.execute(
                """
                UPDATE sessions
                SET name = ?, model_id = ?, tokens_used = ?, updated_at = ?
                WHERE id = ?
                """,
                (session.name, session.model_id, session.tokens_used, utc_now(), session.id),
            )
            if cursor.rowcount == 0:
                raise SessionNotFoundError(session.id)

    async def insert_message(self, message: Message) -> Message:
        with self.transaction():
            self._write_message(message)
            self._touch_session(message.session_id)
        return message

    async def delete_session_and_messages(self, session_id: str) -> None:
        with self.transaction():
            self._conn.execute("DELETE FROM messages WHERE session_id = ?", (session_id,))
            cursor = self._conn.execute("DELETE FROM sessions WHERE id = ?", (session_id,))
        logger.debug(f"Deleted session {session_id} from store (rows={cursor.rowcount})")

    async def upsert_batch(self, prompt_message: Message, completion_message: Message, session: Session) -> None:
        now = utc_now()
        with self.transaction():
            self._write_message(prompt_message)
            self._write_message(completion_message)
            self._conn.execute(
                """
                INSERT INTO sessions (id, user_id, name, model_id, tokens_used, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    model_id = excluded.model_id,
                    tokens_used = excluded.tokens_used,
                    updated_at = excluded.updated_at
                """,
                (session.id, session.user_id, session.name, session.model_id, session.tokens_used, now, now),
            )

    def _write_message(self, message: Message) -> None:
        self._conn.execute(
            _UPSERT_MESSAGE,
            (
                message.id,
                message.session_id,
                message.user_id,
                message.session_id,
                message.sender.value,
                token_count_to_db(message.tokens),
                message.text,
                message.timestamp,
            ),
        )

    def _touch_session(self, session_id: str) -> None:
        self._conn.execute(
            "UPDATE sessions SET updated_at = ? WHERE id = ?",
            (utc_now(), session_id),
        )

    def _row_to_session(self, row: sqlite3.Row) -> Session:
        return Session(
            id=row["id"],
            user_id=row["user_id"],
            name=row["name"],
            model_id=row["model_id"],
            tokens_used=int(row["tokens_used"]),
        )

    def _row_to_message(self, row: sqlite3.Row) -> Message:
        return Message(
            id=row["id"],
            session_id=row["session_id"],
            user_id=row["user_id"],
            sender=Sender(row["sender"]),
            tokens=token_count_from_db(row["tokens"]),
            text=row["text"],
            timestamp=row["created_at"],
        )

    def _initialize_schema(self) -> None:
        self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS sessions (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                name TEXT NOT NULL,
                model_id TEXT NOT NULL,
                tokens_used INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS messages (
                id TEXT PRIMARY KEY,
                session_id TEXT NOT NULL REFERENCES sessions(id) ON DELETE CASCADE,
                user_id TEXT NOT NULL,
                seq INTEGER NOT NULL,
                sender TEXT NOT NULL CHECK (sender IN ('User', 'Assistant')),
                tokens INTEGER NULL,
                text TEXT NOT NULL,
                created_at TEXT NOT NULL,
                UNIQUE(session_id, seq)
            );

            CREATE INDEX IF NOT EXISTS idx_sessions_user_created
                ON sessions(user_id, created_at);
            CREATE INDEX IF NOT EXISTS idx_messages_session_seq
                ON messages(session_id, seq);
            """
        )
        self._conn.commit()
