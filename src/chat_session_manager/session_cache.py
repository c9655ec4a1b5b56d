from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

from loguru import logger

from chat_session_manager.errors import SessionNotFoundError
from chat_session_manager.models import Session


@dataclass
class _SessionLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    holders: int = 0


class SessionCache:
    """In-memory working set of sessions owned by one ChatService.

    Lookups that carry a user id match on both the session id and the owner;
    lookups without one are reserved for calls that were authorized upstream.

    A session that is held (see ``hold``) keeps its cached object across
    ``replace_all``, so work in progress is never written to a stale copy.
    """

    def __init__(self) -> None:
        self._sessions: list[Session] = []
        self._locks: dict[tuple[str, str], _SessionLock] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return any(s.id == session_id for s in self._sessions)

    @property
    def is_empty(self) -> bool:
        return not self._sessions

    def sessions(self) -> list[Session]:
        return list(self._sessions)

    def replace_all(self, user_id: str, sessions: list[Session]) -> list[Session]:
        dropped = sum(1 for s in self._sessions if s.user_id != user_id)
        if dropped:
            logger.debug(f"Cache reload for user {user_id} evicted {dropped} session(s) of other users")

        replaced: list[Session] = []
        for session in sessions:
            current = self.get(session.id, session.user_id) if self.is_held(session.id, session.user_id) else None
            if current is not None:
                logger.debug(f"Session {session.id} is busy; keeping its cached copy")
                replaced.append(current)
            else:
                replaced.append(session)
        self._sessions = replaced
        return self.sessions()

    def get(self, session_id: str, user_id: str | None = None) -> Session | None:
        index = self._index_of(session_id, user_id)
        return None if index < 0 else self._sessions[index]

    def find(self, session_id: str, user_id: str | None = None) -> Session:
        session = self.get(session_id, user_id)
        if session is None:
            raise SessionNotFoundError(session_id, user_id)
        return session

    def upsert(self, session: Session) -> None:
        index = self._index_of(session.id, None)
        if index < 0:
            self._sessions.append(session)
        else:
            self._sessions[index] = session

    def remove(self, session_id: str, user_id: str | None = None) -> Session:
        index = self._index_of(session_id, user_id)
        if index < 0:
            raise SessionNotFoundError(session_id, user_id)
        return self._sessions.pop(index)

    @asynccontextmanager
    async def hold(self, session_id: str, user_id: str) -> AsyncIterator[None]:
        """Serialize work on one session. The lock entry lives while anyone holds or waits for it."""
        key = (session_id, user_id)
        entry = self._locks.get(key)
        if entry is None:
            entry = self._locks[key] = _SessionLock()
        entry.holders += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.holders -= 1
            if entry.holders == 0:
                del self._locks[key]

    def is_held(self, session_id: str, user_id: str) -> bool:
        return (session_id, user_id) in self._locks

    def _index_of(self, session_id: str, user_id: str | None) -> int:
        for index, session in enumerate(self._sessions):
            if session.id != session_id:
                continue
            if user_id is None or session.user_id == user_id:
                return index
        return -1
