from __future__ import annotations


class ChatSessionError(Exception):
    """Base class for errors raised by the chat session manager."""


class InvalidArgumentError(ChatSessionError, ValueError):
    pass


class SessionNotFoundError(ChatSessionError, LookupError):
    def __init__(self, session_id: str, user_id: str | None = None):
        self.session_id = session_id
        self.user_id = user_id
        if user_id is None:
            message = f"Session does not exist: {session_id}"
        else:
            message = f"Session does not exist: {session_id} (user {user_id})"
        super().__init__(message)


def require_session_id(session_id: str | None) -> str:
    if not session_id:
        raise InvalidArgumentError("session_id is required")
    return session_id
