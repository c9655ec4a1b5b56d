from typing import Protocol, runtime_checkable

from chat_session_manager.models import Message, Session


@runtime_checkable
class ChatStore(Protocol):
    async def list_sessions(self, user_id: str) -> list[Session]:
        """Sessions owned by user_id, without their messages."""
        ...

    async def list_messages(self, session_id: str, user_id: str) -> list[Message]:
        """Messages of one session in append order."""
        ...

    async def insert_session(self, session: Session) -> None: ...

    async def update_session(self, session: Session) -> None: ...

    async def insert_message(self, message: Message) -> Message:
        """Insert a message; the returned copy carries any store-assigned fields."""
        ...

    async def delete_session_and_messages(self, session_id: str) -> None:
        """Delete a session and all of its messages as one transaction."""
        ...

    async def upsert_batch(self, prompt_message: Message, completion_message: Message, session: Session) -> None:
        """Write both messages and the session as one transaction."""
        ...
