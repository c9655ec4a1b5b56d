from __future__ import annotations

from chat_session_manager.models import Message, Session
from chat_session_manager.provider import CompletionResult
from chat_session_manager.store import SqliteChatStore


class FakeProvider:
    def __init__(
        self,
        *,
        results: list[CompletionResult] | None = None,
        summary: str = "Summary",
        default_model: str = "test-model",
        max_conversation_tokens: int = 100,
    ) -> None:
        self._results = list(results or [])
        self._summary = summary
        self._default_model = default_model
        self._max_conversation_tokens = max_conversation_tokens
        self.chat_calls: list[tuple[str, str, str]] = []
        self.completion_calls: list[tuple[str, str, str]] = []
        self.summarize_calls: list[tuple[str, str]] = []
        self.error: Exception | None = None

    @property
    def default_model(self) -> str:
        return self._default_model

    @property
    def max_conversation_tokens(self) -> int:
        return self._max_conversation_tokens

    async def get_chat_completion(self, session_id: str, conversation: str, deployment_name: str = "") -> CompletionResult:
        self.chat_calls.append((session_id, conversation, deployment_name))
        return self._next_result()

    async def get_completion(self, session_id: str, prompt: str, deployment_name: str = "") -> CompletionResult:
        self.completion_calls.append((session_id, prompt, deployment_name))
        return self._next_result()

    async def summarize(self, session_id: str, prompt: str) -> str:
        self.summarize_calls.append((session_id, prompt))
        return self._summary

    def _next_result(self) -> CompletionResult:
        if self.error is not None:
            raise self.error
        if self._results:
            return self._results.pop(0)
        return CompletionResult("ok", 1, 1)


class RecordingStore(SqliteChatStore):
    """In-memory SQLite store that counts calls and can be told to fail writes."""

    def __init__(self) -> None:
        super().__init__(":memory:")
        self.calls: list[str] = []
        self.fail_batch = False
        self.fail_insert_message = False

    async def list_sessions(self, user_id: str) -> list[Session]:
        self.calls.append("list_sessions")
        return await super().list_sessions(user_id)

    async def list_messages(self, session_id: str, user_id: str) -> list[Message]:
        self.calls.append("list_messages")
        return await super().list_messages(session_id, user_id)

    async def insert_session(self, session: Session) -> None:
        self.calls.append("insert_session")
        await super().insert_session(session)

    async def update_session(self, session: Session) -> None:
        self.calls.append("update_session")
        await super().update_session(session)

    async def insert_message(self, message: Message) -> Message:
        self.calls.append("insert_message")
        if self.fail_insert_message:
            raise RuntimeError("insert_message failed")
        return await super().insert_message(message)

    async def delete_session_and_messages(self, session_id: str) -> None:
        self.calls.append("delete_session_and_messages")
        await super().delete_session_and_messages(session_id)

    async def upsert_batch(self, prompt_message: Message, completion_message: Message, session: Session) -> None:
        self.calls.append("upsert_batch")
        if self.fail_batch:
            raise RuntimeError("upsert_batch failed")
        await super().upsert_batch(prompt_message, completion_message, session)

    def count(self, name: str) -> int:
        return self.calls.count(name)
