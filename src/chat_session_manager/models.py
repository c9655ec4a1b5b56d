from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4

DEFAULT_SESSION_NAME = "New Chat"


def utc_now() -> str:
    return datetime.now(UTC).isoformat(timespec="seconds")


def new_id() -> str:
    return str(uuid4())


class Sender(str, Enum):
    USER = "User"
    ASSISTANT = "Assistant"


@dataclass(frozen=True)
class Pending:
    """Token count not yet reported by the completion provider."""

    def __str__(self) -> str:
        return "pending"


@dataclass(frozen=True)
class Resolved:
    count: int

    def __post_init__(self) -> None:
        if self.count < 0:
            raise ValueError(f"Token count must be non-negative: {self.count}")

    def __str__(self) -> str:
        return str(self.count)


TokenCount = Pending | Resolved

PENDING = Pending()


def token_count_from_db(value: int | None) -> TokenCount:
    return PENDING if value is None else Resolved(int(value))


def token_count_to_db(tokens: TokenCount) -> int | None:
    return tokens.count if isinstance(tokens, Resolved) else None


@dataclass(frozen=True)
class Message:
    session_id: str
    user_id: str
    sender: Sender
    text: str
    tokens: TokenCount = PENDING
    id: str = field(default_factory=new_id)
    timestamp: str = field(default_factory=utc_now)

    @property
    def is_pending(self) -> bool:
        return isinstance(self.tokens, Pending)

    @property
    def token_cost(self) -> int:
        # Pending messages cost nothing when budgeting a conversation window.
        return self.tokens.count if isinstance(self.tokens, Resolved) else 0

    def with_tokens(self, count: int) -> Message:
        if isinstance(self.tokens, Resolved) and self.tokens.count != count:
            raise ValueError(
                f"Message {self.id} already resolved to {self.tokens.count} tokens"
            )
        return replace(self, tokens=Resolved(count))


@dataclass
class Session:
    user_id: str
    model_id: str
    name: str = DEFAULT_SESSION_NAME
    tokens_used: int = 0
    id: str = field(default_factory=new_id)
    messages: list[Message] = field(default_factory=list)
    # Whether `messages` reflects the store; never persisted.
    messages_loaded: bool = field(default=False, compare=False)

    def add_message(self, message: Message) -> None:
        self.messages.append(message)

    def update_message(self, message: Message) -> None:
        for index, existing in enumerate(self.messages):
            if existing.id == message.id:
                self.messages[index] = message
                return
        raise ValueError(f"Message {message.id} is not part of session {self.id}")

    def resolved_token_total(self) -> int:
        return sum(m.token_cost for m in self.messages)


@dataclass(frozen=True)
class ModelOption:
    """A completion deployment a session can be switched to."""

    deployment_id: str
    name: str
