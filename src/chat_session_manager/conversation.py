from __future__ import annotations

from collections.abc import Sequence

from loguru import logger

from chat_session_manager.models import Message

CONVERSATION_SEPARATOR = "\n"


def select_window(messages: Sequence[Message], max_tokens: int) -> list[Message]:
    """Return the most recent messages whose token costs fit within max_tokens.

    Walks newest to oldest and stops at the first message that would push the
    running total above the budget. Pending messages cost nothing. The result
    is in chronological order.
    """
    window: list[Message] = []
    tokens_used = 0
    for message in reversed(messages):
        if tokens_used + message.token_cost > max_tokens:
            break
        tokens_used += message.token_cost
        window.append(message)

    window.reverse()
    if len(window) < len(messages):
        logger.debug(
            f"Conversation window kept {len(window)}/{len(messages)} messages "
            f"(~{tokens_used:,} of {max_tokens:,} tokens)"
        )
    return window


def build_conversation(messages: Sequence[Message], max_tokens: int) -> str:
    return CONVERSATION_SEPARATOR.join(m.text for m in select_window(messages, max_tokens))
