from __future__ import annotations

from collections.abc import Awaitable, Callable


class CommandRouter:
    def __init__(
        self,
        *,
        on_help: Callable[[], Awaitable[None]],
        on_sessions: Callable[[], Awaitable[None]],
        on_new: Callable[[], Awaitable[None]],
        on_open: Callable[[str], Awaitable[None]],
        on_rename: Callable[[str], Awaitable[None]],
        on_model: Callable[[str], Awaitable[None]],
        on_history: Callable[[], Awaitable[None]],
        on_delete: Callable[[], Awaitable[None]],
        on_unknown: Callable[[str], None],
    ) -> None:
        self._on_help = on_help
        self._on_sessions = on_sessions
        self._on_new = on_new
        self._on_open = on_open
        self._on_rename = on_rename
        self._on_model = on_model
        self._on_history = on_history
        self._on_delete = on_delete
        self._on_unknown = on_unknown

    async def try_handle(self, user_message: str) -> bool:
        trimmed = user_message.strip()
        if not trimmed.startswith("/"):
            return False

        command, _, argument = trimmed.partition(" ")
        argument = argument.strip()

        if command == "/help":
            await self._on_help()
        elif command == "/sessions":
            await self._on_sessions()
        elif command == "/new":
            await self._on_new()
        elif command == "/open":
            await self._on_open(argument)
        elif command == "/rename":
            await self._on_rename(argument)
        elif command == "/model":
            await self._on_model(argument)
        elif command == "/history":
            await self._on_history()
        elif command == "/delete":
            await self._on_delete()
        else:
            self._on_unknown(trimmed)
        return True
