from __future__ import annotations

from loguru import logger

from chat_session_manager.chat_service import ChatService
from chat_session_manager.commands.router import CommandRouter
from chat_session_manager.errors import ChatSessionError
from chat_session_manager.models import DEFAULT_SESSION_NAME, ModelOption, Session
from chat_session_manager.services.session_controller import SessionController


class ChatConsole:
    """Line-oriented front end that drives a ChatService for one user."""

    _LINE_PREFIX = "assistant> "

    def __init__(self, chat_service: ChatService, *, user_id: str, models: list[ModelOption] | None = None):
        self._chat_service = chat_service
        self._user_id = user_id
        self._models = models or []
        self._active_session_id: str | None = None
        self._session_controller = SessionController(line_prefix=self._LINE_PREFIX)
        self._command_router = CommandRouter(
            on_help=self._on_help,
            on_sessions=self._on_sessions,
            on_new=self._on_new,
            on_open=self._on_open,
            on_rename=self._on_rename,
            on_model=self._on_model,
            on_history=self._on_history,
            on_delete=self._on_delete,
            on_unknown=self._on_unknown_command,
        )

    @property
    def active_session_id(self) -> str | None:
        return self._active_session_id

    async def initialize(self) -> None:
        """Load the user's sessions and open the most recent one, creating one if none exist."""
        sessions = await self._chat_service.list_sessions(self._user_id)
        if sessions:
            self._active_session_id = sessions[-1].id
        else:
            self._active_session_id = (await self._chat_service.create_session(self._user_id)).id
        logger.info(f"Console started for user {self._user_id} with {len(sessions)} stored session(s)")

    async def run(self, user_input: str) -> None:
        try:
            if await self._command_router.try_handle(user_input):
                return
            await self._send_prompt(user_input)
        except ChatSessionError as ex:
            print(f"{self._LINE_PREFIX}{ex}")

    async def _send_prompt(self, prompt: str) -> None:
        if self._active_session_id is None:
            self._active_session_id = (await self._chat_service.create_session(self._user_id)).id

        session_id = self._active_session_id
        response = await self._chat_service.get_chat_completion(session_id, self._user_id, prompt)
        print(f"{self._LINE_PREFIX}{response}")

        session = self._current_session()
        if session is not None and session.name == DEFAULT_SESSION_NAME:
            name = await self._chat_service.summarize_session_name(session_id, prompt)
            logger.debug(f"Session {session_id} named {name!r}")

    def _current_session(self) -> Session | None:
        if self._active_session_id is None:
            return None
        return self._chat_service.cache.get(self._active_session_id, self._user_id)

    async def _on_help(self) -> None:
        print(f"{self._LINE_PREFIX}Available commands:")
        print(f"{self._LINE_PREFIX}- /help")
        print(f"{self._LINE_PREFIX}- /sessions")
        print(f"{self._LINE_PREFIX}- /new")
        print(f"{self._LINE_PREFIX}- /open <id-or-name>")
        print(f"{self._LINE_PREFIX}- /rename <name>")
        print(f"{self._LINE_PREFIX}- /model [deployment]")
        print(f"{self._LINE_PREFIX}- /history")
        print(f"{self._LINE_PREFIX}- /delete")

    def _on_unknown_command(self, trimmed: str) -> None:
        print(f"{self._LINE_PREFIX}Unknown command: {trimmed}")

    async def _on_sessions(self) -> None:
        sessions = await self._chat_service.list_sessions(self._user_id)
        if not sessions:
            print(f"{self._LINE_PREFIX}No sessions found.")
            return
        print(f"{self._LINE_PREFIX}Sessions:")
        for s in sessions:
            print(self._session_controller.format_session_list_entry(s, active_session_id=self._active_session_id))

    async def _on_new(self) -> None:
        session = await self._chat_service.create_session(self._user_id)
        self._active_session_id = session.id
        print(f"{self._LINE_PREFIX}Started new session [{self._session_controller.short_id(session.id)}]")

    async def _on_open(self, target: str) -> None:
        if not target:
            print(f"{self._LINE_PREFIX}Usage: /open <id-or-name>")
            return
        try:
            session = self._session_controller.resolve_session(self._chat_service.cache.sessions(), target)
        except ValueError as ex:
            print(f"{self._LINE_PREFIX}{ex}")
            return
        if session is None:
            print(f"{self._LINE_PREFIX}Session not found: {target}")
            return
        self._active_session_id = session.id
        messages = await self._chat_service.get_session_messages(session.id, self._user_id)
        print(
            f"{self._LINE_PREFIX}Opened {session.name} "
            f"[{self._session_controller.short_id(session.id)}] ({len(messages)} messages)"
        )

    async def _on_rename(self, name: str) -> None:
        if not name:
            print(f"{self._LINE_PREFIX}Usage: /rename <name>")
            return
        await self._chat_service.rename_session(self._active_session_id, name, user_id=self._user_id)
        print(f"{self._LINE_PREFIX}Session renamed: {name}")

    async def _on_model(self, deployment_id: str) -> None:
        session = self._current_session()
        active_model = session.model_id if session else self._chat_service.default_model
        if not deployment_id:
            for line in self._session_controller.format_model_list_lines(self._models, active_model_id=active_model):
                print(line)
            return
        if self._models and not any(m.deployment_id == deployment_id for m in self._models):
            print(f"{self._LINE_PREFIX}Unknown model: {deployment_id}")
            return
        await self._chat_service.update_session_model(self._active_session_id, deployment_id, user_id=self._user_id)
        print(f"{self._LINE_PREFIX}Session model: {deployment_id}")

    async def _on_history(self) -> None:
        messages = await self._chat_service.get_session_messages(self._active_session_id, self._user_id)
        if not messages:
            print(f"{self._LINE_PREFIX}No messages yet.")
            return
        for message in messages:
            print(self._session_controller.format_history_line(message))

    async def _on_delete(self) -> None:
        session_id = self._active_session_id
        await self._chat_service.delete_session(session_id, user_id=self._user_id)
        self._active_session_id = None
        print(f"{self._LINE_PREFIX}Deleted session [{self._session_controller.short_id(session_id or '')}]")
