from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from loguru import logger

from chat_session_manager.conversation import build_conversation
from chat_session_manager.errors import SessionNotFoundError, require_session_id
from chat_session_manager.logging_config import session_context
from chat_session_manager.models import Message, Resolved, Sender, Session
from chat_session_manager.provider import CompletionProvider, CompletionResult
from chat_session_manager.session_cache import SessionCache
from chat_session_manager.store import ChatStore


class ChatService:
    """Keeps a cached working set of chat sessions in step with the store and
    runs completions against a token-bounded window of each conversation.

    Every mutation of a session happens while holding that session's lock in
    the cache, so concurrent requests against one conversation are applied one
    after another. Store and provider errors are not caught here.
    """

    def __init__(
        self,
        store: ChatStore,
        provider: CompletionProvider,
        cache: SessionCache | None = None,
    ):
        self._store = store
        self._provider = provider
        self._cache = cache if cache is not None else SessionCache()
        self._max_conversation_tokens = provider.max_conversation_tokens

    @property
    def cache(self) -> SessionCache:
        return self._cache

    @property
    def default_model(self) -> str:
        return self._provider.default_model

    async def list_sessions(self, user_id: str) -> list[Session]:
        """Reload every session of user_id from the store into the cache."""
        sessions = await self._store.list_sessions(user_id)
        cached = self._cache.replace_all(user_id, sessions)
        logger.debug(f"Loaded {len(cached)} sessions for user {user_id}")
        return cached

    async def get_session_messages(self, session_id: str | None, user_id: str) -> list[Message]:
        """Messages to display for a session, read from the store on first use."""
        session_id = require_session_id(session_id)
        if self._cache.is_empty:
            return []

        session = await self._resolve_session(session_id, user_id)
        async with self._locked(session) as session:
            await self._ensure_messages_loaded(session)
        return list(session.messages)

    async def create_session(self, user_id: str) -> Session:
        session = Session(user_id=user_id, model_id=self._provider.default_model)
        session.messages_loaded = True
        self._cache.upsert(session)
        await self._store.insert_session(session)
        logger.info(f"Created session {session.id} for user {user_id}")
        return session

    async def rename_session(self, session_id: str | None, new_name: str, *, user_id: str | None = None) -> Session:
        session_id = require_session_id(session_id)
        session = self._cache.find(session_id, user_id)
        async with self._locked(session) as session:
            session.name = new_name
            await self._store.update_session(session)
        logger.info(f"Renamed session {session.id} to {new_name!r}")
        return session

    async def update_session_model(
        self,
        session_id: str | None,
        new_model_id: str,
        *,
        user_id: str | None = None,
    ) -> Session:
        session_id = require_session_id(session_id)
        session = self._cache.find(session_id, user_id)
        async with self._locked(session) as session:
            session.model_id = new_model_id
            await self._store.update_session(session)
        logger.info(f"Session {session.id} now uses model {new_model_id}")
        return session

    async def delete_session(self, session_id: str | None, *, user_id: str | None = None) -> None:
        session_id = require_session_id(session_id)
        session = self._cache.find(session_id, user_id)
        async with self._locked(session) as session:
            # The cache entry outlives the stored row until the delete has committed.
            await self._store.delete_session_and_messages(session.id)
            self._cache.remove(session.id, session.user_id)
        logger.info(f"Deleted session {session.id}")

    async def get_chat_completion(
        self,
        session_id: str | None,
        user_id: str,
        prompt: str,
        deployment_name: str = "",
    ) -> str:
        """Complete prompt in the context of the session's recent conversation."""
        session_id = require_session_id(session_id)
        return await self._complete(session_id, user_id, prompt, deployment_name, with_history=True)

    async def get_completion(
        self,
        session_id: str | None,
        user_id: str,
        prompt: str,
        deployment_name: str = "",
    ) -> str:
        """Complete prompt on its own, ignoring earlier turns of the session."""
        session_id = require_session_id(session_id)
        return await self._complete(session_id, user_id, prompt, deployment_name, with_history=False)

    async def summarize_session_name(self, session_id: str | None, prompt: str) -> str:
        """Rename a session to a short label the provider derives from prompt."""
        session_id = require_session_id(session_id)
        self._cache.find(session_id)
        summary = await self._provider.summarize(session_id, prompt)
        await self.rename_session(session_id, summary)
        return summary

    async def _complete(
        self,
        session_id: str,
        user_id: str,
        prompt: str,
        deployment_name: str,
        *,
        with_history: bool,
    ) -> str:
        session = await self._resolve_session(session_id, user_id)
        async with self._locked(session) as session:
            await self._ensure_messages_loaded(session)
            prompt_message = await self._add_prompt_message(session, prompt)

            deployment = deployment_name or session.model_id
            if with_history:
                conversation = build_conversation(session.messages, self._max_conversation_tokens)
                result = await self._provider.get_chat_completion(session.id, conversation, deployment)
            else:
                result = await self._provider.get_completion(session.id, prompt, deployment)

            await self._add_prompt_completion_messages(session, prompt_message, result)
        return result.text

    @asynccontextmanager
    async def _locked(self, session: Session) -> AsyncIterator[Session]:
        """Hold the session and yield its current cached object.

        Raises SessionNotFoundError if the session left the cache while this
        call was waiting, e.g. behind a delete.
        """
        async with self._cache.hold(session.id, session.user_id):
            current = self._cache.find(session.id, session.user_id)
            with session_context(current.id, current.user_id):
                yield current

    async def _resolve_session(self, session_id: str, user_id: str | None) -> Session:
        session = self._cache.get(session_id, user_id)
        if session is not None:
            return session
        if user_id is None:
            raise SessionNotFoundError(session_id)

        logger.debug(f"Session {session_id} not cached; reloading sessions for user {user_id}")
        await self.list_sessions(user_id)
        return self._cache.find(session_id, user_id)

    async def _ensure_messages_loaded(self, session: Session) -> None:
        if session.messages_loaded:
            return
        if not session.messages:
            session.messages = await self._store.list_messages(session.id, session.user_id)
            logger.debug(f"Loaded {len(session.messages)} messages for session {session.id}")
        session.messages_loaded = True

    async def _add_prompt_message(self, session: Session, prompt: str) -> Message:
        message = Message(session_id=session.id, user_id=session.user_id, sender=Sender.USER, text=prompt)
        session.add_message(message)
        try:
            stored = await self._store.insert_message(message)
        except Exception:
            session.messages.remove(message)
            raise
        if stored != message:
            session.update_message(stored)
        return stored

    async def _add_prompt_completion_messages(
        self,
        session: Session,
        prompt_message: Message,
        result: CompletionResult,
    ) -> None:
        completion_message = Message(
            session_id=session.id,
            user_id=session.user_id,
            sender=Sender.ASSISTANT,
            text=result.text,
            tokens=Resolved(result.response_tokens),
        )
        session.add_message(completion_message)

        updated_prompt = prompt_message.with_tokens(result.prompt_tokens)
        session.update_message(updated_prompt)

        session.tokens_used += result.prompt_tokens + result.response_tokens

        try:
            await asyncio.shield(self._store.upsert_batch(updated_prompt, completion_message, session))
        except Exception as ex:
            logger.warning(
                f"Persisting completion for session {session.id} failed: {ex}. "
                "Cache is ahead of the store until the next reload."
            )
            raise
        logger.debug(
            f"Session {session.id}: prompt_tokens={result.prompt_tokens}, "
            f"response_tokens={result.response_tokens}, tokens_used={session.tokens_used}"
        )
