from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from chat_session_manager.app_config import AppConfig, RuntimeEnv
from chat_session_manager.chat_service import ChatService
from chat_session_manager.logging_config import setup_logging
from chat_session_manager.provider import create_provider
from chat_session_manager.store import SqliteChatStore


@dataclass
class AppRuntime:
    chat_service: ChatService
    store: SqliteChatStore
    log_descriptions: list[str]


async def bootstrap_runtime(app: AppConfig, env: RuntimeEnv) -> AppRuntime:
    log_descriptions = setup_logging(level=app.log_level, consumers=app.log_consumers)

    db_path = Path(app.store_db_path)
    if not db_path.is_absolute():
        db_path = Path.cwd() / db_path
    store = SqliteChatStore(str(db_path))

    chat_service = ChatService(store, create_provider(app, env))

    return AppRuntime(
        chat_service=chat_service,
        store=store,
        log_descriptions=log_descriptions,
    )
