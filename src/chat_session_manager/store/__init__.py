from chat_session_manager.store.base import ChatStore
from chat_session_manager.store.sqlite_store import SqliteChatStore

__all__ = [
    "ChatStore",
    "SqliteChatStore",
]
