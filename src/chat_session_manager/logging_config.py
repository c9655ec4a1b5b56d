"""Loguru sinks for the chat session manager.

Records emitted while a session is being worked on carry its session and
user ids as ``extra`` fields (see ``session_context``). Both sink formats
print them, with ``-`` outside of any session.
"""

import sys
from contextlib import AbstractContextManager
from pathlib import Path
from typing import Any

from loguru import logger

_NO_CONTEXT = "-"

CONSOLE_FORMAT = (
    "<level>{level:<8}</level> | <magenta>session={extra[session]}</magenta> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | user={extra[user]} session={extra[session]} | "
    "{name}:{function}:{line} - {message}"
)


def session_context(session_id: str, user_id: str) -> AbstractContextManager:
    """Tag every record logged inside the block with the session and its owner."""
    return logger.contextualize(session=session_id, user=user_id)


class ConsoleSink:
    def __init__(self, level: str):
        self.level = level

    def add(self) -> None:
        logger.add(sys.stderr, level=self.level, format=CONSOLE_FORMAT)

    def describe(self) -> str:
        return f"console (stderr, {self.level})"


class FileSink:
    def __init__(self, level: str, path: str = ".chat_sessions/chat.log", rotation: str = "10 MB", retention: int = 3):
        self.level = level
        self.path = path
        self.rotation = rotation
        self.retention = retention

    def add(self) -> None:
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            self.path,
            level=self.level,
            format=FILE_FORMAT,
            rotation=self.rotation,
            retention=self.retention,
        )

    def describe(self) -> str:
        return f"file ({self.path}, {self.level})"


_SINK_TYPES: dict[str, type] = {
    "console": ConsoleSink,
    "file": FileSink,
}

# Console output is limited to warnings so it does not interleave with chat replies.
_DEFAULT_CONSUMERS = [
    {"type": "console", "level": "WARNING"},
    {"type": "file"},
]


def setup_logging(
    level: str = "INFO",
    consumers: list[dict[str, Any]] | None = None,
) -> list[str]:
    """Replace all loguru sinks with the configured ones and describe each."""
    logger.remove()
    logger.configure(extra={"session": _NO_CONTEXT, "user": _NO_CONTEXT})

    descriptions: list[str] = []
    for config in consumers if consumers is not None else _DEFAULT_CONSUMERS:
        sink_type = config.get("type", "")
        sink_cls = _SINK_TYPES.get(sink_type)
        if sink_cls is None:
            logger.warning(f"Unknown log consumer type: {sink_type!r}")
            continue

        options = {k: v for k, v in config.items() if k not in ("type", "level")}
        sink = sink_cls(config.get("level", level), **options)
        sink.add()
        descriptions.append(sink.describe())

    return descriptions
