from __future__ import annotations

from chat_session_manager.models import Message, ModelOption, Sender, Session


class SessionController:
    def __init__(self, *, line_prefix: str, short_id_len: int = 8, preview_chars: int = 140):
        self._line_prefix = line_prefix
        self._short_id_len = short_id_len
        self._preview_chars = preview_chars

    def short_id(self, value: str) -> str:
        if len(value) <= self._short_id_len:
            return value
        return value[: self._short_id_len]

    def resolve_session(self, sessions: list[Session], identifier: str) -> Session | None:
        """Match a session by full id, id prefix, or case-insensitive name."""
        needle = identifier.strip()
        if not needle:
            return None
        for session in sessions:
            if session.id == needle:
                return session

        matches = [s for s in sessions if s.id.startswith(needle)]
        if not matches:
            matches = [s for s in sessions if s.name.lower() == needle.lower()]
        if len(matches) > 1:
            raise ValueError(f"Ambiguous session identifier: {identifier!r} matches {len(matches)} sessions")
        return matches[0] if matches else None

    def format_session_list_entry(self, session: Session, *, active_session_id: str | None) -> str:
        marker = "*" if session.id == active_session_id else " "
        return (
            f"{self._line_prefix}{marker} {session.name} [{self.short_id(session.id)}] "
            f"(model={session.model_id}, tokens={session.tokens_used:,})"
        )

    def format_history_line(self, message: Message) -> str:
        who = "you" if message.sender is Sender.USER else "assistant"
        text = " ".join(message.text.split())
        if len(text) > self._preview_chars:
            text = text[: self._preview_chars - 3] + "..."
        return f"{self._line_prefix}[{who}, tokens={message.tokens}] {text}"

    def format_model_list_lines(self, models: list[ModelOption], *, active_model_id: str) -> list[str]:
        lines = [f"{self._line_prefix}Models:"]
        for option in models:
            marker = "*" if option.deployment_id == active_model_id else " "
            lines.append(f"{self._line_prefix}{marker} {option.name} ({option.deployment_id})")
        return lines
