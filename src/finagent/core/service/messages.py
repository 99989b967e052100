"""Assemble the message list sent to providers."""

from collections.abc import Iterable, Mapping
from typing import Any

from .models import ChatMessage

_FORWARDED_ROLES = frozenset({"user", "assistant"})


def build_messages(
    persona_prompt: str,
    history: Iterable[ChatMessage | Mapping[str, Any]],
    message: str,
    max_history: int,
) -> tuple[ChatMessage, ...]:
    """Return ``system prompt + last max_history history entries + message``.

    The persona prompt is always the first and only system message.
    History entries with another role or blank content are dropped
    before truncation.
    """
    kept: list[ChatMessage] = []
    for entry in history:
        if not isinstance(entry, ChatMessage):
            role, content = entry.get("role"), entry.get("content")
            if role not in _FORWARDED_ROLES or not isinstance(content, str):
                continue
            entry = ChatMessage(role=role, content=content)
        if entry.role in _FORWARDED_ROLES and entry.content.strip():
            kept.append(entry)

    recent = kept[-max_history:] if max_history > 0 else []
    return (
        ChatMessage(role="system", content=persona_prompt),
        *recent,
        ChatMessage(role="user", content=message),
    )
