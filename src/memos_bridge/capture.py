"""Pick the part of a transcript that gets stored after a turn."""
from __future__ import annotations

from typing import Any, Iterable, List, Mapping, Optional

from .config import Settings
from .messages import Message, normalize_messages


def select_messages(messages: Optional[Iterable[Any]], strategy: str) -> List[Any]:
    """``full_session`` keeps everything; ``last_turn`` keeps the last user
    message and whatever followed it (empty if there is no user message)."""
    items = list(messages or [])
    if strategy == "full_session":
        return items
    last_user = None
    for idx, msg in enumerate(items):
        if isinstance(msg, Mapping) and msg.get("role") == "user":
            last_user = idx
    if last_user is None:
        return []
    return items[last_user:]


def capture_messages(messages: Optional[Iterable[Any]], settings: Settings) -> List[Message]:
    return normalize_messages(
        select_messages(messages, settings.capture_strategy),
        max_chars=settings.max_message_chars,
        include_assistant=settings.include_assistant,
    )
