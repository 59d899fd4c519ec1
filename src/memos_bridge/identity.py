"""Conversation identity: which remote conversation a turn belongs to."""
from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from .config import Settings

AGENT_PREFIX = "openclaw"


@dataclass(frozen=True)
class SessionContext:
    """The host's description of the session an event belongs to."""
    session_key: Optional[str] = None
    session_id: Optional[str] = None
    agent_id: Optional[str] = None

    @classmethod
    def from_mapping(cls, ctx: Any) -> "SessionContext":
        """Accept both the host's camelCase keys and snake_case.

        ``ctx`` may be a mapping or an object exposing the same names as
        attributes.
        """
        if isinstance(ctx, SessionContext):
            return ctx
        ctx = ctx or {}

        def pick(*keys: str) -> Optional[str]:
            for k in keys:
                if isinstance(ctx, Mapping):
                    v = ctx.get(k)
                else:
                    v = getattr(ctx, k, None)
                if v:
                    return str(v)
            return None

        return cls(
            session_key=pick("sessionKey", "session_key"),
            session_id=pick("sessionId", "session_id"),
            agent_id=pick("agentId", "agent_id"),
        )


class ConversationCounters:
    """Per-session counters bumped by "new conversation" signals.

    Lives only as long as the process; counters restart at 0 after a
    restart. Bumps are atomic per key so handlers may run on threads.
    """

    def __init__(self) -> None:
        self._counts: Dict[str, int] = {}
        self._lock = threading.Lock()

    def get(self, session_key: Optional[str]) -> int:
        if not session_key:
            return 0
        with self._lock:
            return self._counts.get(session_key, 0)

    def bump(self, session_key: Optional[str]) -> int:
        """Increment the counter for ``session_key``; returns the new value."""
        if not session_key:
            return 0
        with self._lock:
            value = self._counts.get(session_key, 0) + 1
            self._counts[session_key] = value
            return value

    def suffix(self, session_key: Optional[str]) -> str:
        n = self.get(session_key)
        return f"#{n}" if n > 0 else ""


def conversation_base(ctx: SessionContext, now_ms: Optional[int] = None) -> str:
    if ctx.session_key:
        return ctx.session_key
    if ctx.session_id:
        return ctx.session_id
    if ctx.agent_id:
        return f"{AGENT_PREFIX}:{ctx.agent_id}"
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{AGENT_PREFIX}-{now_ms}"


def resolve_conversation_id(
    settings: Settings,
    ctx: Any,
    counters: Optional[ConversationCounters] = None,
    *,
    now_ms: Optional[int] = None,
) -> str:
    """Return the conversation id for an event; never empty.

    An explicitly configured id is returned verbatim: prefix and suffix
    apply only to derived ids.
    """
    if settings.conversation_id:
        return settings.conversation_id

    ctx = SessionContext.from_mapping(ctx)
    base = conversation_base(ctx, now_ms)
    dynamic = ""
    if settings.counter_mode and counters is not None:
        dynamic = counters.suffix(ctx.session_key)
    return f"{settings.conversation_id_prefix}{base}{dynamic}{settings.conversation_id_suffix}"
