"""Lifecycle hooks: recall before a turn, capture after it.

The host calls three handlers:

- ``before_turn_start(event, ctx)`` -> ``{"prependContext": str}`` or ``None``
- ``turn_end(event, ctx)`` -> :class:`CaptureOutcome` (hosts may ignore it)
- ``session_reset(event)`` -> bumps the conversation counter

No handler ever raises into the host: a failed recall means no extra
context, a failed capture means the turn is not stored.
"""
from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional

from .capture import capture_messages
from .client import MemosClient
from .config import Settings
from .formatter import format_options_from, render_context, summarize_counts
from .identity import ConversationCounters, SessionContext
from .payloads import build_add_payload, build_search_payload

logger = logging.getLogger(__name__)

PLUGIN_ID = "memos-cloud-openclaw-plugin"
API_KEY_HELP_URL = "https://memos-dashboard.openmem.net/cn/apikeys/"
ENV_FILE_SEARCH_HINTS = ["~/.openclaw/.env", "~/.moltbot/.env", "~/.clawdbot/.env"]


class CaptureOutcome(str, enum.Enum):
    DISABLED = "disabled"
    NOT_SUCCESSFUL = "not_successful"
    MISSING_CREDENTIAL = "missing_credential"
    THROTTLED = "throttled"
    NOTHING_TO_CAPTURE = "nothing_to_capture"
    STORED = "stored"
    FAILED = "failed"


@dataclass
class PluginState:
    """Mutable state shared by the handlers of one plugin instance.

    ``last_capture_ms`` is a single value for all sessions, so a busy
    session can throttle captures of another one.
    """
    counters: ConversationCounters = field(default_factory=ConversationCounters)
    last_capture_ms: float = 0.0


def missing_key_message(operation: str = "") -> str:
    heading = "[memos-cloud] Missing MEMOS_API_KEY (Token auth)"
    header = f"{heading}{f'; {operation} skipped' if operation else ''}. Configure it with:"
    return "\n".join([
        header,
        "echo 'export MEMOS_API_KEY=\"mpg-...\"' >> ~/.zshrc",
        "source ~/.zshrc",
        "or",
        "echo 'export MEMOS_API_KEY=\"mpg-...\"' >> ~/.bashrc",
        "source ~/.bashrc",
        "or",
        "[System.Environment]::SetEnvironmentVariable(\"MEMOS_API_KEY\", \"mpg-...\", \"User\")",
        f"Get API key: {API_KEY_HELP_URL}",
    ])


def _field(event: Any, *keys: str) -> Any:
    for k in keys:
        if isinstance(event, Mapping):
            if k in event:
                return event[k]
        elif hasattr(event, k):
            return getattr(event, k)
    return None


def _session_of(event: Any, ctx: Any) -> SessionContext:
    return SessionContext.from_mapping(ctx if ctx is not None else _field(event, "context", "sessionContext"))


class MemosPlugin:
    """MemOS Cloud recall + add memory via lifecycle hooks."""

    id = PLUGIN_ID
    name = "MemOS Cloud OpenClaw Plugin"
    kind = "lifecycle"

    def __init__(
        self,
        settings: Settings,
        *,
        client: Optional[MemosClient] = None,
        state: Optional[PluginState] = None,
        clock: Optional[Callable[[], float]] = None,
        log: Optional[logging.Logger] = None,
    ) -> None:
        self.settings = settings
        self.client = client or MemosClient(settings)
        self.state = state or PluginState()
        self._clock = clock or time.time
        self.log = log or logger
        self._format_options = format_options_from(settings)

    def _now_ms(self) -> float:
        return self._clock() * 1000

    # ---------- host wiring ----------
    def register(self, host: Any, *, hooks_enabled: Optional[bool] = None) -> None:
        """Attach handlers to a host exposing ``on(event, handler)`` and,
        optionally, ``register_hook(events, handler, name=, description=)``."""
        status = self.settings.env_status
        if not status.found:
            paths = ", ".join(status.search_paths) or ", ".join(ENV_FILE_SEARCH_HINTS)
            self.log.warning(
                "[memos-cloud] No .env found in %s; falling back to process env or plugin config.", paths
            )

        if self.settings.counter_mode and self.settings.reset_on_new:
            if hooks_enabled is not True:
                self.log.warning("[memos-cloud] command:new hook requires hooks.internal.enabled = true")
            register_hook = getattr(host, "register_hook", None)
            if register_hook is not None:
                register_hook(
                    ["command:new"],
                    self.session_reset,
                    name="memos-cloud-conversation-new",
                    description="Increment MemOS conversation suffix on /new",
                )

        host.on("before_agent_start", self.before_turn_start)
        host.on("agent_end", self.turn_end)

    # ---------- recall ----------
    async def recall(self, prompt: str, ctx: SessionContext) -> str:
        """Search memory and render the context block ("" if nothing found).

        Raises ``ConfigurationError`` / ``TransportError``.
        """
        payload = build_search_payload(self.settings, prompt, ctx, self.state.counters)
        result = await self.client.search_memory(payload)
        self.log.debug("[memos-cloud] recall counts: %s", summarize_counts(result))
        return render_context(result, self.settings.context_style, self._format_options, self._now_ms())

    async def before_turn_start(self, event: Any, ctx: Any = None) -> Optional[Dict[str, str]]:
        if not self.settings.recall_enabled:
            return None
        prompt = _field(event, "prompt")
        if not prompt or not isinstance(prompt, str) or len(prompt) < self.settings.min_prompt_chars:
            return None
        if not self.settings.has_credential:
            self.log.warning(missing_key_message("recall"))
            return None

        try:
            session = _session_of(event, ctx)
            block = await self.recall(prompt, session)
        except Exception as e:
            self.log.warning("[memos-cloud] recall failed: %s", e)
            return None
        if not block:
            return None
        return {"prependContext": block}

    # ---------- capture ----------
    def _admit_capture(self) -> bool:
        throttle = self.settings.throttle_ms
        now = self._now_ms()
        if throttle and now - self.state.last_capture_ms < throttle:
            return False
        self.state.last_capture_ms = now
        return True

    async def capture(self, messages: Any, ctx: SessionContext) -> CaptureOutcome:
        """Normalize and store a transcript. Raises on transport failure."""
        canonical = capture_messages(messages, self.settings)
        if not canonical:
            return CaptureOutcome.NOTHING_TO_CAPTURE
        payload = build_add_payload(self.settings, canonical, ctx, self.state.counters)
        self.log.debug(
            "[memos-cloud] add %d messages to %s", len(canonical), payload["conversation_id"]
        )
        await self.client.add_message(payload)
        return CaptureOutcome.STORED

    async def turn_end(self, event: Any, ctx: Any = None) -> CaptureOutcome:
        if not self.settings.add_enabled:
            return CaptureOutcome.DISABLED
        messages = _field(event, "messages")
        if not _field(event, "success") or not messages:
            return CaptureOutcome.NOT_SUCCESSFUL
        if not self.settings.has_credential:
            self.log.warning(missing_key_message("add"))
            return CaptureOutcome.MISSING_CREDENTIAL
        if not self._admit_capture():
            self.log.debug("[memos-cloud] capture throttled")
            return CaptureOutcome.THROTTLED

        try:
            return await self.capture(messages, _session_of(event, ctx))
        except Exception as e:
            self.log.warning("[memos-cloud] add failed: %s", e)
        return CaptureOutcome.FAILED

    # ---------- session reset ----------
    def session_reset(self, event: Any) -> int:
        """Advance the counter suffix for the event's session.

        Accepts ``{"sessionKey": ...}`` or the host's command event
        ``{"type": "command", "action": "new", "sessionKey": ...}``.
        Returns the new counter value, 0 when nothing changed.
        """
        if not (self.settings.counter_mode and self.settings.reset_on_new):
            return 0
        kind, action = _field(event, "type"), _field(event, "action")
        if kind is not None and not (kind == "command" and action == "new"):
            return 0
        key = _field(event, "sessionKey", "session_key")
        value = self.state.counters.bump(key)
        if value:
            self.log.debug("[memos-cloud] conversation counter for %s -> %d", key, value)
        return value
