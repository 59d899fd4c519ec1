"""FastAPI sidecar exposing the bridge's lifecycle hooks over HTTP."""
from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from fastapi import BackgroundTasks, FastAPI
from pydantic import BaseModel, ConfigDict, Field

from . import __version__
from .config import load_config, resolve_settings
from .plugin import MemosPlugin

logger = logging.getLogger(__name__)


# -----------------------------
# Pydantic request/response
# -----------------------------
class BeforeTurnRequest(BaseModel):
    prompt: str = Field(default="", description="The user's prompt for the upcoming turn.")
    context: Dict[str, Any] = Field(default_factory=dict, description="sessionKey / sessionId / agentId.")


class BeforeTurnResponse(BaseModel):
    prependContext: Optional[str] = None


class TurnEndRequest(BaseModel):
    success: bool = False
    messages: List[Any] = Field(default_factory=list)
    context: Dict[str, Any] = Field(default_factory=dict)


class SessionResetRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_key: Optional[str] = Field(default=None, alias="sessionKey")


# -----------------------------
# Host adapter
# -----------------------------
class HookRegistry:
    """Minimal plugin host: remembers which handler serves which event."""

    def __init__(self) -> None:
        self.handlers: Dict[str, Callable[..., Awaitable[Any]]] = {}
        self.hooks: Dict[str, Callable[..., Any]] = {}

    def on(self, event: str, handler: Callable[..., Awaitable[Any]]) -> None:
        self.handlers[event] = handler

    def register_hook(self, events: List[str], handler: Callable[..., Any], *, name: str = "", description: str = "") -> None:
        for event in events:
            self.hooks[event] = handler


# -----------------------------
# App factory
# -----------------------------
def create_app(
    config_path: Optional[str] = None,
    plugin: Optional[MemosPlugin] = None,
) -> FastAPI:
    if plugin is None:
        plugin = MemosPlugin(resolve_settings(load_config(config_path)))
    settings = plugin.settings

    registry = HookRegistry()
    plugin.register(registry, hooks_enabled=True)

    app = FastAPI(title="MemOS Bridge", version=__version__)

    @app.get("/health")
    def health() -> Dict[str, Any]:
        return {
            "ok": True,
            "recall_enabled": settings.recall_enabled,
            "add_enabled": settings.add_enabled,
            "credential_configured": settings.has_credential,
            "env_sources": list(settings.env_status.sources),
        }

    @app.get("/config")
    def get_config() -> Dict[str, Any]:
        return settings.redacted()

    @app.post("/hooks/before-turn-start", response_model=BeforeTurnResponse)
    async def before_turn_start(req: BeforeTurnRequest) -> BeforeTurnResponse:
        handler = registry.handlers["before_agent_start"]
        result = await handler({"prompt": req.prompt}, req.context)
        return BeforeTurnResponse(prependContext=(result or {}).get("prependContext"))

    @app.post("/hooks/turn-end", status_code=202)
    def turn_end(req: TurnEndRequest, background_tasks: BackgroundTasks) -> Dict[str, Any]:
        # capture must not hold up the host's turn
        handler = registry.handlers["agent_end"]
        background_tasks.add_task(handler, {"success": req.success, "messages": req.messages}, req.context)
        return {"accepted": True}

    @app.post("/hooks/session-reset")
    def session_reset(req: SessionResetRequest) -> Dict[str, Any]:
        hook = registry.hooks.get("command:new")
        if hook is None:
            return {"ok": False, "counter": 0}
        counter = hook({"type": "command", "action": "new", "sessionKey": req.session_key})
        return {"ok": True, "counter": counter}

    return app
