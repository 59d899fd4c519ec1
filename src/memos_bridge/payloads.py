"""Request bodies for MemOS search and add calls."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from .config import Settings
from .identity import ConversationCounters, SessionContext, resolve_conversation_id

SOURCE = "openclaw"
DEFAULT_QUERY_CHARS = 2000


def build_search_payload(
    settings: Settings,
    prompt: str,
    ctx: SessionContext,
    counters: Optional[ConversationCounters] = None,
) -> Dict[str, Any]:
    query = f"{settings.query_prefix}{prompt}"[: settings.max_query_chars or DEFAULT_QUERY_CHARS]
    payload: Dict[str, Any] = {
        "user_id": settings.user_id,
        "query": query,
        "source": SOURCE,
    }
    # global recall searches every conversation of the user
    if not settings.recall_global:
        payload["conversation_id"] = resolve_conversation_id(settings, ctx, counters)
    if settings.filter:
        payload["filter"] = settings.filter
    if settings.knowledgebase_ids:
        payload["knowledgebase_ids"] = list(settings.knowledgebase_ids)

    payload["memory_limit_number"] = settings.memory_limit_number
    payload["include_preference"] = settings.include_preference
    payload["preference_limit_number"] = settings.preference_limit_number
    payload["include_tool_memory"] = settings.include_tool_memory
    payload["tool_memory_limit_number"] = settings.tool_memory_limit_number
    return payload


def build_add_payload(
    settings: Settings,
    messages: List[Dict[str, Any]],
    ctx: SessionContext,
    counters: Optional[ConversationCounters] = None,
) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "user_id": settings.user_id,
        "conversation_id": resolve_conversation_id(settings, ctx, counters),
        "messages": messages,
        "source": SOURCE,
    }
    if settings.agent_id:
        payload["agent_id"] = settings.agent_id
    if settings.app_id:
        payload["app_id"] = settings.app_id
    if settings.tags:
        payload["tags"] = list(settings.tags)

    info: Dict[str, Any] = {"source": SOURCE, "sessionKey": ctx.session_key, "agentId": ctx.agent_id}
    info.update(settings.info)
    info = {k: v for k, v in info.items() if v is not None}
    if info:
        payload["info"] = info

    payload["allow_public"] = settings.allow_public
    if settings.allow_knowledgebase_ids:
        payload["allow_knowledgebase_ids"] = list(settings.allow_knowledgebase_ids)
    payload["async_mode"] = settings.async_mode
    return payload
