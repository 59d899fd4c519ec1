"""Normalize host transcripts into canonical messages for MemOS storage.

Host transcripts mix several shapes: plain string content, content-block
lists, and tool calls spelled three different ways. Everything is mapped
onto::

    {"role": "user" | "assistant" | "tool",
     "content": str | [{"type": "text", "text": str}, ...],
     "tool_calls": [...],      # assistant only, optional
     "tool_call_id": str}      # tool only

Each ``tool_calls`` entry uses the OpenAI chat wire shape
``{"id": ..., "type": "function", "function": {"name": ..., "arguments": str}}``;
:class:`ToolCallRecord` holds the flat ``id/name/arguments`` triple and
:meth:`ToolCallRecord.to_payload` nests it.

Entries that cannot be mapped are dropped one at a time; an empty result
is a valid outcome.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Set

from .text import stringify_value, strip_injected_context, truncate

EMPTY_ARGUMENTS = "{}"

TOOL_ROLES = {"tool", "toolResult", "tool_result"}
CALL_BLOCK_TYPES = {"toolCall", "tool_call", "tool_use", "function_call"}
CALL_ID_FIELDS = ("tool_call_id", "toolCallId", "tool_use_id", "toolUseId")
RESULT_FALLBACK_FIELDS = ("details", "output", "result")

Message = Dict[str, Any]


# -----------------------------
# Text
# -----------------------------
def extract_text(content: Any) -> str:
    """Plain strings pass through; block lists join their text blocks."""
    if not content:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return " ".join(
            str(block.get("text") or "")
            for block in content
            if isinstance(block, Mapping) and block.get("type") == "text"
        )
    return ""


# -----------------------------
# Tool calls
# -----------------------------
@dataclass(frozen=True)
class ToolCallRecord:
    id: str
    name: str
    arguments: str

    def to_payload(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }


def coerce_arguments(value: Any) -> str:
    """Arguments as a non-empty string, ``{}`` when nothing usable."""
    if isinstance(value, str):
        return value if value.strip() else EMPTY_ARGUMENTS
    if value is None:
        return EMPTY_ARGUMENTS
    try:
        text = json.dumps(value, ensure_ascii=False)
    except (TypeError, ValueError):
        text = str(value)
    return text if text.strip() else EMPTY_ARGUMENTS


def _first_present(*values: Any) -> Any:
    for v in values:
        if v is not None:
            return v
    return None


def _from_function_shape(raw: Mapping[str, Any]) -> Optional[ToolCallRecord]:
    # {"id", "type": "function", "function": {"name", "arguments"}}
    fn = raw.get("function")
    if not isinstance(fn, Mapping):
        return None
    call_id, name = raw.get("id"), fn.get("name")
    if not call_id or not name:
        return None
    return ToolCallRecord(str(call_id), str(name), coerce_arguments(fn.get("arguments")))


def _from_flat_shape(raw: Mapping[str, Any]) -> Optional[ToolCallRecord]:
    # {"id", "name", "arguments" | "input" | "args"}
    call_id = raw.get("id") or raw.get("call_id")
    name = raw.get("name")
    if not call_id or not name:
        return None
    args = _first_present(raw.get("arguments"), raw.get("input"), raw.get("args"))
    return ToolCallRecord(str(call_id), str(name), coerce_arguments(args))


def to_tool_call(raw: Any) -> Optional[ToolCallRecord]:
    if not isinstance(raw, Mapping):
        return None
    return _from_function_shape(raw) or _from_flat_shape(raw)


def _primary_calls(msg: Mapping[str, Any]) -> Iterable[Any]:
    calls = msg.get("tool_calls")
    return calls if isinstance(calls, list) else ()


def _alternate_calls(msg: Mapping[str, Any]) -> Iterable[Any]:
    calls = msg.get("toolCalls")
    return calls if isinstance(calls, list) else ()


def _inline_calls(msg: Mapping[str, Any]) -> Iterable[Any]:
    content = msg.get("content")
    if not isinstance(content, list):
        return ()
    return [b for b in content if isinstance(b, Mapping) and b.get("type") in CALL_BLOCK_TYPES]


TOOL_CALL_SOURCES: Sequence[Callable[[Mapping[str, Any]], Iterable[Any]]] = (
    _primary_calls,
    _alternate_calls,
    _inline_calls,
)


def collect_tool_calls(msg: Mapping[str, Any]) -> List[ToolCallRecord]:
    """Scan every source in priority order; the first record per id wins."""
    seen: Set[str] = set()
    out: List[ToolCallRecord] = []
    for source in TOOL_CALL_SOURCES:
        for raw in source(msg):
            record = to_tool_call(raw)
            if record is None or record.id in seen:
                continue
            seen.add(record.id)
            out.append(record)
    return out


# -----------------------------
# Per-role normalization
# -----------------------------
def _normalize_user(msg: Mapping[str, Any], max_chars: int) -> Optional[Message]:
    text = strip_injected_context(extract_text(msg.get("content")))
    if not text or not text.strip():
        return None
    return {"role": "user", "content": truncate(text, max_chars)}


def _normalize_assistant(msg: Mapping[str, Any], max_chars: int, include_text: bool) -> Optional[Message]:
    text = extract_text(msg.get("content")) if include_text else ""
    calls = collect_tool_calls(msg)
    has_text = bool(text and text.strip())
    if not has_text and not calls:
        return None
    out: Message = {"role": "assistant", "content": truncate(text, max_chars) if has_text else ""}
    if calls:
        out["tool_calls"] = [c.to_payload() for c in calls]
    return out


def tool_call_id_of(msg: Mapping[str, Any]) -> str:
    for key in CALL_ID_FIELDS:
        value = msg.get(key)
        if value:
            return str(value)
    return ""


def _tool_result_content(msg: Mapping[str, Any], max_chars: int) -> Any:
    content = msg.get("content")
    if isinstance(content, str):
        return truncate(content, max_chars)
    if isinstance(content, list):
        blocks = [
            {"type": "text", "text": truncate(str(b.get("text") or ""), max_chars)}
            for b in content
            if isinstance(b, Mapping) and b.get("type") == "text"
        ]
        if blocks:
            return blocks
    text = stringify_value(content) if content else ""
    if not text:
        text = stringify_value(_first_present(*(msg.get(k) for k in RESULT_FALLBACK_FIELDS)))
    return truncate(text, max_chars)


def _normalize_tool_result(msg: Mapping[str, Any], max_chars: int, known_calls: Set[str]) -> Optional[Message]:
    call_id = tool_call_id_of(msg)
    if not call_id or call_id not in known_calls:
        return None
    return {"role": "tool", "content": _tool_result_content(msg, max_chars), "tool_call_id": call_id}


def normalize_messages(
    messages: Optional[Iterable[Any]],
    *,
    max_chars: int = 0,
    include_assistant: bool = True,
) -> List[Message]:
    """Map a transcript onto canonical messages, preserving order.

    Tool results are kept only when they answer a tool call emitted
    earlier in the same output.
    """
    out: List[Message] = []
    known_calls: Set[str] = set()
    for msg in messages or []:
        if not isinstance(msg, Mapping):
            continue
        role = msg.get("role")
        if role == "user":
            record = _normalize_user(msg, max_chars)
        elif role == "assistant":
            record = _normalize_assistant(msg, max_chars, include_assistant)
            if record is not None:
                known_calls.update(c["id"] for c in record.get("tool_calls", ()))
        elif role in TOOL_ROLES:
            record = _normalize_tool_result(msg, max_chars, known_calls)
        else:
            continue
        if record is not None:
            out.append(record)
    return out
