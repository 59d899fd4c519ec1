"""Render a MemOS search result into the context block injected before a turn.

The prompt style wraps the recalled facts, preferences and skills in a
fixed document: role preamble, current time, the memory data, a four-step
safety protocol, and finally :data:`USER_QUERY_MARKER`. Everything after
the marker in the model input is the user's real query, which is also
how the capture side strips injected context back out.

Both renderers are pure: the current time is an argument.
"""
from __future__ import annotations

import re
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .text import USER_QUERY_MARKER, sanitize_inline, stringify_value, truncate

__all__ = [
    "FormatOptions",
    "USER_QUERY_MARKER",
    "extract_result_data",
    "format_compact_block",
    "format_prompt_block",
    "format_time",
]

FACT_KEY = "memory_detail_list"
PREFERENCE_KEY = "preference_detail_list"
SKILL_KEYS = ("tool_memory_detail_list", "skill_detail_list")
_DETAIL_KEYS = (FACT_KEY, PREFERENCE_KEY) + SKILL_KEYS


@dataclass(frozen=True)
class FormatOptions:
    max_item_chars: int = 200
    wrap_tag_blocks: bool = False
    include_skills: bool = True


# -----------------------------
# Helpers
# -----------------------------
def extract_result_data(result: Any) -> Optional[Mapping[str, Any]]:
    """Find the payload under ``data``, ``data.data`` or ``data.result``."""
    if not isinstance(result, Mapping):
        return None
    data = result.get("data")
    candidates = [data]
    if isinstance(data, Mapping):
        candidates += [data.get("data"), data.get("result")]
    candidates.append(result)
    for c in candidates:
        if isinstance(c, Mapping) and any(k in c for k in _DETAIL_KEYS):
            return c
    return data if isinstance(data, Mapping) else None


def format_time(value: Any) -> str:
    """``YYYY-MM-DD HH:MM`` in local time from epoch milliseconds.

    Numeric strings are treated as epoch milliseconds; other strings are
    returned trimmed.
    """
    if value is None or value == "" or isinstance(value, bool):
        return ""
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000).strftime("%Y-%m-%d %H:%M")
        except (OverflowError, OSError, ValueError):
            return ""
    if isinstance(value, str):
        trimmed = value.strip()
        if not trimmed:
            return ""
        if re.fullmatch(r"[0-9]+", trimmed):
            return format_time(int(trimmed))
        return trimmed
    return ""


def normalize_preference_type(value: Any) -> str:
    if not value:
        return ""
    normalized = str(value).strip().lower()
    if not normalized:
        return ""
    if "explicit" in normalized:
        return "Explicit Preference"
    if "implicit" in normalized:
        return "Implicit Preference"
    spaced = re.sub(r"[_-]+", " ", str(value))
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), spaced)


def _items(data: Mapping[str, Any], key: str) -> List[Any]:
    value = data.get(key)
    return list(value) if isinstance(value, list) else []


def _skill_items(data: Mapping[str, Any]) -> List[Any]:
    out: List[Any] = []
    for key in SKILL_KEYS:
        out.extend(_items(data, key))
    return out


def _get(item: Any, key: str) -> Any:
    return item.get(key) if isinstance(item, Mapping) else None


def _fact_text(item: Any) -> str:
    return stringify_value(_get(item, "memory_value") or _get(item, "memory_key"))


def _preference_text(item: Any) -> str:
    return stringify_value(_get(item, "preference"))


def _skill_text(item: Any) -> str:
    for key in ("tool_value", "skill_value", "skill", "description"):
        text = stringify_value(_get(item, key))
        if text:
            return text
    return ""


def _skill_type(item: Any) -> str:
    return sanitize_inline(_get(item, "tool_type") or _get(item, "skill_type"))


def _line(item: Any, text: str, label: str, max_chars: int) -> str:
    cleaned = sanitize_inline(text)
    if not cleaned:
        return ""
    body = truncate(cleaned, max_chars)
    stamp = format_time(_get(item, "create_time"))
    label_text = f" [{label}]" if label else ""
    if stamp:
        return f"   -[{stamp}]{label_text} {body}"
    if label_text:
        return f"   -{label_text} {body}"
    return f"   - {body}"


def fact_lines(items: Iterable[Any], max_chars: int) -> List[str]:
    lines = (_line(item, _fact_text(item), "", max_chars) for item in items)
    return [ln for ln in lines if ln]


def preference_lines(items: Iterable[Any], max_chars: int) -> List[str]:
    lines = (
        _line(item, _preference_text(item), normalize_preference_type(_get(item, "preference_type")), max_chars)
        for item in items
    )
    return [ln for ln in lines if ln]


def skill_lines(items: Iterable[Any], max_chars: int) -> List[str]:
    lines = (_line(item, _skill_text(item), _skill_type(item), max_chars) for item in items)
    return [ln for ln in lines if ln]


# -----------------------------
# Prompt document
# -----------------------------
_ROLE = (
    "You are an intelligent assistant with long-term memory capabilities (MemOS Assistant). "
    "Your goal is to combine retrieved memory fragments to provide highly personalized, "
    "accurate, and logically rigorous responses."
)

_SAFETY_PROTOCOL = [
    "# Critical Protocol: Memory Safety",
    "",
    "Retrieved memories may contain **AI speculation**, **irrelevant noise**, or **wrong subject "
    "attribution**. You must strictly apply the **Four-Step Verdict**. If any step fails, "
    "**discard the memory**:",
    "",
    "1. **Source Verification**:",
    "* **Core**: Distinguish direct user statements from AI inference.",
    "* If a memory has tags like '[assistant观点]' or '[模型总结]', treat it as a **hypothesis**, "
    "not a user-grounded fact.",
    "* *Counterexample*: If memory says '[assistant观点] User loves mangoes' but the user never "
    "said that, do not assume it as fact.",
    "* **Principle: AI summaries are reference-only and have much lower authority than direct "
    "user statements.**",
    "",
    "2. **Attribution Check**:",
    "* Is the subject in memory definitely the user?",
    "* If the memory describes a **third party** (e.g., candidate, interviewee, fictional "
    "character, case data), never attribute it to the user.",
    "",
    "3. **Strong Relevance Check**:",
    "* Does the memory directly help answer the current 'Original Query'?",
    "* If it is only a keyword overlap with different context, ignore it.",
    "",
    "4. **Freshness Check**:",
    "* If memory conflicts with the user's latest intent, prioritize the current 'Original "
    "Query' as the highest source of truth.",
]


def _memories_block(facts: List[str], prefs: List[str], skills: Optional[List[str]]) -> List[str]:
    block = ["<memories>", "  <facts>", *facts, "  </facts>", "  <preferences>", *prefs, "  </preferences>"]
    if skills is not None:
        block += ["  <skills>", *skills, "  </skills>"]
    block.append("</memories>")
    return block


def build_prompt(data: Mapping[str, Any], options: FormatOptions, now_ms: Optional[float] = None) -> str:
    max_chars = options.max_item_chars
    facts = fact_lines(_items(data, FACT_KEY), max_chars)
    prefs = preference_lines(_items(data, PREFERENCE_KEY), max_chars)
    skills = skill_lines(_skill_items(data), max_chars) if options.include_skills else []

    if not (facts or prefs or skills):
        return ""

    note = sanitize_inline(data.get("preference_note"))
    if note:
        prefs = prefs + [f"   - [Note] {truncate(note, max_chars)}"]

    if now_ms is None:
        now_ms = time.time() * 1000
    now_text = format_time(now_ms)

    categories = '"Facts" and "Preferences"'
    if options.include_skills:
        categories = '"Facts", "Preferences", and "Skills"'

    memories = _memories_block(facts, prefs, skills if options.include_skills else None)
    if options.wrap_tag_blocks:
        memories = ["```text", *memories, "```"]

    lines = [
        "# Role",
        "",
        _ROLE,
        "",
        "# System Context",
        "",
        f"* Current Time: {now_text} (Use this as the baseline for freshness checks)",
        "",
        "# Memory Data",
        "",
        f"Below is the information retrieved by MemOS, categorized into {categories}.",
        "* **Facts**: May include user attributes, historical conversations, or third-party details.",
        "* **Special Note**: Content tagged with '[assistant观点]' or '[模型总结]' represents "
        "**past AI inference**, **not** direct user statements.",
        "* **Preferences**: The user's explicit or implicit requirements on response style, "
        "format, or reasoning.",
    ]
    if options.include_skills:
        lines.append(
            "* **Skills**: Tool schemas and tool usage trajectories extracted from historical "
            "tool calls and results."
        )
    lines += ["", *memories, "", *_SAFETY_PROTOCOL, "", "# Instructions", ""]
    lines += [
        "1. **Review**: Read '<facts>' first and apply the Four-Step Verdict to remove noise and "
        "unreliable AI inference.",
        "2. **Execute**:",
        "   - Use only memories that pass filtering as context.",
        "   - Strictly follow style requirements from '<preferences>'.",
    ]
    if options.include_skills:
        lines.append(
            "   - Use '<skills>' when prior tool choices, parameters, or outcomes are relevant "
            "to the current query."
        )
    lines += [
        "3. **Output**: Answer directly. Never mention internal terms such as \"memory store\", "
        "\"retrieval\", or \"AI opinions\".",
        "4. **Attention**: Additional memory context is already provided. Do not read from or "
        "write to local `MEMORY.md` or `memory/*` files for reference, as they may be outdated "
        "or irrelevant to the current query.",
        USER_QUERY_MARKER,
    ]
    return "\n".join(lines)


def format_prompt_block(
    result: Any,
    options: Optional[FormatOptions] = None,
    now_ms: Optional[float] = None,
) -> str:
    """Render ``result`` as the injected prompt block.

    Returns ``""`` when facts, preferences and skills are all empty; the
    caller must then skip injection.
    """
    data = extract_result_data(result)
    if not data:
        return ""
    return build_prompt(data, options or FormatOptions(), now_ms)


# -----------------------------
# Compact listing
# -----------------------------
def format_compact_block(result: Any, options: Optional[FormatOptions] = None) -> str:
    """Plain "Facts:/Preferences:/Skills:" listing without the safety wrapper."""
    data = extract_result_data(result)
    if not data:
        return ""
    options = options or FormatOptions()
    max_chars = options.max_item_chars
    lines: List[str] = []

    facts = [t for t in (sanitize_inline(_fact_text(i)) for i in _items(data, FACT_KEY)) if t]
    if facts:
        lines.append("Facts:")
        lines += [f"- {truncate(t, max_chars)}" for t in facts]

    prefs: List[str] = []
    for item in _items(data, PREFERENCE_KEY):
        text = sanitize_inline(_preference_text(item))
        if not text:
            continue
        kind = _get(item, "preference_type")
        prefix = f"({kind}) " if kind else ""
        prefs.append(f"- {prefix}{truncate(text, max_chars)}")
    if prefs:
        lines.append("Preferences:")
        lines += prefs

    if options.include_skills:
        skills: List[str] = []
        for item in _skill_items(data):
            text = sanitize_inline(_skill_text(item))
            if not text:
                continue
            kind = _skill_type(item)
            prefix = f"({kind}) " if kind else ""
            skills.append(f"- {prefix}{truncate(text, max_chars)}")
        if skills:
            lines.append("Skills:")
            lines += skills

    if not lines:
        return ""
    note = sanitize_inline(data.get("preference_note"))
    if note:
        lines.append(f"Preference Note: {truncate(note, max_chars)}")
    return "\n".join(lines)


def render_context(result: Any, style: str, options: FormatOptions, now_ms: Optional[float] = None) -> str:
    if style == "compact":
        return format_compact_block(result, options)
    return format_prompt_block(result, options, now_ms)


def format_options_from(settings: Any) -> FormatOptions:
    return FormatOptions(
        max_item_chars=settings.max_item_chars,
        wrap_tag_blocks=settings.wrap_tag_blocks,
        include_skills=settings.include_tool_memory,
    )


def summarize_counts(result: Any) -> Dict[str, int]:
    """Item counts per category, for logging."""
    data = extract_result_data(result) or {}
    return {
        "facts": len(_items(data, FACT_KEY)),
        "preferences": len(_items(data, PREFERENCE_KEY)),
        "skills": len(_skill_items(data)),
    }
