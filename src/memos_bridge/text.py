"""Small text helpers shared by the normalizer and the formatter."""
from __future__ import annotations

import json
import re
from typing import Any, Optional

# Sentinel that separates an injected context block from the user's own
# query. Zero-width spaces keep it from colliding with natural text.
USER_QUERY_MARKER = "user\u200b原\u200b始\u200bquery\u200b：\u200b\u200b\u200b\u200b"
ELLIPSIS = "..."

_LINE_BREAKS = re.compile(r"(?:\r?\n)+")


def truncate(text: Optional[str], max_chars: Optional[int]) -> str:
    """Keep the first ``max_chars`` characters and append ``...``.

    A missing or zero limit means unbounded.
    """
    if not text:
        return ""
    if not max_chars or max_chars <= 0:
        return text
    return f"{text[:max_chars]}{ELLIPSIS}" if len(text) > max_chars else text


def sanitize_inline(text: Any) -> str:
    """Collapse line breaks to single spaces and trim."""
    if text is None:
        return ""
    return _LINE_BREAKS.sub(" ", str(text)).strip()


def stringify_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    try:
        return json.dumps(value, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(value)


def strip_injected_context(text: str) -> str:
    """Drop everything up to the last query marker (a previously injected
    context block) so it is not stored back into memory."""
    if not text:
        return text
    idx = text.rfind(USER_QUERY_MARKER)
    if idx == -1:
        return text
    return text[idx + len(USER_QUERY_MARKER):].lstrip()
