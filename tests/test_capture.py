from __future__ import annotations

from memos_bridge.capture import capture_messages, select_messages
from memos_bridge.config import Settings


TRANSCRIPT = [
    {"role": "user", "content": "hi"},
    {"role": "assistant", "content": "hello"},
    {"role": "user", "content": "book a flight"},
]


def test_last_turn_keeps_only_final_user_message():
    out = capture_messages(TRANSCRIPT, Settings())
    assert out == [{"role": "user", "content": "book a flight"}]


def test_last_turn_includes_agent_work_after_last_user_message():
    transcript = TRANSCRIPT + [
        {"role": "assistant", "content": "", "tool_calls": [{"id": "c1", "name": "book", "arguments": "{}"}]},
        {"role": "tool", "tool_call_id": "c1", "content": "booked"},
        {"role": "assistant", "content": "Done"},
    ]
    selected = select_messages(transcript, "last_turn")
    assert selected == transcript[2:]
    out = capture_messages(transcript, Settings())
    assert [m["role"] for m in out] == ["user", "assistant", "tool", "assistant"]


def test_last_turn_without_user_message_selects_nothing():
    transcript = [{"role": "assistant", "content": "unprompted"}]
    assert select_messages(transcript, "last_turn") == []
    assert capture_messages(transcript, Settings()) == []


def test_full_session_passes_everything_to_the_normalizer():
    assert select_messages(TRANSCRIPT, "full_session") == TRANSCRIPT
    out = capture_messages(TRANSCRIPT, Settings(capture_strategy="full_session"))
    assert [m["content"] for m in out] == ["hi", "hello", "book a flight"]


def test_capture_applies_settings_limits():
    s = Settings(capture_strategy="full_session", max_message_chars=3, include_assistant=False)
    out = capture_messages(TRANSCRIPT, s)
    assert out == [{"role": "user", "content": "hi"}, {"role": "user", "content": "boo..."}]
