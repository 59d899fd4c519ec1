from __future__ import annotations

from types import SimpleNamespace

from memos_bridge.config import Settings
from memos_bridge.identity import ConversationCounters, SessionContext, resolve_conversation_id


def test_explicit_conversation_id_ignores_prefix_and_suffix():
    s = Settings(conversation_id="fixed", conversation_id_prefix="p-", conversation_id_suffix="-s",
                 conversation_suffix_mode="counter")
    counters = ConversationCounters()
    counters.bump("sess")
    assert resolve_conversation_id(s, {"sessionKey": "sess"}, counters) == "fixed"


def test_base_precedence():
    s = Settings()
    assert resolve_conversation_id(s, {"sessionKey": "k", "sessionId": "i", "agentId": "a"}) == "k"
    assert resolve_conversation_id(s, {"sessionId": "i", "agentId": "a"}) == "i"
    assert resolve_conversation_id(s, {"agentId": "a"}) == "openclaw:a"
    assert resolve_conversation_id(s, {}, now_ms=1700000000000) == "openclaw-1700000000000"
    assert resolve_conversation_id(s, None)  # never empty


def test_prefix_and_suffix_wrap_derived_ids():
    s = Settings(conversation_id_prefix="pre:", conversation_id_suffix=":post")
    assert resolve_conversation_id(s, {"sessionKey": "k"}) == "pre:k:post"
    assert resolve_conversation_id(s, {}, now_ms=5) == "pre:openclaw-5:post"


def test_counter_suffix_only_advances_on_bump():
    s = Settings(conversation_suffix_mode="counter", conversation_id_suffix="!")
    counters = ConversationCounters()
    ctx = SessionContext(session_key="main")

    assert resolve_conversation_id(s, ctx, counters) == "main!"
    assert resolve_conversation_id(s, ctx, counters) == "main!"
    counters.bump("main")
    assert resolve_conversation_id(s, ctx, counters) == "main#1!"
    counters.bump("main")
    assert resolve_conversation_id(s, ctx, counters) == "main#2!"
    # other sessions are unaffected
    assert resolve_conversation_id(s, SessionContext(session_key="other"), counters) == "other!"


def test_counter_ignored_outside_counter_mode():
    counters = ConversationCounters()
    counters.bump("main")
    assert resolve_conversation_id(Settings(), {"sessionKey": "main"}, counters) == "main"


def test_counter_without_session_key_never_suffixes():
    counters = ConversationCounters()
    assert counters.bump(None) == 0
    s = Settings(conversation_suffix_mode="counter")
    assert resolve_conversation_id(s, {"sessionId": "i"}, counters) == "i"


def test_session_context_accepts_both_spellings():
    a = SessionContext.from_mapping({"sessionKey": "k", "sessionId": "i", "agentId": "a"})
    b = SessionContext.from_mapping({"session_key": "k", "session_id": "i", "agent_id": "a"})
    assert a == b == SessionContext("k", "i", "a")
    assert SessionContext.from_mapping(a) is a


def test_session_context_reads_attribute_style_objects():
    ctx = SessionContext.from_mapping(SimpleNamespace(session_key="k", agentId="a"))
    assert ctx == SessionContext("k", None, "a")
    assert resolve_conversation_id(Settings(), SimpleNamespace(sessionId="i")) == "i"
