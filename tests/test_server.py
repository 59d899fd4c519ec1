from __future__ import annotations

import dataclasses

from fastapi.testclient import TestClient

from conftest import FakeClient
from memos_bridge.plugin import MemosPlugin
from memos_bridge.server import create_app
from memos_bridge.text import USER_QUERY_MARKER

ONE_FACT = {"data": {"memory_detail_list": [{"memory_value": "Prefers window seats"}]}}


def _app(settings, client: FakeClient) -> TestClient:
    return TestClient(create_app(plugin=MemosPlugin(settings, client=client)))


def test_health_and_redacted_config(settings, fake_client):
    client = _app(settings, fake_client)

    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["ok"] is True
    assert r.json()["credential_configured"] is True

    cfg = client.get("/config").json()
    assert cfg["api_key"] != settings.api_key
    assert cfg["capture_strategy"] == "last_turn"


def test_before_turn_start_endpoint(settings):
    memos = FakeClient(ONE_FACT)
    client = _app(settings, memos)

    r = client.post("/hooks/before-turn-start", json={"prompt": "book me a seat", "context": {"sessionKey": "s1"}})
    assert r.status_code == 200
    block = r.json()["prependContext"]
    assert "Prefers window seats" in block
    assert block.endswith(USER_QUERY_MARKER)


def test_before_turn_start_endpoint_without_memories(settings, fake_client):
    r = _app(settings, fake_client).post("/hooks/before-turn-start", json={"prompt": "hello there"})
    assert r.status_code == 200
    assert r.json() == {"prependContext": None}


def test_turn_end_endpoint_captures_in_background(settings, fake_client):
    client = _app(settings, fake_client)
    body = {
        "success": True,
        "messages": [{"role": "user", "content": "remember I am vegetarian"}],
        "context": {"sessionKey": "s1"},
    }
    r = client.post("/hooks/turn-end", json=body)
    assert r.status_code == 202
    assert r.json() == {"accepted": True}
    # TestClient runs background tasks before returning
    assert fake_client.added[0]["messages"] == [{"role": "user", "content": "remember I am vegetarian"}]
    assert fake_client.added[0]["conversation_id"] == "s1"


def test_session_reset_endpoint(settings, fake_client):
    counter_settings = dataclasses.replace(settings, conversation_suffix_mode="counter")
    client = _app(counter_settings, fake_client)
    assert client.post("/hooks/session-reset", json={"sessionKey": "s1"}).json() == {"ok": True, "counter": 1}

    plain = _app(settings, FakeClient())
    assert plain.post("/hooks/session-reset", json={"sessionKey": "s1"}).json() == {"ok": False, "counter": 0}
