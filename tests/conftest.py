"""Pytest configuration and shared fixtures."""
from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Dict, List

import pytest

# Ensure src/ is on the import path (for local imports without installing as package)
SRC_PATH = Path(__file__).resolve().parent.parent / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from memos_bridge.config import EnvSourceStatus, Settings  # noqa: E402


@pytest.fixture(scope="session")
def project_root() -> Path:
    """Return the root directory of the project."""
    return Path(__file__).resolve().parent.parent


@pytest.fixture(scope="function")
def clean_env(monkeypatch: pytest.MonkeyPatch):
    """Ensure tests run with a clean environment (no leftover MEMOS_* vars)."""
    for var in [
        "MEMOS_BRIDGE_CONFIG",
        "MEMOS_BASE_URL",
        "MEMOS_API_KEY",
        "MEMOS_USER_ID",
        "MEMOS_CONVERSATION_ID",
        "MEMOS_RECALL_GLOBAL",
    ]:
        monkeypatch.delenv(var, raising=False)
    yield


@pytest.fixture
def settings() -> Settings:
    """Settings with a credential and a found .env, so no warnings fire."""
    return Settings(api_key="mpg-test-key", env_status=EnvSourceStatus(found=True, sources=("openclaw",)))


class FakeClient:
    """Stands in for MemosClient; records payloads, returns canned results."""

    def __init__(self, search_result: Any = None, fail: Exception | None = None):
        self.search_result = search_result if search_result is not None else {"data": {}}
        self.fail = fail
        self.searches: List[Dict[str, Any]] = []
        self.added: List[Dict[str, Any]] = []

    async def search_memory(self, payload: Dict[str, Any]) -> Any:
        self.searches.append(payload)
        if self.fail:
            raise self.fail
        return self.search_result

    async def add_message(self, payload: Dict[str, Any]) -> Any:
        self.added.append(payload)
        if self.fail:
            raise self.fail
        return {"code": 0}


@pytest.fixture
def fake_client() -> FakeClient:
    return FakeClient()
