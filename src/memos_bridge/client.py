"""Async client for the two MemOS Cloud endpoints used by the bridge."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx

from .config import Settings
from .errors import ConfigurationError, TransportError

logger = logging.getLogger(__name__)

SEARCH_PATH = "/search/memory"
ADD_PATH = "/add/message"
BASE_DELAY = 0.1  # seconds; attempt n waits n * BASE_DELAY before retrying


class MemosClient:
    """POSTs JSON to MemOS with ``Token`` auth, a per-attempt timeout and
    linear backoff.

    ``1 + settings.retries`` attempts are made at most, so a call never
    takes much longer than ``timeout * (1 + retries)`` plus the backoff.
    ``transport`` lets tests plug in ``httpx.MockTransport``.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        base_delay: float = BASE_DELAY,
    ) -> None:
        self.settings = settings
        self._transport = transport
        self._base_delay = base_delay

    @property
    def timeout_s(self) -> float:
        return self.settings.timeout_ms / 1000 if self.settings.timeout_ms else 5.0

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Token {self.settings.api_key}",
        }

    async def _attempt(self, url: str, body: Dict[str, Any]) -> Any:
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout_s),
            headers=self._headers(),
            transport=self._transport,
        ) as client:
            r = await client.post(url, json=body)
            r.raise_for_status()
            return r.json()

    async def call(self, path: str, body: Dict[str, Any]) -> Any:
        if not self.settings.api_key:
            raise ConfigurationError("Missing MEMOS API key (Token auth)")

        url = f"{self.settings.base_url}{path}"
        attempts = 1 + max(0, self.settings.retries)
        last_exc: Exception | None = None
        for attempt in range(1, attempts + 1):
            try:
                # wait_for cancels the in-flight request on timeout
                return await asyncio.wait_for(self._attempt(url, body), timeout=self.timeout_s)
            except (httpx.HTTPError, httpx.InvalidURL, asyncio.TimeoutError, ValueError) as e:
                last_exc = e
                if attempt < attempts:
                    delay = self._base_delay * attempt
                    logger.debug("[memos-cloud] %s retry %d: %r (sleep %.2fs)", path, attempt, e, delay)
                    await asyncio.sleep(delay)

        status = None
        if isinstance(last_exc, httpx.HTTPStatusError):
            status = last_exc.response.status_code
            message = f"HTTP {status}"
        elif isinstance(last_exc, asyncio.TimeoutError):
            message = f"timed out after {self.timeout_s:.1f}s"
        else:
            message = str(last_exc) or type(last_exc).__name__
        raise TransportError(f"{path} failed: {message}", status=status, attempts=attempts, cause=last_exc)

    async def search_memory(self, payload: Dict[str, Any]) -> Any:
        return await self.call(SEARCH_PATH, payload)

    async def add_message(self, payload: Dict[str, Any]) -> Any:
        return await self.call(ADD_PATH, payload)
