"""Exception types raised by the MemOS bridge."""
from __future__ import annotations

from typing import Optional


class MemosError(Exception):
    """Base class for every error raised by the bridge."""


class ConfigurationError(MemosError):
    """Raised before any network activity when the bridge is not usable,
    e.g. no API key is configured."""


class TransportError(MemosError):
    """A remote call failed after the whole retry budget was spent.

    ``status`` is the HTTP status of the last attempt when the server
    answered, ``None`` for network failures and timeouts.
    """

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        attempts: int = 1,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.attempts = attempts
        self.cause = cause
