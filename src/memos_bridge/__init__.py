"""Bridge between an agent runtime's lifecycle hooks and MemOS Cloud memory.

On every turn the bridge recalls relevant memories and renders them into a
prompt block; after a successful turn it normalizes the transcript and
submits it for storage.

Typical usage
-------------
from memos_bridge import MemosPlugin, resolve_settings
plugin = MemosPlugin(resolve_settings({"apiKey": "mpg-..."}))
plugin.register(host)

or, for hosts that dispatch hooks over HTTP:

python scripts/run_server.py --host 127.0.0.1 --port 8000
"""

from __future__ import annotations

from .config import Settings, load_config, resolve_settings
from .errors import ConfigurationError, MemosError, TransportError
from .formatter import USER_QUERY_MARKER, format_prompt_block
from .messages import normalize_messages
from .plugin import CaptureOutcome, MemosPlugin, PluginState

__all__ = [
    "CaptureOutcome",
    "ConfigurationError",
    "MemosError",
    "MemosPlugin",
    "PluginState",
    "Settings",
    "TransportError",
    "USER_QUERY_MARKER",
    "__version__",
    "create_app",
    "format_prompt_block",
    "get_version",
    "load_config",
    "normalize_messages",
    "resolve_settings",
]

# ---------------------------------------------------------------------
# Version handling
# ---------------------------------------------------------------------
__version__ = "0.3.0"


def get_version() -> str:
    """Return the package version."""
    return __version__


# ---------------------------------------------------------------------
# App factory export (the sidecar pulls in FastAPI, so import lazily)
# ---------------------------------------------------------------------
def create_app(*args, **kwargs):
    """Return the FastAPI sidecar application.

    This forwards to :func:`memos_bridge.server.create_app`.
    """
    from .server import create_app as _create_app

    return _create_app(*args, **kwargs)
