"""Configuration loading for the MemOS bridge.

Settings are resolved field by field with this precedence:
1. Explicit plugin configuration (a mapping, or a YAML file via ``load_config``)
2. Layered key/value sources, first hit wins:
   ``~/.openclaw/.env``, ``~/.moltbot/.env``, ``~/.clawdbot/.env``, then
   the process environment
3. Built-in defaults

Explicit keys may use the host's camelCase spelling (``baseUrl``) or
snake_case (``base_url``).
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence, Tuple

import yaml
from dotenv import dotenv_values

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://memos.memtensor.cn/api/openmem/v1"
DEFAULT_USER_ID = "openclaw-user"
DEFAULT_CONFIG_PATH = "config/default.yaml"
CONFIG_PATH_ENV = "MEMOS_BRIDGE_CONFIG"

CAPTURE_STRATEGIES = ("last_turn", "full_session")
SUFFIX_MODES = ("none", "counter")
CONTEXT_STYLES = ("prompt", "compact")

_TRUTHY = {"1", "true", "yes", "y", "on"}
_FALSY = {"0", "false", "no", "n", "off"}
_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


# -----------------------------
# Value parsing
# -----------------------------
def parse_bool(value: Any, default: bool) -> bool:
    """Tolerant boolean parser; unrecognized spellings yield ``default``."""
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    normalized = str(value).strip().lower()
    if normalized in _TRUTHY:
        return True
    if normalized in _FALSY:
        return False
    return default


def _non_negative_int(value: Any, default: int) -> int:
    if value is None or value == "" or isinstance(value, bool):
        return default
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return default


def _first_truthy(*values: Any) -> Any:
    for v in values:
        if v:
            return v
    return values[-1] if values else None


def _first_present(*values: Any) -> Any:
    for v in values:
        if v is not None:
            return v
    return None


def _string_list(value: Any, default: Iterable[str] = ()) -> Tuple[str, ...]:
    if value is None:
        return tuple(default)
    if isinstance(value, str):
        return tuple(p.strip() for p in value.split(",") if p.strip())
    try:
        return tuple(str(v) for v in value if v is not None and str(v) != "")
    except TypeError:
        return tuple(default)


def _snake_case(key: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", key).lower()


def normalize_keys(cfg: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Map camelCase plugin config keys onto snake_case."""
    out: Dict[str, Any] = {}
    for key, value in (cfg or {}).items():
        out[_snake_case(str(key))] = value
    return out


# -----------------------------
# Layered sources
# -----------------------------
@dataclass(frozen=True)
class EnvFile:
    name: str
    path: Path


def default_env_files(home: Optional[Path] = None) -> Tuple[EnvFile, ...]:
    home = home or Path.home()
    return (
        EnvFile("openclaw", home / ".openclaw" / ".env"),
        EnvFile("moltbot", home / ".moltbot" / ".env"),
        EnvFile("clawdbot", home / ".clawdbot" / ".env"),
    )


@dataclass(frozen=True)
class SourceLayer:
    """One snapshot of key/value pairs. Calling it looks a key up."""
    name: str
    values: Mapping[str, str]
    path: Optional[Path] = None  # None for the process environment

    def __call__(self, key: str) -> Optional[str]:
        return self.values.get(key)


@dataclass(frozen=True)
class EnvSourceStatus:
    found: bool
    sources: Tuple[str, ...] = ()
    paths: Tuple[str, ...] = ()
    search_paths: Tuple[str, ...] = ()


def _read_env_file(path: Path) -> Optional[Dict[str, str]]:
    if not path.is_file():
        return None
    try:
        raw = dotenv_values(path)
    except OSError as e:
        logger.debug("could not read %s: %s", path, e)
        return None
    return {k: v for k, v in raw.items() if v is not None}


class ConfigSources:
    """Ordered list of source layers, composed left to right.

    Layers are snapshots: files and the environment are read once, when
    :meth:`from_environment` builds the object.
    """

    def __init__(self, layers: Sequence[SourceLayer], search_paths: Sequence[Path] = ()) -> None:
        self.layers: Tuple[SourceLayer, ...] = tuple(layers)
        self.search_paths: Tuple[Path, ...] = tuple(search_paths)

    @classmethod
    def from_environment(
        cls,
        env_files: Optional[Sequence[EnvFile]] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "ConfigSources":
        env_files = default_env_files() if env_files is None else tuple(env_files)
        layers = []
        for source in env_files:
            values = _read_env_file(source.path)
            if values is None:
                continue
            layers.append(SourceLayer(source.name, values, source.path))
        env = os.environ if environ is None else environ
        layers.append(SourceLayer("process", dict(env)))
        return cls(layers, search_paths=[s.path for s in env_files])

    @classmethod
    def empty(cls) -> "ConfigSources":
        return cls([])

    def get(self, key: str) -> Optional[str]:
        for layer in self.layers:
            value = layer(key)
            if value is not None:
                return value
        return None

    def status(self) -> EnvSourceStatus:
        files = [layer for layer in self.layers if layer.path is not None]
        return EnvSourceStatus(
            found=bool(files),
            sources=tuple(layer.name for layer in files),
            paths=tuple(str(layer.path) for layer in files),
            search_paths=tuple(str(p) for p in self.search_paths),
        )


# -----------------------------
# Settings
# -----------------------------
@dataclass(frozen=True)
class Settings:
    """Immutable bridge settings. Zero numeric limits mean "unbounded"."""
    base_url: str = DEFAULT_BASE_URL
    api_key: str = ""
    user_id: str = DEFAULT_USER_ID

    # conversation addressing
    conversation_id: str = ""
    conversation_id_prefix: str = ""
    conversation_id_suffix: str = ""
    conversation_suffix_mode: str = "none"
    reset_on_new: bool = True
    recall_global: bool = True

    # recall
    recall_enabled: bool = True
    query_prefix: str = ""
    max_query_chars: int = 0
    min_prompt_chars: int = 3
    memory_limit_number: int = 6
    include_preference: bool = True
    preference_limit_number: int = 6
    include_tool_memory: bool = True
    tool_memory_limit_number: int = 6
    filter: Optional[Any] = None
    knowledgebase_ids: Tuple[str, ...] = ()
    max_item_chars: int = 200
    wrap_tag_blocks: bool = True
    context_style: str = "prompt"

    # capture
    add_enabled: bool = True
    capture_strategy: str = "last_turn"
    max_message_chars: int = 20000
    include_assistant: bool = True
    tags: Tuple[str, ...] = ("openclaw",)
    info: Mapping[str, Any] = field(default_factory=dict)
    agent_id: Optional[str] = None
    app_id: Optional[str] = None
    allow_public: bool = False
    allow_knowledgebase_ids: Tuple[str, ...] = ()
    async_mode: bool = True

    # transport
    timeout_ms: int = 5000
    retries: int = 1
    throttle_ms: int = 0

    env_status: EnvSourceStatus = field(default_factory=lambda: EnvSourceStatus(found=False))

    @property
    def has_credential(self) -> bool:
        return bool(self.api_key)

    @property
    def counter_mode(self) -> bool:
        return self.conversation_suffix_mode == "counter"

    def redacted(self) -> Dict[str, Any]:
        """Dict view safe to log or expose (API key masked)."""
        data = asdict(self)
        key = self.api_key
        data["api_key"] = f"***{key[-4:]}" if len(key) > 8 else ("***" if key else "")
        return data


def resolve_settings(
    explicit: Optional[Mapping[str, Any]] = None,
    sources: Optional[ConfigSources] = None,
) -> Settings:
    """Merge explicit config, layered sources and defaults into ``Settings``.

    Never raises for missing sources; ``Settings.env_status`` reports which
    ``.env`` files were found so the caller can log it.
    """
    cfg = normalize_keys(explicit)
    src = sources if sources is not None else ConfigSources.from_environment()
    env = src.get
    d = Settings()

    base_url = str(_first_truthy(cfg.get("base_url"), env("MEMOS_BASE_URL"), DEFAULT_BASE_URL))
    # strip trailing separators exactly once
    base_url = re.sub(r"/+$", "", base_url)

    suffix_mode = str(
        _first_present(cfg.get("conversation_suffix_mode"), env("MEMOS_CONVERSATION_SUFFIX_MODE"), "none")
    ).strip().lower()
    if suffix_mode not in SUFFIX_MODES:
        suffix_mode = "none"

    strategy = str(cfg.get("capture_strategy") or d.capture_strategy).strip().lower()
    if strategy not in CAPTURE_STRATEGIES:
        logger.warning("[memos-cloud] unknown capture strategy %r, using last_turn", strategy)
        strategy = "last_turn"

    style = str(cfg.get("context_style") or d.context_style).strip().lower()
    if style not in CONTEXT_STYLES:
        style = "prompt"

    info = cfg.get("info")
    return Settings(
        base_url=base_url,
        api_key=str(_first_truthy(cfg.get("api_key"), env("MEMOS_API_KEY"), "")),
        user_id=str(_first_truthy(cfg.get("user_id"), env("MEMOS_USER_ID"), DEFAULT_USER_ID)),
        conversation_id=str(_first_truthy(cfg.get("conversation_id"), env("MEMOS_CONVERSATION_ID"), "")),
        conversation_id_prefix=str(
            _first_present(cfg.get("conversation_id_prefix"), env("MEMOS_CONVERSATION_PREFIX"), "")
        ),
        conversation_id_suffix=str(
            _first_present(cfg.get("conversation_id_suffix"), env("MEMOS_CONVERSATION_SUFFIX"), "")
        ),
        conversation_suffix_mode=suffix_mode,
        reset_on_new=parse_bool(
            cfg.get("reset_on_new"), parse_bool(env("MEMOS_CONVERSATION_RESET_ON_NEW"), True)
        ),
        recall_global=parse_bool(cfg.get("recall_global"), parse_bool(env("MEMOS_RECALL_GLOBAL"), True)),
        recall_enabled=parse_bool(cfg.get("recall_enabled"), d.recall_enabled),
        query_prefix=str(cfg.get("query_prefix") or ""),
        max_query_chars=_non_negative_int(cfg.get("max_query_chars"), d.max_query_chars),
        min_prompt_chars=_non_negative_int(cfg.get("min_prompt_chars"), d.min_prompt_chars),
        memory_limit_number=_non_negative_int(cfg.get("memory_limit_number"), d.memory_limit_number),
        include_preference=parse_bool(cfg.get("include_preference"), d.include_preference),
        preference_limit_number=_non_negative_int(cfg.get("preference_limit_number"), d.preference_limit_number),
        include_tool_memory=parse_bool(cfg.get("include_tool_memory"), d.include_tool_memory),
        tool_memory_limit_number=_non_negative_int(
            cfg.get("tool_memory_limit_number"), d.tool_memory_limit_number
        ),
        filter=cfg.get("filter") or None,
        knowledgebase_ids=_string_list(cfg.get("knowledgebase_ids")),
        max_item_chars=_non_negative_int(cfg.get("max_item_chars"), d.max_item_chars),
        wrap_tag_blocks=parse_bool(cfg.get("wrap_tag_blocks"), d.wrap_tag_blocks),
        context_style=style,
        add_enabled=parse_bool(cfg.get("add_enabled"), d.add_enabled),
        capture_strategy=strategy,
        max_message_chars=_non_negative_int(cfg.get("max_message_chars"), d.max_message_chars),
        include_assistant=parse_bool(cfg.get("include_assistant"), d.include_assistant),
        tags=_string_list(cfg.get("tags"), d.tags),
        info=dict(info) if isinstance(info, Mapping) else {},
        agent_id=cfg.get("agent_id") or None,
        app_id=cfg.get("app_id") or None,
        allow_public=parse_bool(cfg.get("allow_public"), d.allow_public),
        allow_knowledgebase_ids=_string_list(cfg.get("allow_knowledgebase_ids")),
        async_mode=parse_bool(cfg.get("async_mode"), d.async_mode),
        timeout_ms=_non_negative_int(cfg.get("timeout_ms"), d.timeout_ms),
        retries=_non_negative_int(cfg.get("retries"), d.retries),
        throttle_ms=_non_negative_int(cfg.get("throttle_ms"), d.throttle_ms),
        env_status=src.status(),
    )


# -----------------------------
# YAML plugin config
# -----------------------------
def load_config(path: str | None = None) -> Dict[str, Any]:
    """Load the explicit plugin configuration from YAML.

    Parameters
    ----------
    path : str | None
        Optional path to a configuration file. If not provided, the
        environment variable ``MEMOS_BRIDGE_CONFIG`` is consulted. As a
        last resort ``config/default.yaml`` is used.

    Returns
    -------
    Dict[str, Any]
        The ``memos`` section of the document if present, else the whole
        document. Empty when the file does not exist.
    """
    if path is None:
        path = os.environ.get(CONFIG_PATH_ENV, DEFAULT_CONFIG_PATH)

    path_obj = Path(path)
    if not path_obj.exists():
        logger.warning("[memos-cloud] config file not found at %s; using defaults", path_obj)
        return {}

    with path_obj.open("r", encoding="utf-8") as f:
        try:
            cfg = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise RuntimeError(f"Failed to parse config file {path_obj}: {e}")

    if not isinstance(cfg, dict):
        raise RuntimeError(f"Invalid config format in {path_obj}, expected dict.")

    section = cfg.get("memos", cfg)
    if not isinstance(section, dict):
        raise RuntimeError(f"Invalid 'memos' section in {path_obj}, expected dict.")
    return section
