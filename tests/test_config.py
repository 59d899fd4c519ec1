from __future__ import annotations

from pathlib import Path

import pytest

from memos_bridge.config import (
    DEFAULT_BASE_URL,
    ConfigSources,
    EnvFile,
    SourceLayer,
    load_config,
    parse_bool,
    resolve_settings,
)


def _sources(*layers: dict) -> ConfigSources:
    return ConfigSources([SourceLayer(f"layer{i}", values) for i, values in enumerate(layers)])


def test_defaults_without_any_source():
    s = resolve_settings({}, ConfigSources.empty())
    assert s.base_url == DEFAULT_BASE_URL
    assert s.api_key == ""
    assert s.user_id == "openclaw-user"
    assert s.capture_strategy == "last_turn"
    assert s.max_message_chars == 20000
    assert s.tags == ("openclaw",)
    assert s.recall_global is True
    assert s.env_status.found is False


def test_explicit_value_beats_layered_sources():
    sources = _sources({"MEMOS_API_KEY": "from-file"}, {"MEMOS_API_KEY": "from-env"})
    assert resolve_settings({"apiKey": "explicit"}, sources).api_key == "explicit"
    assert resolve_settings({}, sources).api_key == "from-file"


def test_first_layer_with_a_value_wins():
    sources = _sources({"OTHER": "x"}, {"MEMOS_USER_ID": "second"}, {"MEMOS_USER_ID": "third"})
    assert resolve_settings({}, sources).user_id == "second"


def test_camel_and_snake_keys_are_equivalent():
    a = resolve_settings({"maxMessageChars": 10, "captureStrategy": "full_session"}, ConfigSources.empty())
    b = resolve_settings({"max_message_chars": 10, "capture_strategy": "full_session"}, ConfigSources.empty())
    assert a.max_message_chars == b.max_message_chars == 10
    assert a.capture_strategy == b.capture_strategy == "full_session"


def test_trailing_slashes_are_stripped_from_base_url():
    s = resolve_settings({"baseUrl": "https://memos.example/api//"}, ConfigSources.empty())
    assert s.base_url == "https://memos.example/api"


def test_empty_prefix_from_env_is_honoured_and_empty_key_is_absent():
    sources = _sources({"MEMOS_CONVERSATION_PREFIX": "", "MEMOS_API_KEY": ""}, {"MEMOS_API_KEY": "later"})
    s = resolve_settings({}, sources)
    assert s.conversation_id_prefix == ""
    # empty credential is treated as absent
    assert s.api_key == ""


@pytest.mark.parametrize("raw,expected", [
    ("1", True), ("true", True), ("YES", True), (" on ", True), ("y", True),
    ("0", False), ("false", False), ("No", False), ("off", False),
    (True, True), (False, False),
])
def test_parse_bool_spellings(raw, expected):
    assert parse_bool(raw, not expected) is expected


@pytest.mark.parametrize("raw", [None, "", "maybe", "2"])
def test_parse_bool_falls_back_to_default(raw):
    assert parse_bool(raw, True) is True
    assert parse_bool(raw, False) is False


def test_booleans_from_env_layers():
    sources = _sources({"MEMOS_RECALL_GLOBAL": "off", "MEMOS_CONVERSATION_RESET_ON_NEW": "garbage"})
    s = resolve_settings({}, sources)
    assert s.recall_global is False
    assert s.reset_on_new is True


def test_numeric_limits_are_non_negative():
    s = resolve_settings(
        {"maxMessageChars": -5, "timeoutMs": "abc", "retries": "3", "throttleMs": None},
        ConfigSources.empty(),
    )
    assert s.max_message_chars == 0
    assert s.timeout_ms == 5000
    assert s.retries == 3
    assert s.throttle_ms == 0


def test_unknown_modes_fall_back():
    s = resolve_settings(
        {"captureStrategy": "everything", "conversationSuffixMode": "weird", "contextStyle": "fancy"},
        ConfigSources.empty(),
    )
    assert s.capture_strategy == "last_turn"
    assert s.conversation_suffix_mode == "none"
    assert s.context_style == "prompt"


def test_env_files_are_read_in_order_before_process_env(tmp_path: Path):
    first = tmp_path / "openclaw" / ".env"
    second = tmp_path / "moltbot" / ".env"
    second.parent.mkdir()
    second.write_text('MEMOS_API_KEY="from-moltbot"\nMEMOS_USER_ID=alice\n', encoding="utf-8")
    files = [EnvFile("openclaw", first), EnvFile("moltbot", second)]

    sources = ConfigSources.from_environment(files, environ={"MEMOS_API_KEY": "proc", "MEMOS_BASE_URL": "https://p/"})
    s = resolve_settings({}, sources)

    assert s.api_key == "from-moltbot"
    assert s.user_id == "alice"
    assert s.base_url == "https://p"
    assert s.env_status.found is True
    assert s.env_status.sources == ("moltbot",)
    assert s.env_status.paths == (str(second),)
    assert s.env_status.search_paths == (str(first), str(second))


def test_missing_env_files_are_reported_not_raised(tmp_path: Path):
    files = [EnvFile("openclaw", tmp_path / "nope" / ".env")]
    status = ConfigSources.from_environment(files, environ={}).status()
    assert status.found is False
    assert status.sources == ()
    assert status.search_paths == (str(tmp_path / "nope" / ".env"),)


def test_sources_are_snapshots(tmp_path: Path):
    env = {"MEMOS_API_KEY": "before"}
    sources = ConfigSources.from_environment([], environ=env)
    env["MEMOS_API_KEY"] = "after"
    assert sources.get("MEMOS_API_KEY") == "before"


def test_redacted_masks_api_key():
    s = resolve_settings({"apiKey": "mpg-1234567890abcd"}, ConfigSources.empty())
    data = s.redacted()
    assert data["api_key"] == "***abcd"
    assert "mpg-1234567890abcd" not in str(data)


def test_load_config_reads_memos_section(tmp_path: Path):
    path = tmp_path / "memos.yaml"
    path.write_text("memos:\n  apiKey: k\n  throttle_ms: 100\n", encoding="utf-8")
    cfg = load_config(str(path))
    assert cfg == {"apiKey": "k", "throttle_ms": 100}
    assert resolve_settings(cfg, ConfigSources.empty()).throttle_ms == 100


def test_load_config_uses_env_var_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    path = tmp_path / "other.yaml"
    path.write_text("userId: bob\n", encoding="utf-8")
    monkeypatch.setenv("MEMOS_BRIDGE_CONFIG", str(path))
    assert load_config() == {"userId": "bob"}


def test_load_config_missing_file_is_empty(tmp_path: Path):
    assert load_config(str(tmp_path / "missing.yaml")) == {}


def test_load_config_rejects_non_mapping(tmp_path: Path):
    path = tmp_path / "bad.yaml"
    path.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(RuntimeError):
        load_config(str(path))


def test_default_yaml_matches_builtin_defaults(project_root: Path):
    cfg = load_config(str(project_root / "config" / "default.yaml"))
    s = resolve_settings(cfg, ConfigSources.empty())
    d = resolve_settings({}, ConfigSources.empty())
    assert s == d
