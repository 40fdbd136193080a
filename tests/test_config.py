import json
from pathlib import Path

from sppmon.config import MergedSettings, resolve_tool, effective_settings


def test_defaults_loaded(tmp_path):
    settings = MergedSettings(overrides_path=tmp_path / "overrides.json")
    assert settings.RELEASES_DIR_NAME == "releases"
    assert settings.OVERRIDES_JSON_PATH == tmp_path / "overrides.json"


def test_overrides_only_for_modifiable_keys(tmp_path):
    overrides = tmp_path / "overrides.json"
    overrides.write_text(json.dumps({
        "GRACEFUL_STOP_TIMEOUT": 9,
        "BASE_DIR": str(tmp_path / "base"),
        "RELEASES_DIR_NAME": "hacked",
        "NOT_A_SETTING": 1,
    }))
    settings = MergedSettings(overrides_path=overrides)

    assert settings.GRACEFUL_STOP_TIMEOUT == 9
    assert settings.BASE_DIR == tmp_path / "base"
    assert isinstance(settings.BASE_DIR, Path)
    assert settings.RELEASES_DIR_NAME == "releases"
    assert not hasattr(settings, "NOT_A_SETTING")


def test_malformed_overrides_are_ignored(tmp_path):
    overrides = tmp_path / "overrides.json"
    overrides.write_text("{not json")
    settings = MergedSettings(overrides_path=overrides)
    assert settings.GRACEFUL_STOP_TIMEOUT == effective_settings.GRACEFUL_STOP_TIMEOUT


def test_non_object_overrides_are_ignored(tmp_path):
    overrides = tmp_path / "overrides.json"
    overrides.write_text(json.dumps(["GRACEFUL_STOP_TIMEOUT", 9]))
    settings = MergedSettings(overrides_path=overrides)
    assert settings.GRACEFUL_STOP_TIMEOUT == effective_settings.GRACEFUL_STOP_TIMEOUT


def test_resolve_tool_prefers_vendored(tmp_path, monkeypatch):
    tools = tmp_path / "tools"
    tools.mkdir()
    (tools / "sppmon-test-tool").write_text("#!/bin/sh\n")
    monkeypatch.setattr(effective_settings, "TOOLS_DIR", tools)
    resolve_tool.cache_clear()
    try:
        assert resolve_tool("sppmon-test-tool") == str(tools / "sppmon-test-tool")
        assert resolve_tool("sppmon-surely-missing-tool") is None
    finally:
        resolve_tool.cache_clear()
