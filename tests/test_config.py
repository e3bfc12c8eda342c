from __future__ import annotations

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from amf.config.loader import get_config_path, load_config, save_config
from amf.config.schema import Config


@pytest.fixture(autouse=True)
def isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    for name in ("AMF_LOG_LEVEL", "AMF_STORE_PATH", "AMF_TMUX__SESSION_PREFIX"):
        monkeypatch.delenv(name, raising=False)
    return tmp_path / "xdg" / "amf"


def test_defaults(isolated_home: Path) -> None:
    config = load_config()

    assert config.tmux.session_prefix == "amf-"
    assert config.agent.command == "claude"
    assert config.ui.view_tick_ms == 50
    assert config.store_file == isolated_home / "projects.json"
    assert config.log_file == isolated_home / "logs" / "amf.log"
    assert get_config_path() == isolated_home / "config.json"


def test_env_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("AMF_LOG_LEVEL", "debug")
    monkeypatch.setenv("AMF_TMUX__SESSION_PREFIX", "dev-")

    config = load_config()

    assert config.log_level == "DEBUG"
    assert config.tmux.session_prefix == "dev-"


def test_file_values_and_store_override(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps({"store_path": str(tmp_path / "elsewhere.json"), "agent": {"check_on_start": False}}),
        encoding="utf-8",
    )

    config = load_config(path)

    assert config.store_file == tmp_path / "elsewhere.json"
    assert config.agent.check_on_start is False
    assert config.agent.command == "claude"


@pytest.mark.parametrize("content", ["{broken", "[1, 2]", json.dumps({"log_level": "LOUD"})])
def test_invalid_file_falls_back_to_defaults(tmp_path: Path, content: str) -> None:
    path = tmp_path / "config.json"
    path.write_text(content, encoding="utf-8")

    config = load_config(path)

    assert config.log_level == "INFO"


def test_log_level_is_validated() -> None:
    with pytest.raises(ValidationError):
        Config(log_level="chatty")


def test_save_then_load(tmp_path: Path) -> None:
    config = Config()
    config.ui.idle_tick_ms = 500

    path = save_config(config, tmp_path / "nested" / "config.json")

    assert load_config(path).ui.idle_tick_ms == 500
