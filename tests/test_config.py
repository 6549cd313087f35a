import json
from pathlib import Path

import pytest

from convoview.config import (
    ViewerConfig,
    get_config_path,
    get_env_overrides,
    load_config,
    read_config_file,
    write_config_file,
)


def test_read_config_file_rejects_invalid_json(tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text("{not-json}")
    with pytest.raises(ValueError, match="invalid config json"):
        read_config_file(config_path)


def test_read_config_file_rejects_non_object(tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text("[1, 2]")
    with pytest.raises(ValueError, match="config must be an object"):
        read_config_file(config_path)


def test_read_config_file_missing_or_empty_is_empty(tmp_path: Path) -> None:
    assert read_config_file(tmp_path / "missing.json") == {}
    empty = tmp_path / "empty.json"
    empty.write_text("  \n")
    assert read_config_file(empty) == {}


def test_write_config_file_round_trips(tmp_path: Path) -> None:
    path = write_config_file({"viewer_port": 5000}, tmp_path / "nested" / "config.json")
    assert json.loads(path.read_text()) == {"viewer_port": 5000}


def test_get_config_path_honors_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("CONVOVIEW_CONFIG", str(tmp_path / "custom.json"))
    assert get_config_path() == tmp_path / "custom.json"
    assert get_config_path(tmp_path / "explicit.json") == tmp_path / "explicit.json"


def test_load_config_defaults() -> None:
    cfg = load_config()
    assert cfg == ViewerConfig()
    assert cfg.default_source == "nightly"
    assert cfg.viewer_port == 41839
    assert cfg.task_poll_interval_s == 5.0
    assert cfg.conversation_poll_interval_s == 2.0


def test_load_config_file_then_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text(
        json.dumps(
            {
                "production_tasks_dir": str(tmp_path / "prod"),
                "default_source": "production",
                "viewer_port": 5001,
                "unknown_key": "ignored",
            }
        )
    )
    monkeypatch.setenv("CONVOVIEW_VIEWER_PORT", "6000")
    monkeypatch.setenv("CONVOVIEW_TASK_POLL_INTERVAL_S", "1.5")

    cfg = load_config(config_path)

    assert cfg.tasks_dir("production") == tmp_path / "prod"
    assert cfg.default_source == "production"
    assert cfg.viewer_port == 6000
    assert cfg.task_poll_interval_s == 1.5
    assert get_env_overrides() == {"viewer_port": "6000", "task_poll_interval_s": "1.5"}


def test_load_config_warns_on_invalid_values(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps({"viewer_port": "abc", "default_source": "staging"}))
    monkeypatch.setenv("CONVOVIEW_CONVERSATION_POLL_INTERVAL_S", "0")

    with pytest.warns(RuntimeWarning):
        cfg = load_config(config_path)

    assert cfg.viewer_port == 41839
    assert cfg.default_source == "nightly"
    assert cfg.conversation_poll_interval_s == 2.0


def test_load_config_warns_on_invalid_json(tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text("{broken")
    with pytest.warns(RuntimeWarning, match="Invalid config file"):
        cfg = load_config(config_path)
    assert cfg == ViewerConfig()


def test_port_file_path_expands_user(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("HOME", str(tmp_path))
    cfg = ViewerConfig(port_file="~/port")
    assert cfg.port_file_path() == tmp_path / "port"
