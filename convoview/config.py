from __future__ import annotations

import json
import os
import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .types import DEFAULT_SOURCE, SOURCES, Source

DEFAULT_CONFIG_PATH = Path("~/.config/convoview/config.json").expanduser()

_GLOBAL_STORAGE = Path("~/Library/Application Support/Code/User/globalStorage").expanduser()
DEFAULT_TASK_DIRS: dict[Source, Path] = {
    "nightly": _GLOBAL_STORAGE / "rooveterinaryinc.roo-code-nightly" / "tasks",
    "production": _GLOBAL_STORAGE / "rooveterinaryinc.roo-cline" / "tasks",
}

CONFIG_ENV_OVERRIDES = {
    "nightly_tasks_dir": "CONVOVIEW_NIGHTLY_TASKS_DIR",
    "production_tasks_dir": "CONVOVIEW_PRODUCTION_TASKS_DIR",
    "default_source": "CONVOVIEW_SOURCE",
    "viewer_host": "CONVOVIEW_VIEWER_HOST",
    "viewer_port": "CONVOVIEW_VIEWER_PORT",
    "max_port_attempts": "CONVOVIEW_MAX_PORT_ATTEMPTS",
    "port_file": "CONVOVIEW_PORT_FILE",
    "task_poll_interval_s": "CONVOVIEW_TASK_POLL_INTERVAL_S",
    "conversation_poll_interval_s": "CONVOVIEW_CONVERSATION_POLL_INTERVAL_S",
    "request_timeout_s": "CONVOVIEW_REQUEST_TIMEOUT_S",
    "preview_chars": "CONVOVIEW_PREVIEW_CHARS",
}

_INT_KEYS = {"viewer_port", "max_port_attempts", "preview_chars"}
_FLOAT_KEYS = {"task_poll_interval_s", "conversation_poll_interval_s", "request_timeout_s"}


def get_config_path(path: Path | None = None) -> Path:
    candidate = path or Path(os.getenv("CONVOVIEW_CONFIG", DEFAULT_CONFIG_PATH))
    return candidate.expanduser()


def read_config_file(path: Path | None = None) -> dict[str, Any]:
    config_path = get_config_path(path)
    if not config_path.exists():
        return {}
    raw = config_path.read_text()
    if not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError("invalid config json") from exc
    if not isinstance(data, dict):
        raise ValueError("config must be an object")
    return data


def write_config_file(data: dict[str, Any], path: Path | None = None) -> Path:
    config_path = get_config_path(path)
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(json.dumps(data, ensure_ascii=False, indent=2) + "\n")
    return config_path


def get_env_overrides() -> dict[str, str]:
    overrides: dict[str, str] = {}
    for key, env_var in CONFIG_ENV_OVERRIDES.items():
        value = os.getenv(env_var)
        if value is not None:
            overrides[key] = value
    return overrides


@dataclass
class ViewerConfig:
    nightly_tasks_dir: str = str(DEFAULT_TASK_DIRS["nightly"])
    production_tasks_dir: str = str(DEFAULT_TASK_DIRS["production"])
    default_source: Source = DEFAULT_SOURCE
    viewer_host: str = "127.0.0.1"
    viewer_port: int = 41839
    max_port_attempts: int = 10
    port_file: str = "~/.convoview/server-port"
    task_poll_interval_s: float = 5.0
    conversation_poll_interval_s: float = 2.0
    request_timeout_s: float = 3.0
    preview_chars: int = 200

    def tasks_dir(self, source: Source) -> Path:
        raw = self.production_tasks_dir if source == "production" else self.nightly_tasks_dir
        return Path(raw).expanduser()

    def port_file_path(self) -> Path:
        return Path(self.port_file).expanduser()


def _parse_int(value: object, default: int, *, key: str) -> int:
    if value is None:
        return default
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        warnings.warn(f"Invalid int for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default


def _parse_float(value: object, default: float, *, key: str) -> float:
    if value is None:
        return default
    try:
        parsed = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        warnings.warn(f"Invalid number for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default
    if parsed <= 0:
        warnings.warn(f"Non-positive value for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default
    return parsed


def _parse_source(value: object, default: Source, *, key: str) -> Source:
    if value is None:
        return default
    if isinstance(value, str) and value.strip().lower() in SOURCES:
        return value.strip().lower()  # type: ignore[return-value]
    warnings.warn(f"Invalid source for {key}: {value!r}", RuntimeWarning, stacklevel=2)
    return default


def _apply_value(cfg: ViewerConfig, key: str, value: object) -> None:
    if key in _INT_KEYS:
        setattr(cfg, key, _parse_int(value, getattr(cfg, key), key=key))
    elif key in _FLOAT_KEYS:
        setattr(cfg, key, _parse_float(value, getattr(cfg, key), key=key))
    elif key == "default_source":
        cfg.default_source = _parse_source(value, cfg.default_source, key=key)
    elif value is not None:
        setattr(cfg, key, str(value))


def load_config(path: Path | None = None) -> ViewerConfig:
    cfg = ViewerConfig()
    config_path = get_config_path(path)
    if config_path.exists():
        try:
            data = json.loads(config_path.read_text())
        except json.JSONDecodeError:
            warnings.warn(f"Invalid config file: {config_path}", RuntimeWarning, stacklevel=2)
            data = {}
        if isinstance(data, dict):
            cfg = _apply_dict(cfg, data)
    cfg = _apply_env(cfg)
    return cfg


def _apply_dict(cfg: ViewerConfig, data: dict[str, Any]) -> ViewerConfig:
    for key, value in data.items():
        if not hasattr(cfg, key):
            continue
        _apply_value(cfg, key, value)
    return cfg


def _apply_env(cfg: ViewerConfig) -> ViewerConfig:
    for key, value in get_env_overrides().items():
        _apply_value(cfg, key, value)
    return cfg
