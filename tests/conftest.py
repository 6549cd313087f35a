from __future__ import annotations

import json
import os
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from convoview.config import CONFIG_ENV_OVERRIDES
from convoview.client import FetchError
from convoview.repository import CONVERSATION_FILENAME, TaskNotFoundError, TaskRepository


@pytest.fixture(autouse=True)
def _isolate_config(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("CONVOVIEW_CONFIG", str(tmp_path / "config" / "config.json"))
    for env_var in CONFIG_ENV_OVERRIDES.values():
        monkeypatch.delenv(env_var, raising=False)


@pytest.fixture
def task_dirs(tmp_path: Path) -> dict[str, Path]:
    dirs = {"nightly": tmp_path / "nightly", "production": tmp_path / "production"}
    for path in dirs.values():
        path.mkdir()
    return dirs


@pytest.fixture
def repository(task_dirs: dict[str, Path]) -> TaskRepository:
    return TaskRepository(task_dirs)  # type: ignore[arg-type]


@pytest.fixture
def write_task(task_dirs: dict[str, Path]) -> Callable[..., Path]:
    def _write(
        task_id: str,
        conversation: Any,
        *,
        source: str = "nightly",
        mtime_s: float | None = None,
    ) -> Path:
        task_dir = task_dirs[source] / task_id
        task_dir.mkdir(parents=True, exist_ok=True)
        path = task_dir / CONVERSATION_FILENAME
        if isinstance(conversation, str):
            path.write_text(conversation, encoding="utf-8")
        else:
            path.write_text(json.dumps(conversation), encoding="utf-8")
        if mtime_s is not None:
            os.utime(path, (mtime_s, mtime_s))
        return path

    return _write


class FakeClient:
    """In-memory task client; ``None`` entries simulate a failed fetch."""

    def __init__(self) -> None:
        self.tasks: dict[str, Any] = {"nightly": [], "production": []}
        self.conversations: dict[tuple[str, str], Any] = {}
        self.task_calls: list[str] = []
        self.conversation_calls: list[tuple[str, str]] = []
        self.on_fetch_conversation = None

    def fetch_tasks(self, source: str) -> list[dict]:
        self.task_calls.append(source)
        tasks = self.tasks.get(source)
        if tasks is None:
            raise FetchError("tasks unavailable")
        return list(tasks)

    def fetch_conversation(self, source: str, task_id: str) -> list[dict]:
        self.conversation_calls.append((source, task_id))
        if self.on_fetch_conversation is not None:
            self.on_fetch_conversation(source, task_id)
        key = (source, task_id)
        if key not in self.conversations:
            raise TaskNotFoundError(task_id)
        conversation = self.conversations[key]
        if conversation is None:
            raise FetchError("conversation unavailable")
        return conversation


@pytest.fixture
def client() -> FakeClient:
    return FakeClient()
