from __future__ import annotations

import json
import logging
import re
from pathlib import Path, PurePosixPath
from typing import Any

from .config import ViewerConfig
from .content import normalize_content
from .types import Message, Source, Task, is_source

logger = logging.getLogger(__name__)

CONVERSATION_FILENAME = "api_conversation_history.json"
NO_PREVIEW = "No message preview"
PREVIEW_CHARS = 200

_TASK_RE = re.compile(r"<task>([\s\S]*?)</task>")
_ENVIRONMENT_MARKER = "<environment_details>"


class TaskNotFoundError(LookupError):
    def __init__(self, task_id: str, path: Path | None = None) -> None:
        super().__init__(f"conversation not found: {task_id}")
        self.task_id = task_id
        self.path = path


def extract_preview(conversation: Any, *, max_chars: int = PREVIEW_CHARS) -> str:
    """Best-effort preview from the first message's first meaningful text block."""

    if not isinstance(conversation, list) or not conversation:
        return NO_PREVIEW
    first = conversation[0]
    if not isinstance(first, dict) or not first.get("content"):
        return NO_PREVIEW
    for block in normalize_content(first["content"]):
        if not isinstance(block, dict) or block.get("type") != "text" or not block.get("text"):
            continue
        text = str(block["text"])
        preview = ""
        match = _TASK_RE.search(text)
        if match:
            preview = match.group(1).strip()[:max_chars]
        elif _ENVIRONMENT_MARKER not in text:
            preview = text[:max_chars]
        if preview:
            return preview
    return NO_PREVIEW


def validate_task_id(task_id: str) -> str:
    clean = task_id.strip()
    path = PurePosixPath(clean)
    if not clean or "\\" in clean or len(path.parts) != 1 or clean in {".", ".."}:
        raise ValueError("invalid task id")
    return clean


class TaskRepository:
    """Read-only view over the agent's on-disk task directories."""

    def __init__(
        self,
        task_dirs: dict[Source, Path],
        *,
        preview_chars: int = PREVIEW_CHARS,
    ) -> None:
        self.task_dirs = task_dirs
        self.preview_chars = preview_chars

    @classmethod
    def from_config(cls, config: ViewerConfig) -> TaskRepository:
        return cls(
            {"nightly": config.tasks_dir("nightly"), "production": config.tasks_dir("production")},
            preview_chars=config.preview_chars,
        )

    def tasks_dir(self, source: str) -> Path:
        if not is_source(source) or source not in self.task_dirs:
            raise ValueError("invalid source")
        return self.task_dirs[source]  # type: ignore[index]

    def conversation_path(self, source: str, task_id: str) -> Path:
        return self.tasks_dir(source) / validate_task_id(task_id) / CONVERSATION_FILENAME

    def list_tasks(self, source: str) -> list[Task]:
        tasks_dir = self.tasks_dir(source)
        tasks: list[Task] = []
        for entry in tasks_dir.iterdir():
            if not entry.is_dir():
                continue
            conversation_path = entry / CONVERSATION_FILENAME
            try:
                stat = conversation_path.stat()
                conversation = json.loads(conversation_path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError, UnicodeDecodeError):
                # The agent may be mid-write; the next poll will pick it up.
                logger.debug("skipping unreadable task %s", entry.name)
                continue
            tasks.append(
                {
                    "id": entry.name,
                    "timestamp": stat.st_mtime_ns / 1_000_000,
                    "firstMessage": extract_preview(conversation, max_chars=self.preview_chars),
                }
            )
        tasks.sort(key=lambda task: task["timestamp"], reverse=True)
        return tasks

    def get_conversation(self, source: str, task_id: str) -> list[Message]:
        path = self.conversation_path(source, task_id)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise TaskNotFoundError(task_id, path) from exc
        return json.loads(raw)
