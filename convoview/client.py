from __future__ import annotations

import json
import logging
from http.client import HTTPException
from typing import Any, Protocol

from .http_client import api_url, request_json
from .repository import TaskNotFoundError, TaskRepository
from .types import Message, Task, is_message_list

logger = logging.getLogger(__name__)


class FetchError(RuntimeError):
    """A task or conversation fetch failed for a reason other than not-found."""


class TaskClient(Protocol):
    def fetch_tasks(self, source: str) -> list[Task]: ...

    def fetch_conversation(self, source: str, task_id: str) -> list[Message]: ...


class LocalTaskClient:
    """Reads the task repository in-process."""

    def __init__(self, repository: TaskRepository) -> None:
        self.repository = repository

    def fetch_tasks(self, source: str) -> list[Task]:
        try:
            return self.repository.list_tasks(source)
        except (OSError, ValueError) as exc:
            raise FetchError(f"failed to read tasks: {exc}") from exc

    def fetch_conversation(self, source: str, task_id: str) -> list[Message]:
        try:
            conversation = self.repository.get_conversation(source, task_id)
        except TaskNotFoundError:
            raise
        except (OSError, ValueError) as exc:
            # json.JSONDecodeError is a ValueError.
            raise FetchError(f"failed to read conversation: {exc}") from exc
        if not is_message_list(conversation):
            raise FetchError("conversation is not a list of messages")
        return conversation


class HttpTaskClient:
    """Talks to a running ``convoview serve`` instance."""

    def __init__(self, base_url: str, *, timeout_s: float = 3.0) -> None:
        self.base_url = base_url
        self.timeout_s = timeout_s

    def _get(self, *segments: str) -> tuple[int, Any]:
        url = api_url(self.base_url, *segments)
        try:
            return request_json("GET", url, timeout_s=self.timeout_s)
        except (OSError, ValueError, HTTPException) as exc:
            raise FetchError(f"request failed: {url}: {exc}") from exc

    def fetch_tasks(self, source: str) -> list[Task]:
        status, payload = self._get("tasks", source)
        if status != 200 or not isinstance(payload, list):
            raise FetchError(f"tasks request failed: status={status} payload={_describe(payload)}")
        return payload

    def fetch_conversation(self, source: str, task_id: str) -> list[Message]:
        status, payload = self._get("task", source, task_id)
        if status == 404:
            raise TaskNotFoundError(task_id)
        if status != 200 or not is_message_list(payload):
            raise FetchError(
                f"conversation request failed: status={status} payload={_describe(payload)}"
            )
        return payload


def _describe(payload: Any) -> str:
    if isinstance(payload, dict):
        return json.dumps(payload, ensure_ascii=False)[:200]
    return type(payload).__name__
