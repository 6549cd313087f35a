from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from typing import Any

from .types import DEFAULT_SOURCE, Message, Source, Task


@dataclass(frozen=True)
class ViewerState:
    """Everything the viewer holds between polls.

    Values are replaced wholesale, never mutated in place.
    """

    source: Source = DEFAULT_SOURCE
    tasks: list[Task] = field(default_factory=list)
    selected_task: str | None = None
    conversation: list[Message] | None = None
    uploaded_file_name: str | None = None
    loading_tasks: bool = False
    loading_conversation: bool = False
    error: str | None = None
    expand_all: bool = False
    filter_condensed: bool = True

    @property
    def is_local_file(self) -> bool:
        return self.uploaded_file_name is not None

    def evolve(self, **changes: Any) -> ViewerState:
        return replace(self, **changes)


class StateStore:
    """Holds the current ``ViewerState``; every change is one atomic swap."""

    def __init__(self, initial: ViewerState | None = None) -> None:
        self._lock = threading.Lock()
        self._state = initial or ViewerState()
        self._revision = 0

    def get(self) -> ViewerState:
        with self._lock:
            return self._state

    @property
    def revision(self) -> int:
        with self._lock:
            return self._revision

    def update(self, fn: Callable[[ViewerState], ViewerState]) -> ViewerState:
        with self._lock:
            previous = self._state
            current = fn(previous)
            if current is previous:
                return current
            self._state = current
            self._revision += 1
        return current
