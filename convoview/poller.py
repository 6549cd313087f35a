from __future__ import annotations

import functools
import logging
from collections.abc import Callable, Sequence

from .client import FetchError, TaskClient
from .reconcile import merge_task_lists
from .repository import TaskNotFoundError
from .scheduler import CONVERSATION_STREAM, TASKS_STREAM, PollScheduler
from .state import StateStore, ViewerState
from .types import Message, Task

logger = logging.getLogger(__name__)


def apply_task_list_poll(state: ViewerState, source: str, incoming: Sequence[Task]) -> ViewerState:
    # A response for a source the user has since switched away from is dropped.
    if state.source != source:
        return state
    merged = merge_task_lists(state.tasks, incoming)
    if merged == state.tasks:
        return state
    return state.evolve(tasks=merged)


def apply_conversation_poll(
    state: ViewerState,
    source: str,
    task_id: str,
    conversation: list[Message],
) -> ViewerState:
    """Replace the held conversation if ``task_id`` is still the selection."""

    if state.is_local_file:
        return state
    if state.source != source or state.selected_task != task_id:
        return state
    if conversation == state.conversation:
        return state
    return state.evolve(conversation=conversation)


def _apply(store: StateStore, step: Callable[[ViewerState], ViewerState]) -> bool:
    changed = False

    def _step(state: ViewerState) -> ViewerState:
        nonlocal changed
        result = step(state)
        changed = result is not state
        return result

    store.update(_step)
    return changed


class TaskListPoller:
    def __init__(
        self,
        client: TaskClient,
        store: StateStore,
        scheduler: PollScheduler,
        *,
        interval_s: float,
    ) -> None:
        self.client = client
        self.store = store
        self.scheduler = scheduler
        self.interval_s = interval_s

    def follow(self, source: str) -> None:
        self.scheduler.start(TASKS_STREAM, self.interval_s, functools.partial(self.tick, source))

    def stop(self) -> None:
        self.scheduler.stop(TASKS_STREAM)

    def tick(self, source: str) -> bool:
        if self.store.get().source != source:
            return False
        try:
            incoming = self.client.fetch_tasks(source)
        except FetchError as exc:
            logger.debug("task list poll failed: %s", exc)
            return False
        return _apply(self.store, lambda s: apply_task_list_poll(s, source, incoming))


class ConversationPoller:
    """Refreshes the selected conversation on a fixed interval.

    Background failures are logged and otherwise ignored; the last good
    conversation stays on screen until the next successful tick.
    """

    def __init__(
        self,
        client: TaskClient,
        store: StateStore,
        scheduler: PollScheduler,
        *,
        interval_s: float,
    ) -> None:
        self.client = client
        self.store = store
        self.scheduler = scheduler
        self.interval_s = interval_s

    def follow(self, source: str, task_id: str) -> None:
        self.scheduler.start(
            CONVERSATION_STREAM,
            self.interval_s,
            functools.partial(self.tick, source, task_id),
        )

    def stop(self) -> None:
        self.scheduler.stop(CONVERSATION_STREAM)

    def tick(self, source: str, task_id: str) -> bool:
        state = self.store.get()
        if state.is_local_file or state.source != source or state.selected_task != task_id:
            return False
        try:
            conversation = self.client.fetch_conversation(source, task_id)
        except (FetchError, TaskNotFoundError) as exc:
            logger.debug("conversation poll failed for %s: %s", task_id, exc)
            return False
        return _apply(
            self.store, lambda s: apply_conversation_poll(s, source, task_id, conversation)
        )
