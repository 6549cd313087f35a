from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .client import FetchError, TaskClient
from .condense import condense_view
from .config import ViewerConfig
from .poller import ConversationPoller, TaskListPoller
from .repository import TaskNotFoundError
from .scheduler import PollScheduler
from .state import StateStore, ViewerState
from .tool_pairing import tool_uses_missing_results
from .types import DEFAULT_SOURCE, Message, Source, is_message_list, is_source

logger = logging.getLogger(__name__)

TASKS_LOAD_ERROR = "Failed to load tasks. Make sure the server is running."
CONVERSATION_LOAD_ERROR = "Failed to load conversation"
CONVERSATION_NOT_FOUND_ERROR = "Conversation not found. The task may have been deleted."
FILE_READ_ERROR = "Failed to read file."
FILE_PARSE_ERROR = "Failed to parse JSON file."
FILE_FORMAT_ERROR = "Invalid file format. Expected an array of messages."


@dataclass(frozen=True)
class ConversationView:
    title: str
    messages: list[Message]
    total: int
    hidden_count: int
    missing_tool_results: set[str]
    expand_all: bool
    filter_condensed: bool


def build_view(state: ViewerState) -> ConversationView | None:
    if state.conversation is None:
        return None
    condensed = condense_view(state.conversation, filter_condensed=state.filter_condensed)
    return ConversationView(
        title=state.selected_task or state.uploaded_file_name or "uploaded",
        messages=condensed.messages,
        total=condensed.total,
        hidden_count=condensed.hidden_count,
        missing_tool_results=tool_uses_missing_results(state.conversation),
        expand_all=state.expand_all,
        filter_condensed=state.filter_condensed,
    )


def parse_local_conversation(text: str) -> list[Message]:
    """Parse an uploaded conversation; raises ValueError with a user-facing message."""

    try:
        data: Any = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValueError(FILE_PARSE_ERROR) from exc
    if not is_message_list(data):
        raise ValueError(FILE_FORMAT_ERROR)
    return data


class ViewerCoordinator:
    """Owns viewer state and wires user actions to the two polling streams.

    Only user-initiated actions surface errors. Background polls keep the
    last good state.
    """

    def __init__(
        self,
        client: TaskClient,
        *,
        source: Source = DEFAULT_SOURCE,
        scheduler: PollScheduler | None = None,
        task_poll_interval_s: float = 5.0,
        conversation_poll_interval_s: float = 2.0,
    ) -> None:
        self.client = client
        self.store = StateStore(ViewerState(source=source))
        self.scheduler = scheduler or PollScheduler()
        self.task_poller = TaskListPoller(
            client, self.store, self.scheduler, interval_s=task_poll_interval_s
        )
        self.conversation_poller = ConversationPoller(
            client, self.store, self.scheduler, interval_s=conversation_poll_interval_s
        )

    @classmethod
    def from_config(
        cls,
        client: TaskClient,
        config: ViewerConfig,
        *,
        source: Source | None = None,
    ) -> ViewerCoordinator:
        return cls(
            client,
            source=source or config.default_source,
            task_poll_interval_s=config.task_poll_interval_s,
            conversation_poll_interval_s=config.conversation_poll_interval_s,
        )

    @property
    def state(self) -> ViewerState:
        return self.store.get()

    def view(self) -> ConversationView | None:
        return build_view(self.store.get())

    def start(self) -> None:
        source = self.store.get().source
        self.load_tasks()
        self.task_poller.follow(source)

    def shutdown(self) -> None:
        self.scheduler.stop_all()

    def select_source(self, source: str) -> None:
        if not is_source(source):
            raise ValueError(f"invalid source: {source}")
        self.conversation_poller.stop()
        # Tasks from the previous corpus must never be merged with the new one.
        self.store.update(lambda s: s.evolve(source=source, tasks=[]))
        self.load_tasks()
        self.task_poller.follow(source)

    def load_tasks(self, *, keep_error: bool = False) -> bool:
        self.conversation_poller.stop()
        source = self.store.get().source
        self.store.update(
            lambda s: s.evolve(
                loading_tasks=True,
                error=s.error if keep_error else None,
                selected_task=None,
                conversation=None,
                uploaded_file_name=None,
            )
        )
        try:
            tasks = self.client.fetch_tasks(source)
        except FetchError as exc:
            logger.warning("task list load failed: %s", exc)
            self.store.update(
                lambda s: s.evolve(
                    loading_tasks=False,
                    error=s.error
                    if s.source != source or (keep_error and s.error)
                    else TASKS_LOAD_ERROR,
                )
            )
            return False
        self.store.update(
            lambda s: s.evolve(tasks=tasks, loading_tasks=False)
            if s.source == source
            else s.evolve(loading_tasks=False)
        )
        return True

    def select_task(self, task_id: str) -> bool:
        state = self.store.get()
        if state.loading_conversation:
            return False
        source = state.source
        self.conversation_poller.stop()
        self.store.update(
            lambda s: s.evolve(
                loading_conversation=True,
                error=None,
                selected_task=task_id,
                conversation=None,
                uploaded_file_name=None,
            )
        )
        try:
            conversation = self.client.fetch_conversation(source, task_id)
        except TaskNotFoundError:
            logger.info("conversation %s not found in %s", task_id, source)
            self._rollback_selection(source, task_id, CONVERSATION_NOT_FOUND_ERROR)
            self.load_tasks(keep_error=True)
            return False
        except FetchError as exc:
            logger.warning("conversation load failed for %s: %s", task_id, exc)
            self._rollback_selection(source, task_id, CONVERSATION_LOAD_ERROR)
            return False

        def _apply(s: ViewerState) -> ViewerState:
            if s.source != source or s.selected_task != task_id or s.is_local_file:
                return s.evolve(loading_conversation=False)
            return s.evolve(conversation=conversation, loading_conversation=False)

        applied = self.store.update(_apply)
        if applied.selected_task != task_id:
            return False
        self.conversation_poller.follow(source, task_id)
        return True

    def _rollback_selection(self, source: str, task_id: str, error: str) -> None:
        def _rollback(s: ViewerState) -> ViewerState:
            if s.source != source or s.selected_task != task_id:
                return s.evolve(loading_conversation=False)
            return s.evolve(loading_conversation=False, selected_task=None, error=error)

        self.store.update(_rollback)

    def close_conversation(self) -> None:
        self.conversation_poller.stop()
        self.store.update(
            lambda s: s.evolve(conversation=None, selected_task=None, uploaded_file_name=None)
        )

    def toggle_expand_all(self) -> bool:
        return self.store.update(lambda s: s.evolve(expand_all=not s.expand_all)).expand_all

    def toggle_filter_condensed(self) -> bool:
        updated = self.store.update(lambda s: s.evolve(filter_condensed=not s.filter_condensed))
        return updated.filter_condensed

    def load_local_file(self, path: Path) -> bool:
        self.store.update(lambda s: s.evolve(error=None))
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("local conversation read failed: %s", exc)
            self.store.update(lambda s: s.evolve(error=FILE_READ_ERROR))
            return False
        return self.load_local_text(text, name=path.name)

    def load_local_text(self, text: str, *, name: str) -> bool:
        """Show a conversation that has no backing task; it is never polled."""

        try:
            conversation = parse_local_conversation(text)
        except ValueError as exc:
            message = str(exc)
            self.store.update(lambda s: s.evolve(error=message))
            return False
        self.conversation_poller.stop()
        self.store.update(
            lambda s: s.evolve(
                conversation=conversation,
                selected_task=None,
                uploaded_file_name=name,
                error=None,
            )
        )
        return True
