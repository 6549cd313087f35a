from __future__ import annotations

from collections.abc import Sequence

from .types import Task


def sort_tasks(tasks: list[Task]) -> list[Task]:
    # sorted() is stable, so equal timestamps keep their relative order.
    return sorted(tasks, key=lambda task: task["timestamp"], reverse=True)


def _refresh_timestamps(current: Sequence[Task], incoming: Sequence[Task]) -> list[Task]:
    polled_by_id: dict[str, Task] = {}
    for task in incoming:
        polled_by_id.setdefault(task["id"], task)
    refreshed: list[Task] = []
    for task in current:
        polled = polled_by_id.get(task["id"])
        if polled is None or polled["timestamp"] == task["timestamp"]:
            refreshed.append(task)
        else:
            refreshed.append({**task, "timestamp": polled["timestamp"]})
    return refreshed


def merge_task_lists(current: Sequence[Task], incoming: Sequence[Task]) -> list[Task]:
    """Merge a polled task list into the held one.

    A task missing from ``incoming`` is kept: a poll that omits it may just
    have raced the agent writing to disk. New ids are surfaced immediately,
    known tasks only pick up their newer timestamp.
    """

    known_ids = {task["id"] for task in current}
    new_tasks: list[Task] = []
    seen_new: set[str] = set()
    for task in incoming:
        if task["id"] in known_ids or task["id"] in seen_new:
            continue
        seen_new.add(task["id"])
        new_tasks.append(task)

    return sort_tasks([*new_tasks, *_refresh_timestamps(current, incoming)])
