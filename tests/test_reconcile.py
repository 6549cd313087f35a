from convoview.reconcile import merge_task_lists


def _task(task_id: str, ts: float, preview: str = "preview") -> dict:
    return {"id": task_id, "timestamp": ts, "firstMessage": preview}


def test_empty_poll_keeps_known_tasks() -> None:
    current = [_task("1", 10)]
    assert merge_task_lists(current, []) == [_task("1", 10)]


def test_known_task_picks_up_new_timestamp() -> None:
    assert merge_task_lists([_task("1", 10)], [_task("1", 20)]) == [_task("1", 20)]


def test_new_task_is_prepended_and_sorted() -> None:
    current = [_task("1", 10)]
    incoming = [_task("2", 30), _task("1", 10)]
    assert merge_task_lists(current, incoming) == [_task("2", 30), _task("1", 10)]


def test_new_older_task_sorts_below_newer_known_task() -> None:
    current = [_task("1", 50)]
    incoming = [_task("2", 5)]
    assert [task["id"] for task in merge_task_lists(current, incoming)] == ["1", "2"]


def test_only_timestamp_is_refreshed() -> None:
    current = [_task("1", 10, preview="original")]
    incoming = [_task("1", 40, preview="changed")]
    merged = merge_task_lists(current, incoming)
    assert merged == [_task("1", 40, preview="original")]


def test_timestamp_update_reorders_list() -> None:
    current = [_task("a", 30), _task("b", 20), _task("c", 10)]
    incoming = [_task("c", 99)]
    merged = merge_task_lists(current, incoming)
    assert [task["id"] for task in merged] == ["c", "a", "b"]


def test_equal_timestamps_keep_relative_order() -> None:
    current = [_task("a", 10), _task("b", 10)]
    assert [task["id"] for task in merge_task_lists(current, [])] == ["a", "b"]


def test_merge_is_idempotent() -> None:
    current = [_task("1", 10), _task("3", 5)]
    incoming = [_task("2", 30), _task("1", 25)]
    once = merge_task_lists(current, incoming)
    twice = merge_task_lists(once, incoming)
    assert once == twice
    assert [task["id"] for task in once] == ["2", "1", "3"]


def test_new_tasks_also_refresh_known_timestamps() -> None:
    merged = merge_task_lists([_task("1", 10)], [_task("2", 30), _task("1", 20)])
    assert [(task["id"], task["timestamp"]) for task in merged] == [("2", 30), ("1", 20)]


def test_inputs_are_not_mutated() -> None:
    current = [_task("1", 10)]
    incoming = [_task("1", 20), _task("2", 15)]
    merge_task_lists(current, incoming)
    assert current == [_task("1", 10)]
    assert incoming == [_task("1", 20), _task("2", 15)]


def test_duplicate_new_ids_are_added_once() -> None:
    merged = merge_task_lists([], [_task("n", 5), _task("n", 5)])
    assert merged == [_task("n", 5)]
