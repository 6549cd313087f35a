from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class CondensedView:
    messages: list[dict[str, Any]]
    hidden_count: int
    total: int


def existing_summary_ids(messages: Sequence[dict[str, Any]]) -> set[str]:
    return {
        str(message["condenseId"])
        for message in messages
        if message.get("isSummary") and message.get("condenseId")
    }


def existing_truncation_ids(messages: Sequence[dict[str, Any]]) -> set[str]:
    return {
        str(message["truncationId"])
        for message in messages
        if message.get("isTruncationMarker") and message.get("truncationId")
    }


def is_marker(message: dict[str, Any]) -> bool:
    return bool(message.get("isSummary") or message.get("isTruncationMarker"))


def is_superseded(
    message: dict[str, Any],
    summary_ids: set[str],
    truncation_ids: set[str],
) -> bool:
    """Single hop: only a direct pointer at a marker present in the log counts.

    Parents pointing at markers that are themselves superseded are not
    followed, and markers are never hidden.
    """

    if is_marker(message):
        return False
    condense_parent = message.get("condenseParent")
    if condense_parent and str(condense_parent) in summary_ids:
        return True
    truncation_parent = message.get("truncationParent")
    return bool(truncation_parent) and str(truncation_parent) in truncation_ids


def _superseded_flags(messages: Sequence[dict[str, Any]]) -> list[bool]:
    summary_ids = existing_summary_ids(messages)
    truncation_ids = existing_truncation_ids(messages)
    return [is_superseded(message, summary_ids, truncation_ids) for message in messages]


def hidden_count(messages: Sequence[dict[str, Any]]) -> int:
    return sum(_superseded_flags(messages))


def filter_messages(
    messages: Sequence[dict[str, Any]],
    *,
    filter_condensed: bool,
) -> list[dict[str, Any]]:
    if not filter_condensed:
        return list(messages)
    flags = _superseded_flags(messages)
    return [message for message, hidden in zip(messages, flags, strict=True) if not hidden]


def condense_view(
    messages: Sequence[dict[str, Any]],
    *,
    filter_condensed: bool,
) -> CondensedView:
    flags = _superseded_flags(messages)
    if filter_condensed:
        visible = [message for message, hidden in zip(messages, flags, strict=True) if not hidden]
    else:
        visible = list(messages)
    return CondensedView(messages=visible, hidden_count=sum(flags), total=len(messages))
