from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from .content import normalize_content


def tool_uses_missing_results(messages: Sequence[dict[str, Any]]) -> set[str]:
    """Return tool_use ids that never received a tool_result.

    Results may land in any later message, so the whole conversation is
    scanned. A tool_use in the final message is still in flight and is not
    reported. Duplicate ids keep the position of their last occurrence.
    """

    result_ids: set[str] = set()
    use_positions: dict[str, int] = {}
    for message_index, message in enumerate(messages):
        for block in normalize_content(message.get("content")):
            if not isinstance(block, dict):
                continue
            block_kind = block.get("type")
            if block_kind == "tool_result" and block.get("tool_use_id"):
                result_ids.add(str(block["tool_use_id"]))
            elif block_kind == "tool_use" and block.get("id"):
                use_positions[str(block["id"])] = message_index

    last_index = len(messages) - 1
    return {
        tool_use_id
        for tool_use_id, message_index in use_positions.items()
        if tool_use_id not in result_ids and message_index < last_index
    }


def has_missing_result(block: Any, missing: set[str]) -> bool:
    if not isinstance(block, dict) or block.get("type") != "tool_use":
        return False
    tool_use_id = block.get("id")
    return bool(tool_use_id) and str(tool_use_id) in missing
