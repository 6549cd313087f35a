from __future__ import annotations

import json
from typing import Any

from .types import BLOCK_TYPES, ContentBlock


def normalize_content(content: Any) -> list[ContentBlock]:
    """Coerce a message's ``content`` into an ordered list of blocks.

    Lists are returned as-is; block order matters for tool_use/tool_result
    adjacency. Never raises.
    """

    if isinstance(content, str):
        return [{"type": "text", "text": content}]
    if isinstance(content, list):
        return content
    return [{"type": "text", "text": str(content)}]


def block_type(block: Any) -> str:
    if not isinstance(block, dict):
        return "other"
    value = block.get("type")
    if value in BLOCK_TYPES:
        return value
    return "other"


def block_text(block: Any) -> str:
    if not isinstance(block, dict):
        return str(block)
    kind = block_type(block)
    if kind in {"text", "reasoning"}:
        return str(block.get("text") or "")
    if kind == "tool_result":
        content = block.get("content")
        if isinstance(content, str):
            return content
        if isinstance(content, list):
            # Tool results may nest their own text blocks.
            return "\n".join(block_text(item) for item in content)
        return "" if content is None else json.dumps(content, ensure_ascii=False)
    if kind == "tool_use":
        return json.dumps(block.get("input") or {}, ensure_ascii=False, indent=2)
    return ""
