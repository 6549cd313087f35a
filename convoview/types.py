from __future__ import annotations

from typing import Any, Literal, TypedDict

Source = Literal["nightly", "production"]

SOURCES: tuple[Source, ...] = ("nightly", "production")
DEFAULT_SOURCE: Source = "nightly"

BLOCK_TYPES = ("text", "reasoning", "tool_use", "tool_result", "image")


class Task(TypedDict):
    id: str
    timestamp: float
    firstMessage: str


class ImageSource(TypedDict, total=False):
    type: str
    media_type: str
    data: str


class ContentBlock(TypedDict, total=False):
    type: str
    text: str
    id: str
    name: str
    input: dict[str, Any]
    tool_use_id: str
    content: Any
    is_error: bool
    summary: list[str]
    source: ImageSource


class Message(TypedDict, total=False):
    role: Literal["user", "assistant"]
    content: list[ContentBlock] | str
    ts: float
    isSummary: bool
    condenseId: str
    condenseParent: str
    isTruncationMarker: bool
    truncationId: str
    truncationParent: str


def is_source(value: object) -> bool:
    return isinstance(value, str) and value in SOURCES


def is_message_list(value: object) -> bool:
    return isinstance(value, list) and all(isinstance(item, dict) for item in value)
