from __future__ import annotations

import datetime as dt
import json
from collections.abc import Sequence
from typing import Any

from rich.console import Console
from rich.markup import escape

from .content import block_text, block_type, normalize_content
from .coordinator import ConversationView
from .tool_pairing import has_missing_result
from .types import Task

_BLOCK_STYLES = {
    "text": "green",
    "reasoning": "magenta",
    "tool_use": "yellow",
    "tool_result": "blue",
    "image": "bright_magenta",
}


def format_time(timestamp: Any) -> str:
    try:
        return dt.datetime.fromtimestamp(float(timestamp) / 1000).strftime("%Y-%m-%d %H:%M:%S")
    except (TypeError, ValueError, OverflowError, OSError):
        return "unknown time"


def message_label(message: dict[str, Any]) -> tuple[str, str]:
    if message.get("isSummary"):
        return "Summary", "magenta"
    if message.get("isTruncationMarker"):
        return "Truncation", "dark_orange"
    if message.get("role") == "user":
        return "User", "cyan"
    return "Assistant", "white"


def render_task_list(
    console: Console,
    tasks: Sequence[Task],
    *,
    selected: str | None = None,
    limit: int | None = None,
) -> None:
    console.print(f"[bold]Tasks ({len(tasks)})[/bold]")
    if not tasks:
        console.print("[dim]No tasks found[/dim]")
        return
    shown = tasks[:limit] if limit else tasks
    for task in shown:
        marker = "[blue]>[/blue] " if task["id"] == selected else "  "
        preview = " ".join(str(task["firstMessage"]).split())
        console.print(
            f"{marker}[dim]{format_time(task['timestamp'])}[/dim] "
            f"[bold]{escape(task['id'])}[/bold]\n    {escape(preview)}"
        )


def _render_block(
    console: Console,
    block: Any,
    *,
    expanded: bool,
    missing: set[str],
) -> None:
    kind = block_type(block)
    style = _BLOCK_STYLES.get(kind, "white")
    raw_type = block.get("type") if isinstance(block, dict) else None
    header = [f"[{style}]{escape(str(raw_type or kind))}[/{style}]"]
    if isinstance(block, dict):
        if block.get("name"):
            header.append(escape(str(block["name"])))
        if block.get("id"):
            header.append(f"[dim]{escape(str(block['id']))}[/dim]")
        if block.get("tool_use_id"):
            header.append(f"[dim]ref: {escape(str(block['tool_use_id']))}[/dim]")
        if block.get("is_error"):
            header.append("[bold red]Error[/bold red]")
    if has_missing_result(block, missing):
        header.append("[bold red]missing result[/bold red]")
    console.print("  " + " ".join(header))
    if not expanded:
        return

    if kind in {"text", "reasoning", "tool_result"}:
        body_style = "red" if isinstance(block, dict) and block.get("is_error") else ""
        body = escape(block_text(block))
        console.print(f"[{body_style}]{body}[/{body_style}]" if body_style else body)
        if kind == "reasoning" and block.get("summary"):
            console.print("[magenta]Summary:[/magenta]")
            for item in block["summary"]:
                console.print(f"  - {escape(str(item))}")
    elif kind == "tool_use":
        console.print(f"[yellow]Tool: {escape(str(block.get('name') or ''))}[/yellow]")
        if block.get("input"):
            console.print_json(json.dumps(block["input"], ensure_ascii=False))
    elif kind == "image":
        source = block.get("source") or {}
        if isinstance(source, dict) and source.get("data"):
            media_type = source.get("media_type") or "image"
            console.print(f"[dim]<{escape(str(media_type))}, {len(source['data'])} bytes base64>[/dim]")
        else:
            console.print("[dim]Image data not available[/dim]")
    else:
        console.print(escape(json.dumps(block, ensure_ascii=False, indent=2, default=str)))


def render_conversation(console: Console, view: ConversationView) -> None:
    summary = f"{len(view.messages)} messages"
    if view.hidden_count:
        if view.filter_condensed:
            summary += f", {view.hidden_count} hidden"
        else:
            summary += f", {view.hidden_count} condensed shown"
    console.print(f"[bold]Conversation[/bold] [dim]{escape(view.title)}[/dim] ({summary})")
    for message in view.messages:
        label, style = message_label(message)
        header = [f"[bold {style}]{label}[/bold {style}]"]
        if message.get("condenseId"):
            header.append(f"[magenta]condense: {escape(str(message['condenseId'])[:8])}…[/magenta]")
        if message.get("truncationId"):
            header.append(
                f"[dark_orange]truncation: {escape(str(message['truncationId'])[:8])}…[/dark_orange]"
            )
        header.append(f"[dim]{format_time(message.get('ts'))}[/dim]")
        console.rule(" ".join(header), align="left")
        for block in normalize_content(message.get("content")):
            _render_block(
                console,
                block,
                expanded=view.expand_all,
                missing=view.missing_tool_results,
            )
