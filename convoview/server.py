from __future__ import annotations

import logging
import os
import signal
import socket
import sys
from collections.abc import Callable
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Any
from urllib.parse import parse_qs, unquote, urlparse

from .condense import condense_view
from .repository import TaskNotFoundError, TaskRepository, validate_task_id
from .tool_pairing import tool_uses_missing_results
from .types import Message, is_message_list, is_source
from .viewer_http import parse_flag, send_empty_response, send_error_response, send_json_response

logger = logging.getLogger(__name__)

DEFAULT_VIEWER_HOST = "127.0.0.1"
DEFAULT_VIEWER_PORT = 41839
MAX_PORT_ATTEMPTS = 10


def is_port_available(host: str, port: int) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        try:
            sock.bind((host, port))
        except OSError:
            return False
    return True


def find_available_port(
    host: str,
    start_port: int,
    max_attempts: int = MAX_PORT_ATTEMPTS,
) -> int:
    for attempt in range(max_attempts):
        port = start_port + attempt
        if is_port_available(host, port):
            return port
        logger.info("port %s is in use, trying next", port)
    raise RuntimeError(
        f"Could not find an available port after {max_attempts} attempts "
        f"starting from {start_port}"
    )


def write_port_file(path: Path, port: int) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f"{port}\n", encoding="utf-8")


def read_port_file(path: Path) -> int | None:
    try:
        raw = path.read_text(encoding="utf-8").strip()
    except FileNotFoundError:
        return None
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def clear_port_file(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        return


def build_viewer_handler(repository: TaskRepository) -> type[BaseHTTPRequestHandler]:
    class ViewerHandler(BaseHTTPRequestHandler):
        def log_message(self, format: str, *args: object) -> None:  # noqa: A003
            if os.environ.get("CONVOVIEW_VIEWER_LOGS") == "1":
                super().log_message(format, *args)

        def do_OPTIONS(self) -> None:  # noqa: N802
            send_empty_response(self, 204)

        def do_GET(self) -> None:  # noqa: N802
            parsed = urlparse(self.path)
            parts = [unquote(part) for part in parsed.path.strip("/").split("/")]
            try:
                if parts == ["api", "health"]:
                    send_json_response(self, {"ok": True})
                    return
                if len(parts) == 3 and parts[:2] == ["api", "tasks"]:
                    self._handle_tasks(parts[2])
                    return
                if len(parts) == 4 and parts[:2] == ["api", "task"]:
                    conversation = self._read_conversation(parts[2], parts[3])
                    if conversation is not None:
                        send_json_response(self, conversation)
                    return
                if len(parts) == 4 and parts[:2] == ["api", "view"]:
                    self._handle_view(parts[2], parts[3], parsed.query)
                    return
                send_error_response(self, "not found", 404)
            except Exception as exc:  # pragma: no cover
                logger.exception("viewer request failed", extra={"path": parsed.path})
                payload: dict[str, Any] = {"error": "internal server error"}
                if os.environ.get("CONVOVIEW_VIEWER_DEBUG") == "1":
                    payload["detail"] = str(exc)
                send_json_response(self, payload, status=500)

        def _handle_tasks(self, source: str) -> None:
            if not is_source(source):
                send_error_response(self, "Invalid source", 400)
                return
            try:
                tasks = repository.list_tasks(source)
            except OSError as exc:
                logger.warning("failed to read tasks for %s: %s", source, exc)
                send_error_response(self, "Failed to read tasks", 500)
                return
            send_json_response(self, tasks)

        def _read_conversation(self, source: str, task_id: str) -> list[Message] | None:
            if not is_source(source):
                send_error_response(self, "Invalid source", 400, source=source)
                return None
            try:
                validate_task_id(task_id)
            except ValueError:
                send_error_response(self, "Invalid task id", 400)
                return None
            try:
                conversation = repository.get_conversation(source, task_id)
            except TaskNotFoundError as exc:
                logger.error("Failed to read conversation: %s", exc.path)
                send_error_response(
                    self, "Conversation not found", 404, path=str(exc.path or task_id)
                )
                return None
            except (OSError, ValueError) as exc:
                logger.error("Failed to read conversation %s/%s: %s", source, task_id, exc)
                send_error_response(self, "Failed to read conversation", 500, message=str(exc))
                return None
            return conversation

        def _handle_view(self, source: str, task_id: str, query: str) -> None:
            conversation = self._read_conversation(source, task_id)
            if conversation is None:
                return
            if not is_message_list(conversation):
                send_error_response(
                    self,
                    "Failed to read conversation",
                    500,
                    message="conversation is not a list of messages",
                )
                return
            params = parse_qs(query)
            filter_condensed = parse_flag(params.get("filter", [None])[0], True)
            condensed = condense_view(conversation, filter_condensed=filter_condensed)
            send_json_response(
                self,
                {
                    "id": task_id,
                    "messages": condensed.messages,
                    "total": condensed.total,
                    "hidden_count": condensed.hidden_count,
                    "filter_condensed": filter_condensed,
                    "missing_tool_results": sorted(tool_uses_missing_results(conversation)),
                },
            )

    return ViewerHandler


def create_server(
    repository: TaskRepository,
    *,
    host: str = DEFAULT_VIEWER_HOST,
    port: int = DEFAULT_VIEWER_PORT,
    max_port_attempts: int = MAX_PORT_ATTEMPTS,
) -> ThreadingHTTPServer:
    chosen = find_available_port(host, port, max_port_attempts)
    return ThreadingHTTPServer((host, chosen), build_viewer_handler(repository))


def serve(
    repository: TaskRepository,
    *,
    host: str,
    port: int,
    max_port_attempts: int,
    port_file: Path,
    on_ready: Callable[[int], None] | None = None,
) -> None:
    server = create_server(repository, host=host, port=port, max_port_attempts=max_port_attempts)
    actual_port = int(server.server_address[1])
    write_port_file(port_file, actual_port)
    previous_handler = signal.signal(signal.SIGTERM, lambda *_: sys.exit(0))
    try:
        if on_ready is not None:
            on_ready(actual_port)
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("shutting down viewer server")
    finally:
        signal.signal(signal.SIGTERM, previous_handler)
        server.server_close()
        clear_port_file(port_file)
