from __future__ import annotations

import threading
from collections.abc import Iterator
from http.server import HTTPServer

import pytest

from convoview.client import FetchError, HttpTaskClient, LocalTaskClient
from convoview.repository import TaskNotFoundError, TaskRepository
from convoview.server import build_viewer_handler


@pytest.fixture
def http_client(repository: TaskRepository) -> Iterator[HttpTaskClient]:
    server = HTTPServer(("127.0.0.1", 0), build_viewer_handler(repository))
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield HttpTaskClient(f"127.0.0.1:{server.server_address[1]}", timeout_s=5)
    finally:
        server.shutdown()
        server.server_close()


def test_local_client_reads_repository(repository: TaskRepository, write_task) -> None:
    conversation = [{"role": "user", "content": "hi", "ts": 1}]
    write_task("a", conversation)
    client = LocalTaskClient(repository)
    assert [task["id"] for task in client.fetch_tasks("nightly")] == ["a"]
    assert client.fetch_conversation("nightly", "a") == conversation


def test_local_client_maps_errors(repository: TaskRepository, write_task) -> None:
    client = LocalTaskClient(repository)
    with pytest.raises(TaskNotFoundError):
        client.fetch_conversation("nightly", "missing")
    write_task("bad", "{oops")
    with pytest.raises(FetchError):
        client.fetch_conversation("nightly", "bad")
    write_task("dict", {"role": "user"})
    with pytest.raises(FetchError, match="not a list"):
        client.fetch_conversation("nightly", "dict")
    with pytest.raises(FetchError):
        client.fetch_tasks("staging")


def test_http_client_fetches_tasks_and_conversation(http_client: HttpTaskClient, write_task) -> None:
    conversation = [{"role": "user", "content": "<task>remote</task>", "ts": 1}]
    write_task("r", conversation)
    tasks = http_client.fetch_tasks("nightly")
    assert [(task["id"], task["firstMessage"]) for task in tasks] == [("r", "remote")]
    assert http_client.fetch_conversation("nightly", "r") == conversation


def test_http_client_not_found_and_failures(http_client: HttpTaskClient, write_task) -> None:
    with pytest.raises(TaskNotFoundError):
        http_client.fetch_conversation("nightly", "missing")
    write_task("bad", "{oops")
    with pytest.raises(FetchError, match="status=500"):
        http_client.fetch_conversation("nightly", "bad")
    with pytest.raises(FetchError, match="status=400"):
        http_client.fetch_tasks("staging")


def test_http_client_connection_refused() -> None:
    import socket

    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
    client = HttpTaskClient(f"http://127.0.0.1:{port}", timeout_s=1)
    with pytest.raises(FetchError, match="request failed"):
        client.fetch_tasks("nightly")


def test_clients_reject_conversations_with_non_object_messages(
    repository: TaskRepository, http_client: HttpTaskClient, write_task
) -> None:
    write_task("mixed", ["oops", {"role": "user", "content": "hi"}])
    with pytest.raises(FetchError, match="not a list of messages"):
        LocalTaskClient(repository).fetch_conversation("nightly", "mixed")
    with pytest.raises(FetchError, match="status=200"):
        http_client.fetch_conversation("nightly", "mixed")
