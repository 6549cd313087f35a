from __future__ import annotations

import json
import logging
import time
from pathlib import Path

import typer
from rich import print
from rich.console import Console

from . import __version__
from .client import FetchError, HttpTaskClient, LocalTaskClient, TaskClient
from .config import ViewerConfig, load_config
from .coordinator import ViewerCoordinator
from .render import render_conversation, render_task_list
from .repository import TaskRepository
from .server import read_port_file, serve as serve_viewer
from .types import Source, is_source

app = typer.Typer(help="convoview: follow agent conversation logs as they are written")


@app.callback()
def _main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    if verbose:
        logging.basicConfig(level=logging.DEBUG)


def _resolve_source(source: str | None, config: ViewerConfig) -> Source:
    if source is None:
        return config.default_source
    value = source.strip().lower()
    if not is_source(value):
        print(f"[red]Unknown source {source!r}; use nightly or production[/red]")
        raise typer.Exit(code=1)
    return value  # type: ignore[return-value]


def _build_client(server: str | None, config: ViewerConfig) -> TaskClient:
    if not server:
        return LocalTaskClient(TaskRepository.from_config(config))
    if server == "auto":
        port = read_port_file(config.port_file_path())
        if port is None:
            print("[red]No running viewer server found (port file missing)[/red]")
            raise typer.Exit(code=1)
        server = f"http://{config.viewer_host}:{port}"
    return HttpTaskClient(server, timeout_s=config.request_timeout_s)


def _new_coordinator(
    config: ViewerConfig,
    source: Source,
    server: str | None,
) -> ViewerCoordinator:
    return ViewerCoordinator.from_config(_build_client(server, config), config, source=source)


@app.command()
def serve(
    host: str = typer.Option(None, help="Host to bind (default from config)"),
    port: int = typer.Option(None, help="First port to try (default from config)"),
    max_port_attempts: int = typer.Option(None, help="How many consecutive ports to try"),
) -> None:
    """Serve the task and conversation JSON API."""

    config = load_config()
    bind_host = host or config.viewer_host
    start_port = port or config.viewer_port

    def _ready(actual_port: int) -> None:
        print(f"[green]Server running on http://{bind_host}:{actual_port}[/green]")
        if actual_port != start_port:
            print(f"[yellow](Default port {start_port} was in use, using fallback)[/yellow]")

    try:
        serve_viewer(
            TaskRepository.from_config(config),
            host=bind_host,
            port=start_port,
            max_port_attempts=max_port_attempts or config.max_port_attempts,
            port_file=config.port_file_path(),
            on_ready=_ready,
        )
    except RuntimeError as exc:
        print(f"[red]Failed to start server: {exc}[/red]")
        raise typer.Exit(code=1) from exc


@app.command()
def tasks(
    source: str = typer.Option(None, help="Task corpus: nightly or production"),
    server: str = typer.Option(None, help="Viewer server URL, or 'auto' to use the port file"),
    limit: int = typer.Option(0, help="Show at most this many tasks (0 = all)"),
) -> None:
    """List recorded tasks, newest first."""

    config = load_config()
    client = _build_client(server, config)
    try:
        items = client.fetch_tasks(_resolve_source(source, config))
    except FetchError as exc:
        print("[red]Failed to load tasks. Make sure the server is running.[/red]")
        raise typer.Exit(code=1) from exc
    render_task_list(Console(), items, limit=limit or None)


@app.command()
def show(
    task_id: str = typer.Argument(help="Task id to display"),
    source: str = typer.Option(None, help="Task corpus: nightly or production"),
    server: str = typer.Option(None, help="Viewer server URL, or 'auto' to use the port file"),
    show_all: bool = typer.Option(False, "--all", help="Include condensed/truncated messages"),
    expand: bool = typer.Option(False, "--expand", help="Show block contents"),
    raw_json: bool = typer.Option(False, "--json", help="Print the raw conversation JSON"),
) -> None:
    """Display one conversation."""

    config = load_config()
    coordinator = _new_coordinator(config, _resolve_source(source, config), server)
    if not coordinator.select_task(task_id):
        print(f"[red]{coordinator.state.error or 'Failed to load conversation'}[/red]")
        raise typer.Exit(code=1)
    coordinator.shutdown()
    if raw_json:
        typer.echo(json.dumps(coordinator.state.conversation, ensure_ascii=False, indent=2))
        return
    _apply_toggles(coordinator, show_all=show_all, expand=expand)
    view = coordinator.view()
    assert view is not None
    render_conversation(Console(), view)


@app.command("open")
def open_file(
    path: Path = typer.Argument(help="Conversation JSON file (array of messages)"),
    show_all: bool = typer.Option(False, "--all", help="Include condensed/truncated messages"),
    expand: bool = typer.Option(False, "--expand", help="Show block contents"),
) -> None:
    """Display a conversation from a local JSON file."""

    config = load_config()
    coordinator = _new_coordinator(config, config.default_source, None)
    if not coordinator.load_local_file(path):
        print(f"[red]{coordinator.state.error}[/red]")
        raise typer.Exit(code=1)
    _apply_toggles(coordinator, show_all=show_all, expand=expand)
    view = coordinator.view()
    assert view is not None
    render_conversation(Console(), view)


@app.command()
def watch(
    task_id: str = typer.Argument(help="Task id to follow"),
    source: str = typer.Option(None, help="Task corpus: nightly or production"),
    server: str = typer.Option(None, help="Viewer server URL, or 'auto' to use the port file"),
    show_all: bool = typer.Option(False, "--all", help="Include condensed/truncated messages"),
    expand: bool = typer.Option(False, "--expand", help="Show block contents"),
) -> None:
    """Follow a conversation while the agent is still writing it."""

    config = load_config()
    coordinator = _new_coordinator(config, _resolve_source(source, config), server)
    coordinator.start()
    if not coordinator.select_task(task_id):
        coordinator.shutdown()
        print(f"[red]{coordinator.state.error or 'Failed to load conversation'}[/red]")
        raise typer.Exit(code=1)
    _apply_toggles(coordinator, show_all=show_all, expand=expand)
    console = Console()
    rendered_revision = -1
    try:
        while coordinator.state.selected_task == task_id:
            revision = coordinator.store.revision
            if revision != rendered_revision:
                view = coordinator.view()
                if view is not None:
                    console.clear()
                    render_conversation(console, view)
                rendered_revision = revision
            time.sleep(0.25)
    except KeyboardInterrupt:
        pass
    finally:
        coordinator.shutdown()
    if coordinator.state.error:
        print(f"[red]{coordinator.state.error}[/red]")


def _apply_toggles(coordinator: ViewerCoordinator, *, show_all: bool, expand: bool) -> None:
    if show_all and coordinator.state.filter_condensed:
        coordinator.toggle_filter_condensed()
    if expand and not coordinator.state.expand_all:
        coordinator.toggle_expand_all()


@app.command("version")
def version() -> None:
    """Print version."""

    print(__version__)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
