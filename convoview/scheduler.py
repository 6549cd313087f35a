from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)

TASKS_STREAM = "tasks"
CONVERSATION_STREAM = "conversation"


@dataclass
class _Stream:
    thread: threading.Thread
    stop: threading.Event
    interval_s: float


class PollScheduler:
    """Named fixed-interval polling loops, one daemon thread per stream.

    The first tick runs one interval after ``start``. Starting a stream under a
    name that is already running replaces the old loop.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._streams: dict[str, _Stream] = {}

    def start(self, name: str, interval_s: float, tick: Callable[[], object]) -> None:
        stop = threading.Event()
        thread = threading.Thread(
            target=self._run,
            args=(name, interval_s, tick, stop),
            name=f"convoview-poll-{name}",
            daemon=True,
        )
        with self._lock:
            previous = self._streams.pop(name, None)
            self._streams[name] = _Stream(thread=thread, stop=stop, interval_s=interval_s)
        if previous is not None:
            previous.stop.set()
        thread.start()

    def stop(self, name: str) -> bool:
        with self._lock:
            stream = self._streams.pop(name, None)
        if stream is None:
            return False
        stream.stop.set()
        return True

    def stop_all(self) -> None:
        with self._lock:
            streams = list(self._streams.values())
            self._streams.clear()
        for stream in streams:
            stream.stop.set()

    def running(self, name: str) -> bool:
        with self._lock:
            return name in self._streams

    def _run(
        self,
        name: str,
        interval_s: float,
        tick: Callable[[], object],
        stop: threading.Event,
    ) -> None:
        while not stop.wait(interval_s):
            try:
                tick()
            except Exception as exc:
                logger.exception("poll tick failed", extra={"stream": name}, exc_info=exc)
