"""Threading helpers for background work."""
from __future__ import annotations

import concurrent.futures
import logging
import threading
from typing import Callable, Protocol

logger = logging.getLogger(__name__)


class BackgroundWorkers:
    """Shared thread pool for non-UI tasks, keyed so a new task supersedes the old one."""

    def __init__(self, max_workers: int | None = None) -> None:
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="linkedit"
        )
        self._tasks: dict[str, concurrent.futures.Future] = {}
        self._lock = threading.Lock()
        self._shutting_down = False

    def submit(self, key: str, func: Callable, *args, **kwargs) -> concurrent.futures.Future | None:
        with self._lock:
            if self._shutting_down:
                return None
            previous = self._tasks.pop(key, None)
        _cancel(previous)
        try:
            future = self._executor.submit(func, *args, **kwargs)
        except RuntimeError:
            return None
        with self._lock:
            superseded = self._tasks.get(key)
            self._tasks[key] = future
        _cancel(superseded)
        future.add_done_callback(lambda done, key=key: self._forget(key, done))
        return future

    def cancel(self, key: str) -> None:
        with self._lock:
            future = self._tasks.pop(key, None)
        _cancel(future)

    def _forget(self, key: str, future: concurrent.futures.Future) -> None:
        with self._lock:
            if self._tasks.get(key) is future:
                self._tasks.pop(key, None)

    def pending(self, key: str) -> bool:
        with self._lock:
            future = self._tasks.get(key)
            return bool(future and not future.done())

    def shutdown(self, wait: bool = False) -> None:
        with self._lock:
            self._shutting_down = True
            futures = list(self._tasks.values())
            self._tasks.clear()
        for future in futures:
            _cancel(future)
        self._executor.shutdown(wait=wait, cancel_futures=True)


def _cancel(future: concurrent.futures.Future | None) -> None:
    # Done callbacks run synchronously inside cancel(); never call it holding _lock.
    if future is not None and not future.done():
        future.cancel()


class Dispatcher(Protocol):
    """Runs callables on the thread that owns the editor."""

    def call_soon(self, func: Callable[[], None]) -> None: ...

    def call_later(self, delay: float, func: Callable[[], None]) -> None: ...


class InlineDispatcher:
    """Dispatcher for hosts without an event loop.

    ``call_soon`` runs the callable on the calling thread and ``call_later``
    uses a daemon timer thread, so callers must tolerate being invoked off
    the thread that created them.
    """

    def call_soon(self, func: Callable[[], None]) -> None:
        try:
            func()
        except Exception:
            logger.exception("Dispatched callable failed")

    def call_later(self, delay: float, func: Callable[[], None]) -> None:
        timer = threading.Timer(delay, self.call_soon, args=(func,))
        timer.daemon = True
        timer.start()
