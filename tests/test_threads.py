from __future__ import annotations

import concurrent.futures
import threading

import pytest

from linkedit.core.threads import BackgroundWorkers, InlineDispatcher
from tests.fakes import ImmediateExecutor


def test_submit_replaces_existing(monkeypatch) -> None:
    calls: list[str] = []
    monkeypatch.setattr(concurrent.futures, "ThreadPoolExecutor", ImmediateExecutor)

    workers = BackgroundWorkers()
    first = workers.submit("doc", calls.append, "first")
    second = workers.submit("doc", calls.append, "second")

    assert calls == ["first", "second"]
    assert first.done() and second.done()
    assert not workers.pending("doc")

    workers.shutdown()


def test_new_task_cancels_queued_task_for_same_key() -> None:
    workers = BackgroundWorkers(max_workers=1)
    release = threading.Event()
    blocker = workers.submit("other", release.wait, 5)
    queued = workers.submit("doc", lambda: "stale")
    fresh = workers.submit("doc", lambda: "fresh")

    assert queued.cancelled()
    release.set()
    assert fresh.result(timeout=5) == "fresh"
    assert blocker.result(timeout=5) is True
    workers.shutdown(wait=True)


def test_submit_after_shutdown_returns_none(monkeypatch) -> None:
    monkeypatch.setattr(concurrent.futures, "ThreadPoolExecutor", ImmediateExecutor)
    workers = BackgroundWorkers()

    workers.shutdown()

    assert workers.submit("doc", lambda: None) is None


@pytest.mark.parametrize("key", ["alpha", "beta"])
def test_cancel_handles_missing_tasks(monkeypatch, key: str) -> None:
    monkeypatch.setattr(concurrent.futures, "ThreadPoolExecutor", ImmediateExecutor)
    workers = BackgroundWorkers()
    workers.cancel(key)
    workers.shutdown()


def test_inline_dispatcher_runs_now_and_later() -> None:
    dispatcher = InlineDispatcher()
    calls: list[str] = []
    fired = threading.Event()

    dispatcher.call_soon(lambda: calls.append("soon"))
    dispatcher.call_later(0.01, lambda: (calls.append("later"), fired.set()))

    assert fired.wait(5)
    assert calls == ["soon", "later"]


def test_inline_dispatcher_contains_failures() -> None:
    InlineDispatcher().call_soon(lambda: 1 / 0)


@pytest.mark.parametrize("supersede", ["submit", "cancel"])
def test_cancelling_a_queued_task_does_not_block(supersede: str) -> None:
    workers = BackgroundWorkers(max_workers=1)
    release = threading.Event()
    workers.submit("other", release.wait, 5)
    queued = workers.submit("doc", lambda: "stale")

    def _supersede() -> None:
        if supersede == "submit":
            workers.submit("doc", lambda: "fresh")
        else:
            workers.cancel("doc")

    caller = threading.Thread(target=_supersede, daemon=True)
    caller.start()
    caller.join(timeout=5)

    assert not caller.is_alive()
    assert queued.cancelled()
    release.set()
    workers.shutdown(wait=True)
