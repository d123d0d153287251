"""Pytest configuration and shared fixtures."""
from __future__ import annotations

import concurrent.futures
import os

import pytest

from linkedit.core.cache import RangeCache
from linkedit.core.config import ConfigManager
from linkedit.core.threads import BackgroundWorkers
from linkedit.lang.services import LanguageServiceRegistry
from tests.fakes import ImmediateExecutor, ManualClock, ManualDispatcher, QueuedExecutor

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")


@pytest.fixture(scope="session")
def qt_app():
    """Provide a shared QApplication instance for widget tests."""

    from PySide6.QtWidgets import QApplication

    return QApplication.instance() or QApplication([])


@pytest.fixture
def config(tmp_path) -> ConfigManager:
    return ConfigManager(user_settings_path=tmp_path / "missing.yaml")


@pytest.fixture
def registry(config: ConfigManager) -> LanguageServiceRegistry:
    return LanguageServiceRegistry(config)


@pytest.fixture
def cache() -> RangeCache:
    return RangeCache()


@pytest.fixture
def immediate_workers(monkeypatch) -> BackgroundWorkers:
    monkeypatch.setattr(concurrent.futures, "ThreadPoolExecutor", ImmediateExecutor)
    workers = BackgroundWorkers()
    yield workers
    workers.shutdown()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def dispatcher(clock: ManualClock) -> ManualDispatcher:
    return ManualDispatcher(clock)


@pytest.fixture
def queued_workers(monkeypatch) -> BackgroundWorkers:
    monkeypatch.setattr(concurrent.futures, "ThreadPoolExecutor", QueuedExecutor)
    workers = BackgroundWorkers()
    yield workers
    workers.shutdown()
