"""Per-editor wiring of the linked editing components."""
from __future__ import annotations

import concurrent.futures
import enum
import logging
from typing import Any, Protocol

from linkedit.core.cache import CacheEntry, CacheState, RangeCache
from linkedit.core.config import LINKED_EDITING_KEY, ConfigManager
from linkedit.core.threads import BackgroundWorkers, Dispatcher, InlineDispatcher
from linkedit.lang.document import TextDocument
from linkedit.lang.services import LanguageServiceRegistry
from linkedit.linked.presenter import AnnotationPresenter, DecorationHost
from linkedit.linked.provider import RangeProvider
from linkedit.linked.synchronizer import EditCommand, EditSynchronizer
from linkedit.linked.watcher import SelectionSource, SelectionWatcher

logger = logging.getLogger(__name__)


class LinkedEditingState(enum.Enum):
    DISABLED = "disabled"
    IDLE = "idle"
    REQUESTING = "requesting"
    ACTIVE = "active"


class EditorHost(SelectionSource, DecorationHost, Protocol):
    def document_snapshot(self) -> TextDocument: ...

    def cursor_offset(self) -> int: ...

    def apply_edit(self, command: EditCommand) -> None: ...


class LinkedEditingController:
    """Owns the range cache and everything that reads or writes it for one editor.

    The cache lives exactly as long as the open document: :meth:`open`
    creates its entry and :meth:`close` removes it.
    """

    def __init__(
        self,
        host: EditorHost,
        registry: LanguageServiceRegistry,
        *,
        config: ConfigManager | None = None,
        dispatcher: Dispatcher | None = None,
        workers: BackgroundWorkers | None = None,
        cache: RangeCache | None = None,
    ) -> None:
        self.host = host
        self.registry = registry
        self.config = config or ConfigManager()
        self.dispatcher = dispatcher or InlineDispatcher()
        self._owns_workers = workers is None
        self.workers = workers or BackgroundWorkers(max_workers=2)
        self.cache = cache or RangeCache()
        self.provider = RangeProvider(
            self.cache,
            registry,
            self.workers,
            request_timeout=self.config.linked_editing_seconds("request_timeout_ms", 2000),
        )
        self.synchronizer = EditSynchronizer(
            self.cache,
            self.dispatcher,
            wait_timeout=self.config.linked_editing_seconds("wait_timeout_ms", 500),
        )
        self.presenter = AnnotationPresenter(host)
        self.watcher = SelectionWatcher(self.refresh)
        self.enabled = self.config.linked_editing_enabled()
        self.key: str | None = None
        self.cache.subscribe(self._on_cache_changed)
        self.config.subscribe(LINKED_EDITING_KEY, self._on_settings_changed)

    # Lifecycle
    def open(self, path: Any) -> None:
        key = self.registry.normalize_path(path)
        if key == self.key:
            return
        self.close()
        if not key:
            return
        self.key = key
        self.cache.open(key)
        if self.enabled:
            self.watcher.install(self.host)
            self.refresh(self.host.cursor_offset())

    def close(self) -> None:
        key = self.key
        if key is None:
            return
        self.provider.cancel(key)
        self.synchronizer.drop(key)
        self.watcher.uninstall()
        self.key = None
        self.cache.close(key)
        self.presenter.clear()

    def dispose(self) -> None:
        self.close()
        self.config.unsubscribe(LINKED_EDITING_KEY, self._on_settings_changed)
        self.cache.unsubscribe(self._on_cache_changed)
        self.provider.shutdown()
        if self._owns_workers:
            self.workers.shutdown()

    # Enablement
    def set_enabled(self, enabled: bool) -> None:
        if enabled == self.enabled:
            return
        self.enabled = enabled
        logger.info("Linked editing %s", "enabled" if enabled else "disabled")
        if self.key is None:
            return
        if enabled:
            self.watcher.install(self.host)
            self.refresh(self.host.cursor_offset())
            return
        self.provider.cancel(self.key)
        self.synchronizer.flush(self.key)
        self.watcher.uninstall()
        self.cache.discard(self.key)
        self.presenter.clear()

    def _on_settings_changed(self, section: Any) -> None:
        enabled = bool(section.get("enabled", True)) if isinstance(section, dict) else bool(section)
        self.set_enabled(enabled)

    # State
    @property
    def state(self) -> LinkedEditingState:
        if not self.enabled or self.key is None:
            return LinkedEditingState.DISABLED
        entry = self.cache.get(self.key)
        if entry.state is CacheState.SET:
            return LinkedEditingState.ACTIVE
        if entry.state is CacheState.UNKNOWN and entry.generation > 0:
            return LinkedEditingState.REQUESTING
        return LinkedEditingState.IDLE

    # Events from the host
    def refresh(self, offset: int) -> concurrent.futures.Future:
        if not self.enabled or self.key is None:
            done: concurrent.futures.Future = concurrent.futures.Future()
            done.set_result(None)
            return done
        return self.provider.refresh(self.key, self.host.document_snapshot(), offset)

    def invalidate(self) -> None:
        """Forget the current ranges; the document is changing under them."""

        if self.enabled and self.key is not None:
            self.cache.invalidate(self.key)

    def document_changed(self, offset: int) -> concurrent.futures.Future:
        return self.refresh(offset)

    def handle_edit(self, command: EditCommand) -> bool:
        """Take over ``command``; returns False when the host should apply it itself."""

        if not self.enabled or self.key is None:
            return False
        self.synchronizer.submit(self.key, command, self.host.document_snapshot, self.host.apply_edit)
        return True

    # Presentation
    def _on_cache_changed(self, key: str, entry: CacheEntry) -> None:
        if key != self.key or not entry.settled:
            return
        self.dispatcher.call_soon(self._present)

    def _present(self) -> None:
        if not self.enabled or self.key is None:
            self.presenter.clear()
            return
        entry = self.cache.get(self.key)
        if not entry.settled:
            return
        if entry.active:
            self.presenter.update(self.host.document_snapshot(), entry.ranges)
        else:
            self.presenter.clear()
