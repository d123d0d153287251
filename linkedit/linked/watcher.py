"""Refreshes linked ranges when the caret settles somewhere new."""
from __future__ import annotations

import logging
from typing import Any, Callable, Protocol

logger = logging.getLogger(__name__)


class SelectionSource(Protocol):
    """Editor that reports the caret once it has stopped moving."""

    def add_selection_listener(self, callback: Callable[[int], None]) -> None: ...

    def remove_selection_listener(self, callback: Callable[[int], None]) -> None: ...


class SelectionWatcher:
    def __init__(self, on_selection: Callable[[int], Any]) -> None:
        self._on_selection = on_selection
        self._source: SelectionSource | None = None

    @property
    def installed(self) -> bool:
        return self._source is not None

    def install(self, source: SelectionSource) -> None:
        if self._source is source:
            return
        self.uninstall()
        source.add_selection_listener(self.selection_changed)
        self._source = source

    def uninstall(self) -> None:
        if self._source is None:
            return
        self._source.remove_selection_listener(self.selection_changed)
        self._source = None

    def selection_changed(self, offset: int) -> None:
        logger.debug("Selection settled at %s", offset)
        self._on_selection(offset)
