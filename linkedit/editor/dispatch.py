"""Marshals callables onto the Qt GUI thread."""
from __future__ import annotations

import logging
from typing import Callable

from PySide6.QtCore import QObject, Qt, QTimer, Signal

logger = logging.getLogger(__name__)


class QtDispatcher(QObject):
    """Dispatcher backed by a queued signal.

    The object must be created on the GUI thread; callables submitted from
    any thread run there on a later turn of the event loop.
    """

    _invoke = Signal(object)

    def __init__(self, parent=None) -> None:
        super().__init__(parent)
        self._invoke.connect(self._run, Qt.ConnectionType.QueuedConnection)

    def call_soon(self, func: Callable[[], None]) -> None:
        self._invoke.emit(func)

    def call_later(self, delay: float, func: Callable[[], None]) -> None:
        msec = max(0, int(delay * 1000))
        self._invoke.emit(lambda: QTimer.singleShot(msec, self, lambda: self._run(func)))

    def _run(self, func: Callable[[], None]) -> None:
        try:
            func()
        except Exception:
            logger.exception("Dispatched callable failed")
