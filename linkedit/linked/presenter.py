"""Paints the current linked ranges as editor decorations."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Protocol

from linkedit.core.errors import PositionConversionError
from linkedit.lang.document import TextDocument
from linkedit.lang.ranges import LinkedRangeSet

logger = logging.getLogger(__name__)


class DecorationHost(Protocol):
    """Editor surface that can show highlight decorations.

    Hosts declare what they support through ``supports_atomic_replace`` and
    ``supports_lock``. ``replace_decorations`` is only called on hosts that
    support atomic replacement, ``lock_object`` only on hosts that support
    locking.
    """

    supports_atomic_replace: bool
    supports_lock: bool

    def add_decoration(self, start: int, end: int) -> Any: ...

    def remove_decoration(self, handle: Any) -> None: ...

    def replace_decorations(self, old: list[Any], new: list[tuple[int, int]]) -> list[Any]: ...

    def lock_object(self) -> Any: ...


@dataclass(frozen=True)
class DecorationCapabilities:
    atomic_replace: bool = False
    lock: bool = False

    @classmethod
    def of(cls, host: Any) -> "DecorationCapabilities":
        return cls(
            atomic_replace=bool(getattr(host, "supports_atomic_replace", False)),
            lock=bool(getattr(host, "supports_lock", False)),
        )


class AnnotationPresenter:
    """Keeps one decoration per linked range on a :class:`DecorationHost`.

    Must be called on the thread that owns the host.
    """

    def __init__(self, host: DecorationHost) -> None:
        self.host = host
        self.capabilities = DecorationCapabilities.of(host)
        self._handles: list[Any] = []
        self._fallback_lock = threading.RLock()
        self._lock = self._resolve_lock()

    def _resolve_lock(self) -> Any:
        if self.capabilities.lock:
            lock = self.host.lock_object()
            if lock is not None:
                return lock
        return self._fallback_lock

    @property
    def decoration_count(self) -> int:
        return len(self._handles)

    def update(self, document: TextDocument, range_set: LinkedRangeSet | None) -> None:
        spans: list[tuple[int, int]] = []
        for range_ in range_set.ranges if range_set else ():
            try:
                span = document.span_for(range_)
            except PositionConversionError as exc:
                logger.warning("Skipping linked range highlight %s: %s", range_, exc)
                continue
            spans.append((span.start, span.end))
        self._swap(spans)

    def clear(self) -> None:
        if self._handles:
            self._swap([])

    def _swap(self, spans: list[tuple[int, int]]) -> None:
        with self._lock:
            if self.capabilities.atomic_replace:
                self._handles = list(self.host.replace_decorations(self._handles, spans))
                return
            for handle in self._handles:
                self.host.remove_decoration(handle)
            self._handles = [self.host.add_decoration(start, end) for start, end in spans]
