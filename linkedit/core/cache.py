"""Per-document cache of linked editing ranges."""
from __future__ import annotations

import enum
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict

from linkedit.lang.ranges import LinkedRangeSet

logger = logging.getLogger(__name__)


class CacheState(enum.Enum):
    UNKNOWN = "unknown"
    SET = "set"
    NONE = "none"


@dataclass(frozen=True)
class CacheEntry:
    state: CacheState
    ranges: LinkedRangeSet | None = None
    generation: int = 0

    @classmethod
    def unknown(cls, generation: int) -> "CacheEntry":
        return cls(CacheState.UNKNOWN, None, generation)

    @classmethod
    def resolved(cls, ranges: LinkedRangeSet | None, generation: int) -> "CacheEntry":
        if ranges:
            return cls(CacheState.SET, ranges, generation)
        return cls(CacheState.NONE, None, generation)

    @property
    def settled(self) -> bool:
        return self.state is not CacheState.UNKNOWN

    @property
    def active(self) -> bool:
        return self.state is CacheState.SET


CacheListener = Callable[[str, CacheEntry], None]

_CLOSED = CacheEntry(CacheState.NONE)


class RangeCache:
    """Holds the current linked range set for each open document.

    Each document has one entry and one lock. Every refresh or edit bumps
    the document's generation; a result is only stored when it carries the
    current generation, so responses to superseded queries are dropped.
    Listeners are called after the lock is released, on the writing thread.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, CacheEntry] = {}
        self._locks: Dict[str, threading.RLock] = {}
        self._registry_lock = threading.Lock()
        self._listeners: list[CacheListener] = []

    # Lifecycle
    def open(self, key: str) -> None:
        with self._registry_lock:
            self._locks.setdefault(key, threading.RLock())
            self._entries.setdefault(key, CacheEntry.unknown(0))

    def close(self, key: str) -> None:
        with self._registry_lock:
            self._entries.pop(key, None)
            self._locks.pop(key, None)
        self._notify(key, _CLOSED)

    def is_open(self, key: str) -> bool:
        with self._registry_lock:
            return key in self._entries

    def keys(self) -> list[str]:
        with self._registry_lock:
            return list(self._entries)

    def _lock_for(self, key: str) -> threading.RLock | None:
        with self._registry_lock:
            return self._locks.get(key)

    # Reads
    def get(self, key: str) -> CacheEntry:
        lock = self._lock_for(key)
        if lock is None:
            return _CLOSED
        with lock:
            return self._entries.get(key, _CLOSED)

    # Writes
    def begin_refresh(self, key: str) -> int | None:
        """Mark the entry unknown and return the generation the new query must carry."""

        lock = self._lock_for(key)
        if lock is None:
            return None
        with lock:
            current = self._entries.get(key)
            if current is None:
                return None
            entry = CacheEntry.unknown(current.generation + 1)
            self._entries[key] = entry
        self._notify(key, entry)
        return entry.generation

    def invalidate(self, key: str) -> None:
        self.begin_refresh(key)

    def resolve(self, key: str, generation: int, ranges: LinkedRangeSet | None) -> bool:
        """Store a query result if ``generation`` is still current."""

        lock = self._lock_for(key)
        if lock is None:
            return False
        with lock:
            current = self._entries.get(key)
            if current is None or current.generation != generation:
                logger.debug(
                    "Discarding stale linked ranges for %s (generation %s, current %s)",
                    key,
                    generation,
                    current.generation if current else None,
                )
                return False
            entry = CacheEntry.resolved(ranges, generation)
            self._entries[key] = entry
        self._notify(key, entry)
        return True

    def settle_unknown(self, key: str, generation: int) -> bool:
        """Resolve to no ranges, but only if nothing was stored for ``generation`` yet."""

        lock = self._lock_for(key)
        if lock is None:
            return False
        with lock:
            current = self._entries.get(key)
            if current is None or current.generation != generation or current.settled:
                return False
            entry = CacheEntry.resolved(None, generation)
            self._entries[key] = entry
        self._notify(key, entry)
        return True

    def discard(self, key: str) -> None:
        """Drop the ranges for ``key`` and orphan any query still in flight."""

        lock = self._lock_for(key)
        if lock is None:
            return
        with lock:
            current = self._entries.get(key)
            if current is None:
                return
            entry = CacheEntry.resolved(None, current.generation + 1)
            self._entries[key] = entry
        self._notify(key, entry)

    # Listeners
    def subscribe(self, listener: CacheListener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: CacheListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, key: str, entry: CacheEntry) -> None:
        for listener in list(self._listeners):
            try:
                listener(key, entry)
            except Exception:
                logger.exception("Linked range cache listener failed for %s", key)
