"""Mirrors an edit made inside one linked range into all of its siblings."""
from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass, replace
from typing import Callable, Deque

from linkedit.core.cache import CacheEntry, RangeCache
from linkedit.core.errors import MalformedRangeSet, PositionConversionError
from linkedit.core.threads import Dispatcher
from linkedit.lang.document import TextDocument
from linkedit.lang.ranges import LinkedRangeSet, Span, check_well_formed

logger = logging.getLogger(__name__)

DEFAULT_WAIT_TIMEOUT = 0.5


@dataclass(frozen=True)
class EditCommand:
    """A single replacement the editor is about to apply.

    ``caret_offset`` is only honoured when ``shifts_caret`` is false;
    otherwise the caret lands after the inserted text. ``anchor`` is the caret
    position the command was built at, or -1 when unknown.
    """

    offset: int
    length: int
    text: str
    origin: str = ""
    caret_offset: int = -1
    shifts_caret: bool = True
    anchor: int = -1

    @property
    def end(self) -> int:
        return self.offset + self.length

    def caret_after(self) -> int:
        if not self.shifts_caret and self.caret_offset >= 0:
            return self.caret_offset
        return self.offset + len(self.text)


def transform(command: EditCommand, document: TextDocument, entry: CacheEntry) -> EditCommand:
    """Rewrite ``command`` into one replacement covering every linked range.

    Returns ``command`` itself whenever the edit cannot be mirrored safely:
    no active ranges, the edit starts outside every range or runs past the
    end of its range, the ranges no longer fit the document, or the edited
    token would stop matching the set's word pattern.
    """

    if not entry.active or entry.ranges is None:
        return command
    range_set = entry.ranges
    try:
        spans = document.sorted_spans(range_set.ranges)
        check_well_formed(spans)
    except PositionConversionError as exc:
        logger.debug("Linked ranges do not fit the document: %s", exc)
        return command
    except MalformedRangeSet as exc:
        logger.warning("Not mirroring edit over malformed linked ranges: %s", exc)
        return command

    target = next((span for span in spans if span.contains(command.offset)), None)
    if target is None:
        return command
    delta = command.offset - target.start
    if delta + command.length > target.length:
        logger.debug("Edit %s runs past linked range %s; not mirroring", command, target.range)
        return command

    try:
        merged, caret = _merge(command, document, spans, target, delta)
        token = document.get(target.start, delta) + command.text + document.get(command.end, target.end - command.end)
    except PositionConversionError as exc:
        logger.debug("Aborting linked edit: %s", exc)
        return command
    if not _matches_word_pattern(range_set, token):
        logger.debug("Edited token %r leaves the word pattern; not mirroring", token)
        return command

    change_start = spans[0].start
    change_end = max(span.end for span in spans)
    return replace(
        command,
        offset=change_start,
        length=change_end - change_start,
        text=merged,
        caret_offset=change_start + caret,
        shifts_caret=False,
    )


def _merge(
    command: EditCommand,
    document: TextDocument,
    spans: list[Span],
    target: Span,
    delta: int,
) -> tuple[str, int]:
    parts: list[str] = []
    size = 0
    caret = -1
    current = spans[0].start
    for span in spans:
        if current < span.start:
            gap = document.get(current, span.start - current)
            parts.append(gap)
            size += len(gap)
        edit_end = span.start + delta + command.length
        before = document.get(span.start, delta)
        after = document.get(edit_end, span.end - edit_end)
        parts.extend((before, command.text))
        size += len(before) + len(command.text)
        if span is target:
            caret = size
        parts.append(after)
        size += len(after)
        current = span.end
    return "".join(parts), caret


def _matches_word_pattern(range_set: LinkedRangeSet, token: str) -> bool:
    if not token:
        return True
    regex = range_set.word_regex()
    return regex is None or regex.fullmatch(token) is not None


def rebase(command: EditCommand, original: EditCommand, applied: EditCommand) -> EditCommand | None:
    """Move ``command`` past ``applied``, the form ``original`` took once applied.

    A command built at the same caret as ``original`` follows the caret to
    where ``applied`` left it; any other command is mapped by offset. Returns
    ``None`` when the command would start before the document.
    """

    if command.anchor >= 0 and command.anchor == original.anchor:
        anchor = applied.caret_after()
        offset = anchor + command.offset - command.anchor
    else:
        anchor = _map_offset(command.anchor, original, applied) if command.anchor >= 0 else -1
        offset = _map_offset(command.offset, original, applied)
    if offset < 0:
        return None
    return replace(command, offset=offset, anchor=anchor)


def _map_offset(offset: int, original: EditCommand, applied: EditCommand) -> int:
    if offset >= applied.end:
        return offset + len(applied.text) - applied.length
    if offset < applied.offset:
        return offset
    # Inside the span a mirrored edit rewrote: place relative to the caret.
    if offset >= original.end:
        return offset + applied.caret_after() - original.end
    if offset >= original.offset:
        return applied.caret_after()
    return offset + applied.caret_after() - len(original.text) - original.offset


@dataclass
class _QueuedEdit:
    command: EditCommand
    snapshot: Callable[[], TextDocument]
    apply: Callable[[EditCommand], None]
    deadline: float


class EditSynchronizer:
    """Routes edits through :func:`transform` without blocking the editor.

    An edit that arrives while the document's ranges are being refreshed is
    queued, in order, behind any edit already waiting. The queue drains when
    the cache settles; an edit still waiting when its deadline passes is
    applied unmodified.
    """

    def __init__(
        self,
        cache: RangeCache,
        dispatcher: Dispatcher,
        *,
        wait_timeout: float = DEFAULT_WAIT_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.cache = cache
        self.dispatcher = dispatcher
        self.wait_timeout = wait_timeout
        self._clock = clock
        self._queues: dict[str, Deque[_QueuedEdit]] = {}
        self._armed: dict[str, _QueuedEdit] = {}
        cache.subscribe(self._on_cache_changed)

    def transform(self, command: EditCommand, document: TextDocument, entry: CacheEntry) -> EditCommand:
        return transform(command, document, entry)

    def submit(
        self,
        key: str,
        command: EditCommand,
        snapshot: Callable[[], TextDocument],
        apply: Callable[[EditCommand], None],
    ) -> None:
        """Apply ``command`` now, or once the ranges for ``key`` are known."""

        queue = self._queues.get(key)
        if not queue:
            entry = self.cache.get(key)
            if entry.settled:
                self._apply(_QueuedEdit(command, snapshot, apply, 0.0), entry)
                return
            queue = self._queues.setdefault(key, deque())
        queue.append(_QueuedEdit(command, snapshot, apply, self._clock() + self.wait_timeout))
        self._arm(key)
        if self.cache.get(key).settled:
            # The entry settled before the edit was queued; its listener saw nothing to drain.
            self.dispatcher.call_soon(lambda: self._drain(key))

    def pending(self, key: str) -> int:
        return len(self._queues.get(key, ()))

    def flush(self, key: str) -> None:
        """Apply every queued edit for ``key`` unmodified."""

        queue = self._queues.pop(key, None)
        self._armed.pop(key, None)
        while queue:
            self._apply_head(queue, None)

    def drop(self, key: str) -> None:
        """Forget queued edits for a document that is going away."""

        self._queues.pop(key, None)
        self._armed.pop(key, None)

    def _arm(self, key: str) -> None:
        queue = self._queues.get(key)
        if not queue or self._armed.get(key) is queue[0]:
            return
        head = queue[0]
        self._armed[key] = head
        delay = max(0.0, head.deadline - self._clock())
        self.dispatcher.call_later(delay, lambda: self._expire(key, head))

    def _expire(self, key: str, item: _QueuedEdit) -> None:
        queue = self._queues.get(key)
        if not queue or queue[0] is not item:
            return
        entry = self.cache.get(key)
        if not entry.settled:
            logger.debug(
                "Linked ranges for %s still unknown after %.0fms; applying edit as is", key, self.wait_timeout * 1000
            )
        self._apply_head(queue, entry if entry.settled else None)
        self._drain(key)

    def _on_cache_changed(self, key: str, entry: CacheEntry) -> None:
        if entry.settled and self._queues.get(key):
            self.dispatcher.call_soon(lambda: self._drain(key))

    def _drain(self, key: str) -> None:
        queue = self._queues.get(key)
        while queue:
            head = queue[0]
            entry = self.cache.get(key)
            if not entry.settled and self._clock() < head.deadline:
                self._arm(key)
                return
            self._apply_head(queue, entry if entry.settled else None)
        self._queues.pop(key, None)
        self._armed.pop(key, None)

    def _apply_head(self, queue: Deque[_QueuedEdit], entry: CacheEntry | None) -> None:
        """Apply the oldest queued edit and move the rest past its result.

        Queued commands are expressed against the document as it was before
        the edits ahead of them were applied.
        """

        item = queue.popleft()
        applied = self._apply(item, entry)
        if applied is None:
            return
        for waiting in list(queue):
            rebased = rebase(waiting.command, item.command, applied)
            if rebased is None:
                logger.debug("Dropping queued edit %s that no longer fits the document", waiting.command)
                queue.remove(waiting)
            else:
                waiting.command = rebased

    def _apply(self, item: _QueuedEdit, entry: CacheEntry | None) -> EditCommand | None:
        command = item.command
        if entry is not None and entry.active:
            try:
                command = transform(item.command, item.snapshot(), entry)
            except Exception:
                logger.exception("Linked edit transform failed; applying edit as is")
                command = item.command
        try:
            item.apply(command)
        except Exception:
            logger.exception("Applying edit %s failed", command)
            return None
        return command
