"""Positions, ranges and linked range sets as exchanged with language servers."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Iterable, Mapping

from linkedit.core.errors import MalformedRangeSet

logger = logging.getLogger(__name__)


@dataclass(frozen=True, order=True)
class Position:
    """Zero-based ``(line, character)`` location in a document."""

    line: int
    character: int

    @classmethod
    def from_lsp(cls, payload: Mapping[str, Any]) -> "Position":
        try:
            line = int(payload["line"])
            character = int(payload["character"])
        except (KeyError, TypeError, ValueError) as exc:
            raise MalformedRangeSet(f"Invalid position payload: {payload!r}") from exc
        if line < 0 or character < 0:
            raise MalformedRangeSet(f"Negative position: {payload!r}")
        return cls(line, character)

    def to_lsp(self) -> dict[str, int]:
        return {"line": self.line, "character": self.character}


@dataclass(frozen=True, order=True)
class Range:
    """Half-open span ``[start, end)``."""

    start: Position
    end: Position

    @classmethod
    def from_lsp(cls, payload: Mapping[str, Any]) -> "Range":
        if not isinstance(payload, Mapping):
            raise MalformedRangeSet(f"Invalid range payload: {payload!r}")
        start = Position.from_lsp(payload.get("start") or {})
        end = Position.from_lsp(payload.get("end") or {})
        if end < start:
            raise MalformedRangeSet(f"Range ends before it starts: {payload!r}")
        return cls(start, end)

    def to_lsp(self) -> dict[str, dict[str, int]]:
        return {"start": self.start.to_lsp(), "end": self.end.to_lsp()}


@dataclass(frozen=True)
class LinkedRangeSet:
    """Result of one successful linked editing query."""

    ranges: tuple[Range, ...]
    word_pattern: str | None = None

    def __bool__(self) -> bool:
        return bool(self.ranges)

    def __len__(self) -> int:
        return len(self.ranges)

    @classmethod
    def from_lsp(cls, payload: Mapping[str, Any] | None) -> "LinkedRangeSet | None":
        """Build a set from a ``textDocument/linkedEditingRange`` result.

        ``None`` or an empty range list yields ``None``.
        """

        if payload is None:
            return None
        if not isinstance(payload, Mapping):
            raise MalformedRangeSet(f"Unexpected linked editing result: {payload!r}")
        raw_ranges = payload.get("ranges") or []
        if not isinstance(raw_ranges, list):
            raise MalformedRangeSet(f"Unexpected ranges payload: {raw_ranges!r}")
        ranges = tuple(Range.from_lsp(item) for item in raw_ranges)
        if not ranges:
            return None
        word_pattern = payload.get("wordPattern")
        if word_pattern is not None and not isinstance(word_pattern, str):
            logger.debug("Ignoring non-string wordPattern %r", word_pattern)
            word_pattern = None
        return cls(ranges, word_pattern or None)

    def to_lsp(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"ranges": [r.to_lsp() for r in self.ranges]}
        if self.word_pattern:
            payload["wordPattern"] = self.word_pattern
        return payload

    def word_regex(self) -> re.Pattern[str] | None:
        """Compiled ``wordPattern``, or ``None`` when absent or not valid here."""

        if not self.word_pattern:
            return None
        return _compile_word_pattern(self.word_pattern)


@lru_cache(maxsize=32)
def _compile_word_pattern(pattern: str) -> re.Pattern[str] | None:
    try:
        return re.compile(pattern)
    except re.error:
        logger.warning("Ignoring wordPattern that Python cannot compile: %r", pattern)
        return None


@dataclass(frozen=True)
class Span:
    """A range resolved to document offsets."""

    start: int
    end: int
    range: Range

    @property
    def length(self) -> int:
        return self.end - self.start

    def contains(self, offset: int) -> bool:
        return self.start <= offset < self.end


def offset_order(spans: Iterable[Span]) -> list[Span]:
    """Sort spans by document offset, then by line and character."""

    return sorted(spans, key=lambda span: (span.start, span.range.start.line, span.range.start.character))


def check_well_formed(spans: list[Span]) -> None:
    """Raise :class:`MalformedRangeSet` unless the sorted spans mirror one token."""

    if not spans:
        return
    length = spans[0].length
    for previous, current in zip(spans, spans[1:]):
        if current.start < previous.end:
            raise MalformedRangeSet(f"Overlapping linked ranges {previous.range} and {current.range}")
    for span in spans:
        if span.length != length:
            raise MalformedRangeSet(
                f"Linked ranges differ in length: {span.length} != {length} for {span.range}"
            )
