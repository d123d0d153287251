"""Immutable text snapshots with offset and position conversion."""
from __future__ import annotations

from bisect import bisect_right
from typing import Iterable

from linkedit.core.errors import PositionConversionError
from linkedit.lang.ranges import Position, Range, Span, offset_order


class TextDocument:
    """A snapshot of document text indexed by line.

    Offsets and characters count Python string indices. Lines are separated by
    ``\\n``; a position may point at the end of a line but not beyond it.
    """

    def __init__(self, text: str) -> None:
        self.text = text
        self._line_starts = [0]
        for index, char in enumerate(text):
            if char == "\n":
                self._line_starts.append(index + 1)

    def __len__(self) -> int:
        return len(self.text)

    @property
    def line_count(self) -> int:
        return len(self._line_starts)

    def _line_end(self, line: int) -> int:
        if line + 1 < len(self._line_starts):
            return self._line_starts[line + 1] - 1
        return len(self.text)

    def position_at(self, offset: int) -> Position:
        if offset < 0 or offset > len(self.text):
            raise PositionConversionError(f"Offset {offset} outside document of length {len(self.text)}")
        line = bisect_right(self._line_starts, offset) - 1
        return Position(line, offset - self._line_starts[line])

    def offset_at(self, position: Position) -> int:
        if position.line < 0 or position.line >= len(self._line_starts):
            raise PositionConversionError(f"Line {position.line} outside document of {self.line_count} lines")
        start = self._line_starts[position.line]
        if position.character < 0 or start + position.character > self._line_end(position.line):
            raise PositionConversionError(f"Character {position.character} outside line {position.line}")
        return start + position.character

    def get(self, offset: int, length: int) -> str:
        if offset < 0 or length < 0 or offset + length > len(self.text):
            raise PositionConversionError(f"Span {offset}+{length} outside document of length {len(self.text)}")
        return self.text[offset : offset + length]

    def span_for(self, range_: Range) -> Span:
        return Span(self.offset_at(range_.start), self.offset_at(range_.end), range_)

    def sorted_spans(self, ranges: Iterable[Range]) -> list[Span]:
        """Resolve ranges to offsets, ordered by position in the document."""

        return offset_order(self.span_for(r) for r in ranges)
