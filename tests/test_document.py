from __future__ import annotations

import pytest

from linkedit.core.errors import MalformedRangeSet, PositionConversionError
from linkedit.lang.document import TextDocument
from linkedit.lang.ranges import LinkedRangeSet, Position, Range, check_well_formed


def test_offsets_and_positions_round_trip_across_lines() -> None:
    document = TextDocument("<a>\n  <b></b>\n</a>")

    assert document.line_count == 3
    assert document.position_at(0) == Position(0, 0)
    assert document.position_at(4) == Position(1, 0)
    assert document.position_at(7) == Position(1, 3)
    assert document.offset_at(Position(2, 2)) == 16
    assert document.offset_at(Position(0, 3)) == 3  # end of line is addressable


@pytest.mark.parametrize("offset", [-1, 19])
def test_position_at_rejects_offsets_outside_document(offset: int) -> None:
    with pytest.raises(PositionConversionError):
        TextDocument("<a>\n  <b></b>\n</a>").position_at(offset)


@pytest.mark.parametrize("position", [Position(3, 0), Position(0, 4)])
def test_offset_at_rejects_positions_outside_document(position: Position) -> None:
    with pytest.raises(PositionConversionError):
        TextDocument("<a>\n  <b></b>\n</a>").offset_at(position)


def test_get_checks_bounds() -> None:
    document = TextDocument("hello")

    assert document.get(1, 3) == "ell"
    assert document.get(5, 0) == ""
    with pytest.raises(PositionConversionError):
        document.get(3, 5)


def test_sorted_spans_orders_by_document_offset() -> None:
    document = TextDocument("<div>\n</div>")
    closing = Range(Position(1, 2), Position(1, 5))
    opening = Range(Position(0, 1), Position(0, 4))

    spans = document.sorted_spans([closing, opening])

    assert [span.range for span in spans] == [opening, closing]
    assert [(span.start, span.end) for span in spans] == [(1, 4), (8, 11)]


def test_positions_order_by_line_then_character() -> None:
    assert Position(0, 9) < Position(1, 0)
    assert Position(2, 1) < Position(2, 3)
    assert sorted([Range(Position(1, 0), Position(1, 2)), Range(Position(0, 4), Position(0, 6))])[0].start.line == 0


def test_linked_range_set_parses_wire_payload() -> None:
    payload = {
        "ranges": [
            {"start": {"line": 0, "character": 1}, "end": {"line": 0, "character": 4}},
            {"start": {"line": 1, "character": 2}, "end": {"line": 1, "character": 5}},
        ],
        "wordPattern": "[a-z]+",
    }

    range_set = LinkedRangeSet.from_lsp(payload)

    assert range_set is not None
    assert len(range_set) == 2
    assert range_set.ranges[1] == Range(Position(1, 2), Position(1, 5))
    assert range_set.word_regex().fullmatch("div")
    assert LinkedRangeSet.from_lsp(range_set.to_lsp()) == range_set


@pytest.mark.parametrize("payload", [None, {"ranges": []}, {}])
def test_empty_results_mean_no_ranges(payload) -> None:
    assert LinkedRangeSet.from_lsp(payload) is None


@pytest.mark.parametrize(
    "payload",
    [
        {"ranges": [{"start": {"line": 0}, "end": {"line": 0, "character": 1}}]},
        {"ranges": [{"start": {"line": 0, "character": 4}, "end": {"line": 0, "character": 1}}]},
        {"ranges": "nope"},
        ["not", "a", "dict"],
    ],
)
def test_malformed_payloads_raise(payload) -> None:
    with pytest.raises(MalformedRangeSet):
        LinkedRangeSet.from_lsp(payload)


def test_word_pattern_python_cannot_compile_is_ignored() -> None:
    range_set = LinkedRangeSet((Range(Position(0, 0), Position(0, 1)),), "(?<name")

    assert range_set.word_regex() is None


def test_check_well_formed_rejects_unequal_and_overlapping_spans() -> None:
    document = TextDocument("abcdefghij")
    unequal = document.sorted_spans([Range(Position(0, 0), Position(0, 2)), Range(Position(0, 5), Position(0, 8))])
    overlapping = document.sorted_spans([Range(Position(0, 0), Position(0, 3)), Range(Position(0, 2), Position(0, 5))])

    with pytest.raises(MalformedRangeSet):
        check_well_formed(unequal)
    with pytest.raises(MalformedRangeSet):
        check_well_formed(overlapping)
