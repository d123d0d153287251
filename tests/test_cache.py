from __future__ import annotations

from linkedit.core.cache import CacheState, RangeCache
from tests.fakes import line_ranges

KEY = "/tmp/page.html"


def test_entries_exist_only_for_open_documents(cache: RangeCache) -> None:
    assert cache.get(KEY).state is CacheState.NONE
    assert cache.begin_refresh(KEY) is None

    cache.open(KEY)
    assert cache.is_open(KEY)
    assert cache.get(KEY).state is CacheState.UNKNOWN

    cache.close(KEY)
    assert not cache.is_open(KEY)
    assert cache.keys() == []


def test_refresh_marks_unknown_and_result_is_stored(cache: RangeCache) -> None:
    cache.open(KEY)
    generation = cache.begin_refresh(KEY)

    assert cache.get(KEY).state is CacheState.UNKNOWN
    assert cache.resolve(KEY, generation, line_ranges(0, (1, 4)))

    entry = cache.get(KEY)
    assert entry.active
    assert entry.ranges == line_ranges(0, (1, 4))
    assert entry.generation == generation


def test_superseded_response_is_discarded(cache: RangeCache) -> None:
    cache.open(KEY)
    stale = cache.begin_refresh(KEY)
    fresh = cache.begin_refresh(KEY)
    assert cache.resolve(KEY, fresh, line_ranges(0, (1, 4), (9, 12)))

    assert not cache.resolve(KEY, stale, line_ranges(0, (2, 3)))
    assert cache.get(KEY).ranges == line_ranges(0, (1, 4), (9, 12))


def test_last_writer_wins_within_a_generation(cache: RangeCache) -> None:
    cache.open(KEY)
    generation = cache.begin_refresh(KEY)

    cache.resolve(KEY, generation, line_ranges(0, (1, 4)))
    cache.resolve(KEY, generation, line_ranges(0, (5, 8)))

    assert cache.get(KEY).ranges == line_ranges(0, (5, 8))


def test_settle_unknown_never_overwrites_a_result(cache: RangeCache) -> None:
    cache.open(KEY)
    generation = cache.begin_refresh(KEY)
    cache.resolve(KEY, generation, line_ranges(0, (1, 4)))

    assert not cache.settle_unknown(KEY, generation)
    assert cache.get(KEY).active

    generation = cache.begin_refresh(KEY)
    assert cache.settle_unknown(KEY, generation)
    assert cache.get(KEY).state is CacheState.NONE


def test_discard_orphans_in_flight_queries(cache: RangeCache) -> None:
    cache.open(KEY)
    generation = cache.begin_refresh(KEY)

    cache.discard(KEY)

    assert cache.get(KEY).state is CacheState.NONE
    assert not cache.resolve(KEY, generation, line_ranges(0, (1, 4)))


def test_listeners_see_every_write(cache: RangeCache) -> None:
    seen: list[tuple[str, CacheState]] = []
    cache.subscribe(lambda key, entry: seen.append((key, entry.state)))
    cache.open(KEY)

    generation = cache.begin_refresh(KEY)
    cache.resolve(KEY, generation, None)
    cache.close(KEY)

    assert seen == [(KEY, CacheState.UNKNOWN), (KEY, CacheState.NONE), (KEY, CacheState.NONE)]


def test_failing_listener_does_not_block_writes(cache: RangeCache) -> None:
    def _boom(key, entry):
        raise RuntimeError("listener failure")

    cache.subscribe(_boom)
    cache.open(KEY)
    generation = cache.begin_refresh(KEY)

    assert cache.resolve(KEY, generation, line_ranges(0, (1, 4)))
    assert cache.get(KEY).active
