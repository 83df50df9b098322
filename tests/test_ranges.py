import random

import pytest

from zsync.ranges import KnownBlocks


def _expand_inclusive(ranges):
    return {block for start, end in ranges for block in range(start, end + 1)}


def _expand_half_open(ranges):
    return {block for start, stop in ranges for block in range(start, stop)}


def test_merge_fills_gap():
    known = KnownBlocks(10)
    known.add(0)
    known.add(2)
    assert known.ranges() == [(0, 0), (2, 2)]
    known.add(1)
    assert known.ranges() == [(0, 2)]


def test_add_twice_returns_false_and_counts_once():
    known = KnownBlocks(8)
    assert known.add(4) is True
    assert known.add(4) is False
    assert known.got_blocks == 1


def test_contains():
    known = KnownBlocks(8)
    known.add(3)
    assert 3 in known
    assert 2 not in known
    assert 4 not in known


def test_next_known_empty_returns_total():
    known = KnownBlocks(10)
    assert known.next_known(3) == 10


def test_next_known_with_blocks():
    known = KnownBlocks(10)
    known.add(5)
    assert known.next_known(3) == 5
    assert known.next_known(5) == 5
    assert known.next_known(6) == 10


def test_needed_ranges_nothing_known():
    known = KnownBlocks(10)
    assert known.needed_ranges(0, 10) == [(0, 10)]


def test_needed_ranges_clipped_to_total():
    known = KnownBlocks(10)
    assert known.needed_ranges(2, 50) == [(2, 10)]


def test_needed_ranges_all_known_is_empty():
    known = KnownBlocks(4)
    for block in range(4):
        known.add(block)
    assert known.needed_ranges(0, 4) == []
    assert known.blocks_todo() == 0


def test_needed_ranges_empty_window():
    known = KnownBlocks(10)
    assert known.needed_ranges(5, 5) == []


@pytest.mark.parametrize("seed", range(20))
def test_ranges_invariants(seed):
    rng = random.Random(seed)
    total = rng.randint(1, 60)
    known = KnownBlocks(total)
    added = set()
    for _ in range(rng.randint(0, total * 2)):
        block = rng.randrange(total)
        assert known.add(block) is (block not in added)
        added.add(block)

    ranges = known.ranges()
    assert _expand_inclusive(ranges) == added
    for (_, first_end), (second_start, _) in zip(ranges, ranges[1:]):
        assert second_start > first_end + 1
    assert known.got_blocks == len(added)
    assert known.blocks_todo() == total - len(added)
    for block in range(total):
        assert (block in known) == (block in added)


@pytest.mark.parametrize("seed", range(20))
def test_needed_ranges_cover_exactly_unknown(seed):
    rng = random.Random(1000 + seed)
    total = rng.randint(1, 60)
    known = KnownBlocks(total)
    added = {rng.randrange(total) for _ in range(rng.randint(0, total))}
    for block in added:
        known.add(block)

    start = rng.randint(0, total)
    stop = rng.randint(start, total + 5)
    needed = known.needed_ranges(start, stop)

    window = set(range(start, min(stop, total)))
    assert _expand_half_open(needed) == window - added
    for low, high in needed:
        assert low < high
    assert needed == sorted(needed)


@pytest.mark.parametrize("seed", range(10))
def test_next_known_is_smallest_known_at_or_after(seed):
    rng = random.Random(2000 + seed)
    total = rng.randint(1, 40)
    known = KnownBlocks(total)
    added = {rng.randrange(total) for _ in range(rng.randint(0, total))}
    for block in added:
        known.add(block)
    for block in range(total):
        later = [b for b in added if b >= block]
        expected = min(later) if later else total
        assert known.next_known(block) == expected