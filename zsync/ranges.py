"""Record of which blocks of the target file are already known."""

from __future__ import annotations

from bisect import bisect_right


class KnownBlocks:
    """Sorted set of known block ids, kept as disjoint inclusive ranges.

    Adjacent ranges are always merged, so two stored ranges never touch.
    """

    def __init__(self, total_blocks: int) -> None:
        self.total_blocks = total_blocks
        self.got_blocks = 0
        self._starts: list[int] = []
        self._ends: list[int] = []

    def _position(self, block: int) -> int | None:
        """Return None if block is known, else the index of the next range."""
        index = bisect_right(self._starts, block) - 1
        if index >= 0 and block <= self._ends[index]:
            return None
        return index + 1

    def add(self, block: int) -> bool:
        """Mark block as known. Return False if it was already known."""
        r = self._position(block)
        if r is None:
            return False
        self.got_blocks += 1
        starts, ends = self._starts, self._ends
        count = len(starts)
        joins_below = r > 0 and ends[r - 1] == block - 1
        joins_above = r < count and starts[r] == block + 1
        if joins_below and joins_above:
            ends[r - 1] = ends[r]
            del starts[r]
            del ends[r]
        elif joins_below:
            ends[r - 1] = block
        elif joins_above:
            starts[r] = block
        else:
            starts.insert(r, block)
            ends.insert(r, block)
        return True

    def __contains__(self, block: object) -> bool:
        if not isinstance(block, int):
            return False
        return self._position(block) is None

    def next_known(self, block: int) -> int:
        """Return block if known, else the next known block id.

        Returns total_blocks when no later block is known.
        """
        r = self._position(block)
        if r is None:
            return block
        if r == len(self._starts):
            return self.total_blocks
        return self._starts[r]

    def needed_ranges(self, start: int, stop: int) -> list[tuple[int, int]]:
        """Return half-open (from, to) ranges within [start, stop) still unknown."""
        stop = min(stop, self.total_blocks)
        result = [[start, stop]]
        for known_start, known_end in zip(self._starts, self._ends):
            if known_start > result[-1][1] or known_end < start:
                continue
            if len(result) == 1 and known_start <= start:
                result[0][0] = known_end + 1
            elif known_end >= result[-1][1] - 1:
                result[-1][1] = known_start
            else:
                tail_end = result[-1][1]
                result[-1][1] = known_start
                result.append([known_end + 1, tail_end])
        if len(result) == 1 and result[0][0] >= result[0][1]:
            return []
        return [(low, high) for low, high in result]

    def blocks_todo(self) -> int:
        """Return how many blocks of the target are still unknown."""
        known = sum(end - start + 1 for start, end in zip(self._starts, self._ends))
        return self.total_blocks - known

    def ranges(self) -> list[tuple[int, int]]:
        """Return the known ranges as sorted inclusive (first, last) pairs."""
        return list(zip(self._starts, self._ends))