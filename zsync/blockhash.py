"""Hash tables for looking up target blocks by their rolling checksum."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from .checksums import Rsum

BITHASH_BITS = 3
_MASK32 = 0xFFFFFFFF


@dataclass(frozen=True)
class TargetBlock:
    """Checksums recorded for one block of the target file."""

    rsum: Rsum
    checksum: bytes


class BlockHashTable:
    """Rsum hash chains plus a bit table for fast negative lookups.

    Chains hold block ids in ascending order.
    """

    def __init__(
        self,
        blocks: Sequence[TargetBlock],
        rsum_bits: int,
        rsum_a_mask: int,
        seq_matches: int,
    ) -> None:
        if seq_matches < 1:
            raise ValueError(f"seq_matches must be at least 1, got {seq_matches}")
        if rsum_bits <= 0:
            raise ValueError(f"rsum_bits must be positive, got {rsum_bits}")
        self.blocks = tuple(blocks)
        self.rsum_a_mask = rsum_a_mask
        self.seq_matches = seq_matches

        count = len(self.blocks)
        avail_bits = min(rsum_bits, 16) * 2 if seq_matches > 1 else rsum_bits
        hash_bits = avail_bits
        while (1 << (hash_bits - 1)) > count and hash_bits > 5:
            hash_bits -= 1
        self.hash_mask = (1 << hash_bits) - 1

        hash_bits = min(hash_bits + BITHASH_BITS, avail_bits)
        self.bithash_mask = (1 << hash_bits) - 1
        self._bithash = bytearray((self.bithash_mask >> 3) + 1)

        if seq_matches > 1 and avail_bits < 24:
            self.hash_func_shift = max(0, hash_bits - avail_bits // 2)
        else:
            self.hash_func_shift = max(0, hash_bits - (avail_bits - 16))

        self._chains: dict[int, list[int]] = {}
        for block_id in range(count):
            h = self.block_hash(block_id)
            self._chains.setdefault(h & self.hash_mask, []).append(block_id)
            self._bithash[(h & self.bithash_mask) >> 3] |= 1 << (h & 7)

    def hash_of(self, first: Rsum, second: Rsum | None = None) -> int:
        """Hash the rsum of a window, and of the following window when
        consecutive matches are required."""
        if self.seq_matches > 1:
            if second is None:
                raise ValueError("a second rsum is needed when seq_matches > 1")
            other = second.b
        else:
            other = first.a & self.rsum_a_mask
        return (first.b ^ (other << self.hash_func_shift)) & _MASK32

    def block_hash(self, block_id: int) -> int:
        """Return the hash value of a stored target block."""
        first = self.blocks[block_id].rsum
        if self.seq_matches > 1:
            following = block_id + 1
            second = self.blocks[following].rsum if following < len(self.blocks) else Rsum()
            return self.hash_of(first, second)
        return self.hash_of(first)

    def might_contain(self, hash_value: int) -> bool:
        """Return False if no target block can have this hash value."""
        bits = self._bithash[(hash_value & self.bithash_mask) >> 3]
        return bool(bits & (1 << (hash_value & 7)))

    def chain(self, hash_value: int) -> tuple[int, ...]:
        """Return the block ids whose hash shares this value's bucket."""
        return tuple(self._chains.get(hash_value & self.hash_mask, ()))

    def remove(self, block_id: int) -> None:
        """Drop a block from its hash chain, so lookups no longer return it."""
        chain = self._chains.get(self.block_hash(block_id) & self.hash_mask)
        if chain and block_id in chain:
            chain.remove(block_id)