"""Block checksums: the rolling rsum and the strong MD4 checksum."""

from __future__ import annotations

from dataclasses import dataclass
from itertools import accumulate

from .md4 import md4_digest

CHECKSUM_SIZE = 16
_MASK16 = 0xFFFF


def _check_byte(value: int) -> int:
    if not 0 <= value <= 0xFF:
        raise ValueError(f"byte value out of range: {value}")
    return value


@dataclass(frozen=True)
class Rsum:
    """Rolling Adler-style checksum of a block, two 16-bit halves."""

    a: int = 0
    b: int = 0

    def roll(self, old_byte: int, new_byte: int, blockshift: int) -> "Rsum":
        """Slide the window one byte: drop old_byte, append new_byte.

        blockshift is log2 of the window length.
        """
        old = _check_byte(old_byte)
        new = _check_byte(new_byte)
        a = (self.a + new - old) & _MASK16
        b = (self.b + a - (old << blockshift)) & _MASK16
        return Rsum(a, b)


def calc_rsum_block(data: bytes) -> Rsum:
    """Return the rsum of a whole block of data."""
    view = bytes(memoryview(data))
    a = sum(view) & _MASK16
    b = sum(accumulate(view)) & _MASK16
    return Rsum(a, b)


def calc_checksum(data: bytes) -> bytes:
    """Return the strong (MD4) checksum of a block of data."""
    return md4_digest(data)