"""Pure-Python MD4 message digest (RFC 1320), used for block checksums."""

from __future__ import annotations

import struct

_MASK = 0xFFFFFFFF
_BLOCK_LENGTH = 64
_DIGEST_LENGTH = 16
_INITIAL_STATE = (0x67452301, 0xEFCDAB89, 0x98BADCFE, 0x10325476)

_ROUND1_ORDER = tuple(range(16))
_ROUND2_ORDER = (0, 4, 8, 12, 1, 5, 9, 13, 2, 6, 10, 14, 3, 7, 11, 15)
_ROUND3_ORDER = (0, 8, 4, 12, 2, 10, 6, 14, 1, 9, 5, 13, 3, 11, 7, 15)

_ROUND1_SHIFTS = (3, 7, 11, 19)
_ROUND2_SHIFTS = (3, 5, 9, 13)
_ROUND3_SHIFTS = (3, 9, 11, 15)

_ROUND2_CONSTANT = 0x5A827999
_ROUND3_CONSTANT = 0x6ED9EBA1


def _f1(x: int, y: int, z: int) -> int:
    return z ^ (x & (y ^ z))


def _f2(x: int, y: int, z: int) -> int:
    return (x & y) | (x & z) | (y & z)


def _f3(x: int, y: int, z: int) -> int:
    return x ^ y ^ z


_ROUNDS = (
    (_f1, _ROUND1_ORDER, _ROUND1_SHIFTS, 0),
    (_f2, _ROUND2_ORDER, _ROUND2_SHIFTS, _ROUND2_CONSTANT),
    (_f3, _ROUND3_ORDER, _ROUND3_SHIFTS, _ROUND3_CONSTANT),
)


def _transform(state: tuple[int, int, int, int], block: bytes) -> tuple[int, int, int, int]:
    """Fold one 64-byte block into the four-word state."""
    words = struct.unpack("<16I", block)
    regs = list(state)
    for func, order, shifts, constant in _ROUNDS:
        for step, index in enumerate(order):
            w = (-step) % 4
            x, y, z = regs[(w + 1) % 4], regs[(w + 2) % 4], regs[(w + 3) % 4]
            value = (regs[w] + func(x, y, z) + words[index] + constant) & _MASK
            shift = shifts[step % 4]
            regs[w] = ((value << shift) | (value >> (32 - shift))) & _MASK
    return tuple((s + r) & _MASK for s, r in zip(state, regs))  # type: ignore[return-value]


class MD4:
    """Incremental MD4 hasher with a hashlib-like interface."""

    name = "md4"
    digest_size = _DIGEST_LENGTH
    block_size = _BLOCK_LENGTH

    def __init__(self, data: bytes = b"") -> None:
        self._state = _INITIAL_STATE
        self._buffer = b""
        self._count = 0
        if data:
            self.update(data)

    def update(self, data: bytes) -> None:
        """Feed more bytes into the hash."""
        chunk = bytes(memoryview(data))
        self._count += len(chunk)
        buffer = self._buffer + chunk
        whole = len(buffer) - len(buffer) % _BLOCK_LENGTH
        state = self._state
        for start in range(0, whole, _BLOCK_LENGTH):
            state = _transform(state, buffer[start:start + _BLOCK_LENGTH])
        self._state = state
        self._buffer = buffer[whole:]

    def digest(self) -> bytes:
        """Return the 16-byte digest of everything fed so far."""
        bit_count = (self._count * 8) & 0xFFFFFFFFFFFFFFFF
        pad_length = _BLOCK_LENGTH - (self._count % _BLOCK_LENGTH)
        if pad_length < 9:
            pad_length += _BLOCK_LENGTH
        tail = (
            self._buffer
            + b"\x80"
            + b"\x00" * (pad_length - 9)
            + struct.pack("<Q", bit_count)
        )
        state = self._state
        for start in range(0, len(tail), _BLOCK_LENGTH):
            state = _transform(state, tail[start:start + _BLOCK_LENGTH])
        return struct.pack("<4I", *state)

    def hexdigest(self) -> str:
        """Return the digest as a lowercase hexadecimal string."""
        return self.digest().hex()

    def copy(self) -> "MD4":
        """Return an independent hasher with the same state."""
        clone = MD4()
        clone._state = self._state
        clone._buffer = self._buffer
        clone._count = self._count
        return clone


def md4_digest(data: bytes) -> bytes:
    """Return the MD4 digest of data in one call."""
    return MD4(data).digest()