"""Rsync-style matching of local data against the blocks of a target file.

An RcksumState holds the rsum and strong checksum of every block of the
target, finds blocks of the target inside local data, and writes what it
finds to a temporary file that grows into the target.
"""

from __future__ import annotations

import os
import tempfile
from typing import BinaryIO

from .blockhash import BlockHashTable, TargetBlock
from .checksums import CHECKSUM_SIZE, Rsum, calc_checksum, calc_rsum_block
from .ranges import KnownBlocks

_BUFFER_BLOCKS = 16


class RcksumError(Exception):
    """Raised when target data cannot be set up or does not verify."""


class RcksumState:
    """Checksums of a target file plus the partial copy being built."""

    def __init__(
        self,
        nblocks: int,
        blocksize: int,
        rsum_bytes: int,
        checksum_bytes: int,
        seq_matches: int = 1,
        directory: str | os.PathLike[str] | None = None,
    ) -> None:
        if nblocks <= 0:
            raise RcksumError(f"target must have at least one block, got {nblocks}")
        if blocksize <= 0 or blocksize & (blocksize - 1):
            raise RcksumError(f"block size must be a power of two, got {blocksize}")
        if seq_matches not in (1, 2):
            raise ValueError(f"seq_matches must be 1 or 2, got {seq_matches}")
        if not 0 < checksum_bytes <= CHECKSUM_SIZE:
            raise ValueError(f"checksum_bytes must be 1..{CHECKSUM_SIZE}, got {checksum_bytes}")

        self.blocks = nblocks
        self.blocksize = blocksize
        self.blockshift = blocksize.bit_length() - 1
        self.seq_matches = seq_matches
        self.checksum_bytes = checksum_bytes
        self.rsum_bits = rsum_bytes * 8
        if rsum_bytes < 3:
            self.rsum_a_mask = 0
        elif rsum_bytes == 3:
            self.rsum_a_mask = 0xFF
        else:
            self.rsum_a_mask = 0xFFFF
        self._context = blocksize * seq_matches

        empty = TargetBlock(Rsum(), bytes(checksum_bytes))
        self._targets: list[TargetBlock] = [empty] * nblocks
        self._table: BlockHashTable | None = None
        self._known = KnownBlocks(nblocks)

        self._r = [Rsum(), Rsum()]
        self._skip = 0
        self._next_match: int | None = None
        self._next_known = 0

        fd, name = tempfile.mkstemp(prefix="rcksum-", dir=os.fspath(directory or "."))
        self._filename: str | None = name
        self._file: BinaryIO | None = os.fdopen(fd, "r+b")

    # -- target description -------------------------------------------------

    def add_target_block(self, block: int, rsum: Rsum, checksum: bytes) -> None:
        """Record the checksums of one block of the target file."""
        if not 0 <= block < self.blocks:
            return
        masked = Rsum(rsum.a & self.rsum_a_mask, rsum.b)
        self._targets[block] = TargetBlock(masked, bytes(checksum[: self.checksum_bytes]))
        self._table = None

    def _hash_table(self) -> BlockHashTable:
        if self._table is None:
            self._table = BlockHashTable(
                self._targets, self.rsum_bits, self.rsum_a_mask, self.seq_matches
            )
        return self._table

    def _target_rsum(self, block: int) -> Rsum:
        return self._targets[block].rsum if block < self.blocks else Rsum()

    def _checksum_matches(self, block: int, digest: bytes) -> bool:
        if block >= self.blocks:
            return False
        return digest[: self.checksum_bytes] == self._targets[block].checksum

    # -- output file --------------------------------------------------------

    def _require_file(self) -> BinaryIO:
        if self._file is None:
            raise RcksumError("working file is closed")
        return self._file

    def _write_blocks(self, data: bytes, start: int, bfrom: int, bto: int) -> None:
        """Write blocks bfrom..bto (inclusive) taken from data[start:]."""
        count = bto - bfrom + 1
        if count <= 0:
            return
        handle = self._require_file()
        handle.seek(bfrom << self.blockshift)
        handle.write(data[start : start + (count << self.blockshift)])
        table = self._table
        for block in range(bfrom, bto + 1):
            if table is not None:
                table.remove(block)
            self._known.add(block)

    def read_known_data(self, offset: int, length: int) -> bytes:
        """Read back up to length bytes of the working output at offset."""
        handle = self._require_file()
        handle.flush()
        handle.seek(offset)
        return handle.read(length)

    # -- accepting data -----------------------------------------------------

    def submit_blocks(self, data: bytes, bfrom: int, bto: int) -> None:
        """Verify and store data known to hold target blocks bfrom..bto.

        Blocks before the first bad one are kept; a bad block raises
        RcksumError.
        """
        if bfrom < 0 or bto >= self.blocks:
            raise ValueError(f"block range {bfrom}-{bto} outside target of {self.blocks} blocks")
        view = bytes(data)
        self._hash_table()
        bs = self.blocksize
        for block in range(bfrom, bto + 1):
            start = (block - bfrom) * bs
            if not self._checksum_matches(block, calc_checksum(view[start : start + bs])):
                self._write_blocks(view, 0, bfrom, block - 1)
                raise RcksumError(f"checksum mismatch on block {block}")
        self._write_blocks(view, 0, bfrom, bto)

    def _check_chain(self, candidates: tuple[int, ...], data: bytes, x: int, onlyone: bool) -> int:
        """Check the window at data[x:] against candidate target blocks.

        Matching blocks are written out; returns how many were obtained.
        """
        r0, r1 = self._r
        mask = self.rsum_a_mask
        bs = self.blocksize
        seq = self.seq_matches
        digests: dict[int, bytes] = {}
        got = 0
        self._next_match = None

        for block in candidates:
            if block in self._known:
                continue
            entry = self._targets[block]
            if entry.rsum.a != (r0.a & mask) or entry.rsum.b != r0.b:
                continue
            if not onlyone and seq > 1:
                following = self._target_rsum(block + 1)
                if following.a != (r1.a & mask) or following.b != r1.b:
                    continue

            ok = True
            checked = 0
            while True:
                digest = digests.get(checked)
                if digest is None:
                    start = x + bs * checked
                    digest = calc_checksum(data[start : start + bs])
                    digests[checked] = digest
                if not self._checksum_matches(block + checked, digest):
                    ok = False
                checked += 1
                if not (ok and not onlyone and checked < seq):
                    break

            if not ok:
                continue
            next_known = self._next_known if onlyone else self._known.next_known(block)
            if next_known > block + checked:
                count = checked
                self._next_match = block + checked
                if not onlyone:
                    self._next_known = next_known
            else:
                count = next_known - block
            self._write_blocks(data, x, block, block + count - 1)
            got += max(count, 0)
        return got

    def submit_source_data(self, data: bytes, offset: int = 0) -> int:
        """Scan data for blocks of the target; return how many were found.

        offset is 0 for a new stream, else the position of data within
        the stream continuing from the previous call.
        """
        view = bytes(data)
        bs = self.blocksize
        seq = self.seq_matches
        shift = self.blockshift
        x_limit = len(view) - self._context
        table = self._hash_table()
        got = 0

        x = self._skip if offset else 0
        if not offset:
            self._next_match = None
        if x or not offset:
            self._r[0] = calc_rsum_block(view[x : x + bs])
            if seq > 1:
                self._r[1] = calc_rsum_block(view[x + bs : x + 2 * bs])
        self._skip = 0

        while x < x_limit:
            blocks_matched = 0

            if self._next_match is not None and seq > 1:
                found = self._check_chain((self._next_match,), view, x, onlyone=True)
                if found:
                    blocks_matched = 1
                    got += found

            while not blocks_matched and x < x_limit:
                r0, r1 = self._r
                h = table.hash_of(r0, r1 if seq > 1 else None)
                if table.might_contain(h):
                    chain = table.chain(h)
                    if chain:
                        found = self._check_chain(chain, view, x, onlyone=False)
                        if found:
                            blocks_matched = seq
                            got += found
                if not blocks_matched:
                    old, new = view[x], view[x + bs]
                    self._r[0] = r0.roll(old, new, shift)
                    if seq > 1:
                        self._r[1] = r1.roll(new, view[x + 2 * bs], shift)
                    x += 1

            if blocks_matched:
                x += bs + (bs if blocks_matched > 1 else 0)
                if x <= x_limit:
                    if seq > 1 and blocks_matched == 1:
                        self._r[0] = self._r[1]
                    else:
                        self._r[0] = calc_rsum_block(view[x : x + bs])
                    if seq > 1:
                        self._r[1] = calc_rsum_block(view[x + bs : x + 2 * bs])

        self._skip = x - x_limit
        return got

    def submit_source_file(self, stream: BinaryIO) -> int:
        """Scan a binary stream for blocks of the target; return how many."""
        self._hash_table()
        bufsize = self.blocksize * _BUFFER_BLOCKS
        context = self._context
        position = 0
        buffer = b""
        got = 0
        at_eof = False

        while not at_eof:
            start_in = position
            if not position:
                chunk = stream.read(bufsize) or b""
                position += len(chunk)
                at_eof = len(chunk) < bufsize
                buffer = chunk
            else:
                tail = buffer[bufsize - context : bufsize]
                position += bufsize - context
                chunk = stream.read(bufsize - context) or b""
                at_eof = len(chunk) < bufsize - context
                buffer = tail + chunk
            if at_eof:
                buffer += bytes(context)
            got += self.submit_source_data(buffer, start_in)
        return got

    # -- progress -----------------------------------------------------------

    def needed_block_ranges(self, start: int, stop: int) -> list[tuple[int, int]]:
        """Return half-open block ranges within [start, stop) still needed."""
        return self._known.needed_ranges(start, stop)

    def blocks_todo(self) -> int:
        """Return the number of target blocks not yet obtained."""
        return self._known.blocks_todo()

    # -- ownership and cleanup ----------------------------------------------

    def take_filename(self) -> str | None:
        """Hand the working file's name to the caller, who then owns the file.

        Returns None if it was already taken.
        """
        name, self._filename = self._filename, None
        return name

    def close(self) -> None:
        """Close the working file, deleting it unless its name was taken."""
        if self._file is not None:
            self._file.close()
            self._file = None
        if self._filename is not None:
            try:
                os.unlink(self._filename)
            except FileNotFoundError:
                pass
            self._filename = None

    def __enter__(self) -> "RcksumState":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()