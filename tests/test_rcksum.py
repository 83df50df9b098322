import io
import os
import random

import pytest

from zsync.checksums import calc_checksum, calc_rsum_block
from zsync.rcksum import RcksumError, RcksumState

BS = 16


def _target(nblocks, seed=1):
    return random.Random(seed).randbytes(nblocks * BS)


def _state(target, tmp_path, seq_matches=1, rsum_bytes=4, checksum_bytes=16):
    nblocks = len(target) // BS
    state = RcksumState(nblocks, BS, rsum_bytes, checksum_bytes, seq_matches, tmp_path)
    for block in range(nblocks):
        chunk = target[block * BS : (block + 1) * BS]
        state.add_target_block(block, calc_rsum_block(chunk), calc_checksum(chunk))
    return state


@pytest.mark.parametrize("seq_matches", [1, 2])
def test_identical_source_file_recovers_everything(tmp_path, seq_matches):
    target = _target(8)
    with _state(target, tmp_path, seq_matches) as state:
        got = state.submit_source_file(io.BytesIO(target))
        assert got == 8
        assert state.blocks_todo() == 0
        assert state.read_known_data(0, len(target)) == target
        assert state.needed_block_ranges(0, 8) == []


@pytest.mark.parametrize("seq_matches", [1, 2])
def test_shifted_source_recovers_everything(tmp_path, seq_matches):
    target = _target(6, seed=7)
    with _state(target, tmp_path, seq_matches) as state:
        state.submit_source_file(io.BytesIO(b"xyz" + target + b"tail"))
        assert state.blocks_todo() == 0
        assert state.read_known_data(0, len(target)) == target


def test_large_source_spanning_several_buffers(tmp_path):
    target = _target(40, seed=3)
    source = b"prefix-" + target[: 20 * BS] + b"junk" + target[20 * BS :]
    with _state(target, tmp_path) as state:
        state.submit_source_file(io.BytesIO(source))
        assert state.blocks_todo() == 0
        assert state.read_known_data(0, len(target)) == target


def test_partial_source_leaves_needed_ranges(tmp_path):
    target = _target(8, seed=5)
    unrelated = random.Random(99).randbytes(4 * BS)
    with _state(target, tmp_path) as state:
        state.submit_source_file(io.BytesIO(target[: 4 * BS] + unrelated))
        assert state.blocks_todo() == 4
        assert state.needed_block_ranges(0, 8) == [(4, 8)]
        assert state.read_known_data(0, 4 * BS) == target[: 4 * BS]


def test_duplicate_blocks_all_filled_from_one_window(tmp_path):
    block = _target(1, seed=11)
    target = block * 4
    with _state(target, tmp_path) as state:
        got = state.submit_source_data(block + bytes(BS), 0)
        assert got == 4
        assert state.read_known_data(0, len(target)) == target


def test_submit_blocks_accepts_good_data(tmp_path):
    target = _target(5, seed=2)
    with _state(target, tmp_path) as state:
        state.submit_blocks(target[BS : 3 * BS], 1, 2)
        assert state.needed_block_ranges(0, 5) == [(0, 1), (3, 5)]
        assert state.blocks_todo() == 3
        assert state.read_known_data(BS, 2 * BS) == target[BS : 3 * BS]


def test_submit_blocks_rejects_bad_block_but_keeps_good_prefix(tmp_path):
    target = _target(4, seed=4)
    bad = target[: 2 * BS] + bytes(BS)
    with _state(target, tmp_path) as state:
        with pytest.raises(RcksumError):
            state.submit_blocks(bad, 0, 2)
        assert state.needed_block_ranges(0, 4) == [(2, 4)]


def test_submit_blocks_out_of_range(tmp_path):
    target = _target(2)
    with _state(target, tmp_path) as state:
        with pytest.raises(ValueError):
            state.submit_blocks(target, 1, 2)


def test_short_checksums_still_match(tmp_path):
    target = _target(4, seed=8)
    with _state(target, tmp_path, rsum_bytes=2, checksum_bytes=3) as state:
        state.submit_source_file(io.BytesIO(target))
        assert state.read_known_data(0, len(target)) == target


@pytest.mark.parametrize("nblocks,blocksize", [(0, 16), (4, 24), (4, 0)])
def test_invalid_geometry_raises(tmp_path, nblocks, blocksize):
    with pytest.raises(RcksumError):
        RcksumState(nblocks, blocksize, 4, 16, 1, tmp_path)


def test_invalid_seq_matches_raises(tmp_path):
    with pytest.raises(ValueError):
        RcksumState(4, 16, 4, 16, 3, tmp_path)


def test_close_removes_working_file(tmp_path):
    state = _state(_target(2), tmp_path)
    names = os.listdir(tmp_path)
    assert len(names) == 1 and names[0].startswith("rcksum-")
    state.close()
    assert os.listdir(tmp_path) == []


def test_take_filename_keeps_file(tmp_path):
    target = _target(3, seed=6)
    with _state(target, tmp_path) as state:
        state.submit_source_file(io.BytesIO(target))
        name = state.take_filename()
        assert state.take_filename() is None
    with open(name, "rb") as handle:
        assert handle.read() == target


def test_read_after_close_raises(tmp_path):
    state = _state(_target(2), tmp_path)
    state.close()
    with pytest.raises(RcksumError):
        state.read_known_data(0, 4)