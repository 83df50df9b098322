import random

import pytest

from zsync.checksums import CHECKSUM_SIZE, Rsum, calc_checksum, calc_rsum_block
from zsync.md4 import md4_digest


def test_empty_block_rsum_is_zero():
    assert calc_rsum_block(b"") == Rsum(0, 0)


def test_small_block_rsum():
    assert calc_rsum_block(b"\x01\x02\x03") == Rsum(6, 10)


def test_a_is_byte_sum_mod_16_bits():
    data = b"\xff" * 1000
    r = calc_rsum_block(data)
    assert r.a == (255 * 1000) & 0xFFFF
    assert 0 <= r.b <= 0xFFFF


@pytest.mark.parametrize("blockshift", [0, 2, 4, 6])
def test_rolling_matches_fresh_calculation(blockshift):
    rng = random.Random(1234)
    blocksize = 1 << blockshift
    data = bytes(rng.randrange(256) for _ in range(blocksize + 200))
    r = calc_rsum_block(data[:blocksize])
    for x in range(200):
        r = r.roll(data[x], data[x + blocksize], blockshift)
        assert r == calc_rsum_block(data[x + 1:x + 1 + blocksize])


def test_roll_with_high_bytes_wraps():
    blockshift = 3
    data = b"\xff" * 8 + b"\x00" * 8
    r = calc_rsum_block(data[:8])
    for x in range(8):
        r = r.roll(data[x], data[x + 8], blockshift)
    assert r == Rsum(0, 0)


def test_roll_returns_new_value():
    r = Rsum(5, 7)
    rolled = r.roll(1, 2, 2)
    assert r == Rsum(5, 7)
    assert rolled.a == 6


def test_roll_rejects_out_of_range_byte():
    with pytest.raises(ValueError):
        Rsum().roll(256, 0, 3)
    with pytest.raises(ValueError):
        Rsum().roll(0, -1, 3)


def test_checksum_is_md4():
    data = b"abcdefghijklmnopqrstuvwxyz"
    assert calc_checksum(data) == md4_digest(data)
    assert calc_checksum(data).hex() == "d79e1c308aa5bbcdeea8ed63df412da9"


def test_checksum_size():
    assert len(calc_checksum(b"\x00" * 2048)) == CHECKSUM_SIZE


def test_rsum_rejects_text():
    with pytest.raises(TypeError):
        calc_rsum_block("text")