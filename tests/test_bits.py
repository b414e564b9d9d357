import pytest
from hypothesis import given
from hypothesis import strategies as st

from champtrace.bits import MASK64, bitmask, lg2, splice_bits

u64 = st.integers(min_value=0, max_value=MASK64)


@pytest.mark.parametrize("n", [0, 1])
def test_lg2_small_inputs_are_zero(n):
    assert lg2(n) == 0


@given(st.integers(min_value=1, max_value=MASK64))
def test_lg2_brackets_value(n):
    k = lg2(n)
    assert 2**k <= n < 2 ** (k + 1)


@given(st.integers(min_value=0, max_value=63))
def test_lg2_of_power_of_two(k):
    assert lg2(1 << k) == k


def test_bitmask_full_width_is_all_ones():
    assert bitmask(64) == 0xFFFF_FFFF_FFFF_FFFF


def test_bitmask_reversed_range_is_all_ones():
    assert bitmask(3, 5) == MASK64


@given(st.integers(min_value=0, max_value=63), st.integers(min_value=0, max_value=63))
def test_bitmask_shape(a, b):
    begin, end = max(a, b), min(a, b)
    mask = bitmask(begin, end)
    assert bin(mask).count("1") == begin - end
    assert mask & ((1 << end) - 1) == 0
    assert mask >> begin == 0


def test_bitmask_zero_width():
    assert bitmask(0) == 0


@given(u64, u64, st.integers(min_value=0, max_value=64))
def test_splice_bits_takes_each_part(upper, lower, bits):
    result = splice_bits(upper, lower, bits)
    mask = bitmask(bits)
    assert result & mask == lower & mask
    assert result & ~mask & MASK64 == upper & ~mask & MASK64


@given(u64, st.integers(min_value=0, max_value=64))
def test_splice_bits_identity(value, bits):
    assert splice_bits(value, value, bits) == value


@given(u64, u64)
def test_splice_bits_extremes(upper, lower):
    assert splice_bits(upper, lower, 0) == upper
    assert splice_bits(upper, lower, 64) == lower