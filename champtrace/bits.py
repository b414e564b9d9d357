"""Bit manipulation helpers for 64-bit addresses."""

MASK64 = (1 << 64) - 1


def lg2(n: int) -> int:
    """Return floor(log2(n)), with 0 for any n below 2."""
    if n < 2:
        return 0
    return n.bit_length() - 1


def bitmask(begin: int, end: int = 0) -> int:
    """Return a 64-bit mask with bits [end, begin) set.

    A width of 64 or more, or a negative width, gives a mask of all ones.
    """
    width = begin - end
    if 0 <= width < 64:
        return (((1 << width) - 1) << end) & MASK64
    return MASK64


def splice_bits(upper: int, lower: int, bits: int) -> int:
    """Take the low ``bits`` bits from ``lower`` and the rest from ``upper``."""
    mask = bitmask(bits)
    return ((upper & ~mask) | (lower & mask)) & MASK64