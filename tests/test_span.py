from collections import deque

import pytest
from hypothesis import given
from hypothesis import strategies as st

from champtrace.span import extract_if, get_span, get_span_p, transform_while_n

int_lists = st.lists(st.integers(min_value=-100, max_value=100))


@given(int_lists, st.integers(min_value=0, max_value=200))
def test_get_span_length(seq, size):
    assert seq[get_span(seq, size)] == seq[: min(len(seq), size)]


def test_get_span_negative_size_raises():
    with pytest.raises(ValueError):
        get_span([1, 2], -1)


@given(int_lists, st.integers(min_value=0, max_value=200))
def test_get_span_p_leading_run(seq, size):
    part = seq[get_span_p(seq, lambda x: x >= 0, size)]
    assert len(part) <= size
    assert all(x >= 0 for x in part)
    rest = seq[len(part) : size]
    assert not rest or rest[0] < 0


def test_get_span_p_stops_at_failure():
    seq = [2, 4, 5, 6]
    assert seq[get_span_p(seq, lambda x: x % 2 == 0)] == [2, 4]


def test_get_span_p_without_size_covers_all():
    seq = [1, 1, 1]
    assert seq[get_span_p(seq, lambda x: x == 1)] == seq


@given(int_lists)
def test_extract_if_partitions(items):
    kept, extracted = extract_if(items, lambda x: x % 3 == 0)
    assert all(x % 3 == 0 for x in extracted)
    assert all(x % 3 != 0 for x in kept)
    assert sorted(kept + extracted) == sorted(items)
    assert kept == [x for x in items if x % 3 != 0]


def test_transform_while_n_on_deque():
    queue = deque([1, 2, 3, 10, 4])
    out = []
    moved = transform_while_n(queue, out, 10, lambda x: x < 5, lambda x: x * 2)
    assert moved == 3
    assert out == [2, 4, 6]
    assert list(queue) == [10, 4]


def test_transform_while_n_respects_size():
    queue = [1, 2, 3, 4]
    out = []
    moved = transform_while_n(queue, out, 2, lambda x: True, str)
    assert moved == 2
    assert out == ["1", "2"]
    assert queue == [3, 4]


def test_transform_while_n_negative_size_raises():
    with pytest.raises(ValueError):
        transform_while_n([1], [], -1, lambda x: True, lambda x: x)


@given(int_lists, st.integers(min_value=0, max_value=50))
def test_transform_while_n_conserves_elements(items, size):
    queue = deque(items)
    out = []
    moved = transform_while_n(queue, out, size, lambda x: x > 0, lambda x: x)
    assert out + list(queue) == items
    assert len(out) == moved <= size