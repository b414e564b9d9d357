"""Helpers for taking bounded leading runs of queues."""

from __future__ import annotations

from collections import deque
from itertools import islice, takewhile
from typing import Callable, Iterable, MutableSequence, Optional, Sequence, TypeVar

T = TypeVar("T")
U = TypeVar("U")


def get_span(seq: Sequence[T], size: int) -> slice:
    """Return a slice covering at most the first ``size`` elements of ``seq``."""
    if size < 0:
        raise ValueError("span size must not be negative")
    return slice(0, min(len(seq), size))


def get_span_p(seq: Sequence[T], predicate: Callable[[T], bool], size: Optional[int] = None) -> slice:
    """Return a slice over the leading run of ``seq`` satisfying ``predicate``, at most ``size`` long."""
    bounded = get_span(seq, len(seq) if size is None else size)
    count = sum(1 for _ in takewhile(predicate, seq[bounded]))
    return slice(0, count)


def extract_if(items: Iterable[T], predicate: Callable[[T], bool]) -> tuple[list[T], list[T]]:
    """Split ``items`` into (kept, extracted), each keeping the original order."""
    kept: list[T] = []
    extracted: list[T] = []
    for item in items:
        (extracted if predicate(item) else kept).append(item)
    return kept, extracted


def transform_while_n(
    queue: MutableSequence[T] | deque,
    out: MutableSequence[U],
    size: int,
    predicate: Callable[[T], bool],
    transform: Callable[[T], U],
) -> int:
    """Move up to ``size`` leading elements of ``queue`` that satisfy ``predicate`` into ``out``.

    Each moved element is passed through ``transform``. Returns how many were moved.
    """
    if size < 0:
        raise ValueError("size must not be negative")
    taken = list(takewhile(predicate, islice(queue, size)))
    out.extend(transform(item) for item in taken)
    if isinstance(queue, deque):
        for _ in taken:
            queue.popleft()
    else:
        del queue[: len(taken)]
    return len(taken)