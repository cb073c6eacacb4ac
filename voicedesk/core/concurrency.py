"""Bounded fan-out helpers for blocking vendor calls."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterable, TypeVar

T = TypeVar("T")
R = TypeVar("R")


def bounded_map(fn: Callable[[T], R], items: Iterable[T], max_workers: int) -> list[R]:
    """Apply ``fn`` to every item with at most ``max_workers`` calls in flight.

    Results keep the order of ``items``. ``fn`` is expected to handle its own
    failures; an exception raised by any call propagates to the caller.
    """

    values = list(items)
    if not values:
        return []
    workers = max(1, min(max_workers, len(values)))
    if workers == 1:
        return [fn(value) for value in values]
    with ThreadPoolExecutor(max_workers=workers) as executor:
        return list(executor.map(fn, values))


__all__ = ["bounded_map"]
