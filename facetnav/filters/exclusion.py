"""
A facet must not narrow its own values. If the price filter were applied
while computing the price slider bounds, the slider could only ever show
the range already selected. The helpers here drop a facet's own
constraints for the duration of one computation and always put them back.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Callable, Dict, Iterable, Iterator, TypeVar

from facetnav.index.search_adapter import Filter, SearchAdapter


log = logging.getLogger(__name__)

T = TypeVar("T")

# Price and weight bounds ignore all three range constraints together
RANGE_DIMENSIONS = ("price_min", "price_max", "weight")


def _as_tuple(dimensions: str | Iterable[str]) -> tuple[str, ...]:
    if isinstance(dimensions, str):
        return (dimensions,)
    return tuple(dimensions)


@contextmanager
def dimensions_excluded(adapter: SearchAdapter, dimensions: str | Iterable[str]) -> Iterator[SearchAdapter]:
    dims = _as_tuple(dimensions)
    saved: Dict[str, Filter | None] = {d: adapter.get_filter(d) for d in dims}
    for d in dims:
        adapter.reset_filter(d)
    try:
        yield adapter
    finally:
        for d, flt in saved.items():
            adapter.set_filter(d, flt)
        log.debug(f"Restored filters for {', '.join(dims)}")


def with_dimension_excluded(
    adapter: SearchAdapter,
    dimensions: str | Iterable[str],
    fn: Callable[[SearchAdapter], T],
) -> T:
    """Run `fn` against `adapter` with the `dimensions` constraints cleared."""
    with dimensions_excluded(adapter, dimensions) as excluded:
        return fn(excluded)
