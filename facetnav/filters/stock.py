from __future__ import annotations

import logging
from enum import IntEnum
from typing import Iterable, Tuple


log = logging.getLogger(__name__)

UNAVAILABLE = 0
AVAILABLE = 1


class OutOfStock(IntEnum):
    """Per-product policy when tracked quantity reaches zero."""
    DENY = 0
    ALLOW = 1
    DEFAULT = 2  # follow the shop-wide backorder setting


def split_by_quantity(total: int, zero_quantity: int) -> Tuple[int, int]:
    """Buckets when stock is not managed: zero quantity vs. everything else."""
    return zero_quantity, total - zero_quantity


def reconcile_stock_states(state_counts: Iterable[Tuple[int, int]], order_out_of_stock: bool) -> Tuple[int, int]:
    """Fold product counts per out-of-stock policy into (unavailable, available).

    Products following the shop default are available when backorders are
    enabled. When they are not, their count is taken off the unavailable
    bucket rather than added to it. The bucket never drops below zero.
    """
    unavailable = available = 0
    for state, count in state_counts:
        if state is None:
            continue
        state = int(state)
        if state == OutOfStock.DENY:
            unavailable += count
        elif state == OutOfStock.ALLOW:
            available += count
        elif state == OutOfStock.DEFAULT and order_out_of_stock:
            available += count
        else:
            unavailable -= count
    if unavailable < 0:
        log.debug(f"Unavailable stock bucket went negative ({unavailable}), clamping to 0")
        unavailable = 0
    return unavailable, available
