from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Tuple


def _identity(text: str) -> str:
    return text


@dataclass(frozen=True)
class Scope:
    shop_id: int
    category_id: int


@dataclass(frozen=True)
class Currency:
    iso_code: str = "EUR"
    sign: str = "€"
    format: str = "#,##0.00 ¤"
    precision: int = 2


@dataclass(frozen=True)
class RequestContext:
    """Everything about the viewer that facet computation depends on.

    Passed explicitly to the service and every builder instead of being
    looked up from process-wide state.
    """
    language_id: int = 1
    currency: Currency = field(default_factory=Currency)
    customer_group_ids: Tuple[int, ...] = ()
    authenticated: bool = False
    show_prices: bool = True
    translate: Callable[[str], str] = _identity


@dataclass(frozen=True)
class ParentCategory:
    """Nested-set position of the category being navigated."""
    id: int
    nleft: int
    nright: int
    level_depth: int
