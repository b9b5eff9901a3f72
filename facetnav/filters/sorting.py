from __future__ import annotations

import re
from typing import Any, Dict, Hashable, List, Mapping, Tuple, TypeVar

from facetnav.models.facets_model import FacetValue


K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

_DIGITS = re.compile(r"(\d+)")


def sort_by_reference(reference: Mapping[K, Any], result: Mapping[K, V]) -> Dict[K, V]:
    """Project `result` onto the iteration order of `reference`.

    Keys missing from `reference` are dropped; neither input is modified.
    """
    return {key: result[key] for key in reference if key in result}


def natural_key(label: str) -> Tuple[Tuple[int, Any], ...]:
    """Case-insensitive natural sort key: "Size 2" sorts before "size 10"."""
    parts = _DIGITS.split(label.casefold())
    return tuple((0, int(p)) if p.isdigit() else (1, p) for p in parts if p != "")


def sort_by_label(values: List[FacetValue]) -> List[FacetValue]:
    return sorted(values, key=lambda v: natural_key(v.label))
