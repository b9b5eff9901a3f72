from __future__ import annotations

from pathlib import Path
from typing import Dict, Set, Tuple

from facetnav.config.settings import Settings
from facetnav.index.db import DB_PATH
from facetnav.index.search_adapter import Filter, FilterOverlay, SQLiteSearchAdapter
from facetnav.models.context import Scope
from facetnav.models.facets_model import SelectionState


def _grouped(selected: Dict[int, Set[int]]) -> Tuple[Tuple[int, ...], ...]:
    return tuple(tuple(sorted(ids)) for _, ids in sorted(selected.items()) if ids)


def selection_overlay(selection: SelectionState, settings: Settings) -> FilterOverlay:
    """Translate the active selections into search adapter filters."""
    overlay = FilterOverlay()
    if selection.is_empty():
        return overlay
    if selection.price:
        # Products whose price range overlaps the selected range
        overlay = overlay.with_filter("price_min", Filter((selection.price.max,), "<="))
        overlay = overlay.with_filter("price_max", Filter((selection.price.min,), ">="))
    if selection.weight:
        overlay = overlay.with_filter("weight", Filter((selection.weight.min, selection.weight.max), "between"))
    if selection.condition:
        overlay = overlay.with_filter("condition", Filter(tuple(sorted(selection.condition))))
    if len(selection.quantity) == 1:
        # Both buckets selected is the same as no availability filter
        bucket = next(iter(selection.quantity))
        if settings.stock_management:
            overlay = overlay.with_filter("quantity", Filter((bucket,), "available"))
        elif bucket == 0:
            overlay = overlay.with_filter("quantity", Filter((0,), "="))
        else:
            overlay = overlay.with_filter("quantity", Filter((0,), ">"))
    if selection.manufacturer:
        overlay = overlay.with_filter("manufacturer", Filter(tuple(sorted(selection.manufacturer))))
    if selection.category:
        overlay = overlay.with_filter("category", Filter(tuple(sorted(selection.category))))
    attribute_groups = _grouped(selection.attribute_groups)
    if attribute_groups:
        overlay = overlay.with_filter("attribute", Filter(attribute_groups))
    features = _grouped(selection.features)
    if features:
        overlay = overlay.with_filter("feature_value", Filter(features))
    return overlay


def scope_overlay(scope: Scope) -> FilterOverlay:
    return FilterOverlay({
        "shop": Filter((scope.shop_id,)),
        "category": Filter((scope.category_id,)),
    })


def open_search_adapter(
    scope: Scope,
    selection: SelectionState,
    settings: Settings,
    db_path: Path | str = DB_PATH,
) -> SQLiteSearchAdapter:
    return SQLiteSearchAdapter(
        db_path,
        base=scope_overlay(scope),
        overlay=selection_overlay(selection, settings),
        order_out_of_stock=settings.order_out_of_stock,
    )
