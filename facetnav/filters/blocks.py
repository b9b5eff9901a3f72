"""
One builder per facet kind. Each turns count and bound queries against the
search adapter into display-ready facet blocks:

| Kind              | Queried dimension | Own constraint ignored               | Value order             |
|-------------------|-------------------|--------------------------------------|-------------------------|
| `price`           | price bounds      | `price_min`, `price_max`, `weight`   | -                       |
| `weight`          | weight bounds     | `price_min`, `price_max`, `weight`   | -                       |
| `condition`       | `condition`       | `condition`                          | new, used, refurbished  |
| `quantity`        | `quantity` or `out_of_stock` | `quantity`                | unavailable, available  |
| `manufacturer`    | `manufacturer`    | `manufacturer`                       | manufacturer list       |
| `attribute_group` | `attribute`       | `attribute`, when the group is selected | attribute list       |
| `feature`         | `feature_value`   | `feature_value`, when the feature is selected | label, natural |
| `category`        | `category`        | `category`                           | category tree           |

Builders return a list of blocks. An empty list means the facet has
nothing to show and is left out of the sidebar.
"""
from __future__ import annotations

import logging
from functools import cached_property
from typing import Any, Callable, Dict, List

from facetnav.config.settings import Settings
from facetnav.index.catalog_repo import CatalogRepo, FeatureValue as FeatureValueRecord
from facetnav.index.search_adapter import SearchAdapter
from facetnav.models.context import Currency, ParentCategory, RequestContext
from facetnav.models.facets_model import (
    FacetBlock,
    FacetDefinition,
    FacetKind,
    FacetValue,
    RangeBlock,
    SelectionState,
    ValueListBlock,
    WidgetType,
)

from .exclusion import RANGE_DIMENSIONS, with_dimension_excluded
from .sorting import sort_by_label, sort_by_reference
from .stock import AVAILABLE, UNAVAILABLE, reconcile_stock_states, split_by_quantity
from .subtree import restrict_to_subtree, visible_group_ids


log = logging.getLogger(__name__)

CONDITIONS = (("new", "New"), ("used", "Used"), ("refurbished", "Refurbished"))

NUMBER_SYMBOLS = [".", ",", ";", "%", "-", "+", "E", "×", "‰", "∞", "NaN"]


def price_specification(currency: Currency) -> Dict[str, Any]:
    """Formatting hints for rendering prices on the client."""
    return {
        "positive_pattern": currency.format,
        "negative_pattern": currency.format,
        "symbol": list(NUMBER_SYMBOLS),
        "max_fraction_digits": currency.precision,
        "min_fraction_digits": currency.precision,
        "grouping_used": True,
        "primary_group_size": 3,
        "secondary_group_size": 3,
        "currency_code": currency.iso_code,
        "currency_symbol": currency.sign,
    }


class BlockBuilder:
    """Builds facet blocks for one request.

    Every builder works on its own view of `adapter`, so the adapter handed
    in is never modified.
    """

    def __init__(
        self,
        adapter: SearchAdapter,
        catalog: CatalogRepo,
        settings: Settings,
        ctx: RequestContext,
        parent: ParentCategory | None = None,
        product_count: int | None = None,
    ) -> None:
        self.adapter = adapter
        self.catalog = catalog
        self.settings = settings
        self.ctx = ctx
        self.parent = parent
        self.product_count = product_count
        self._builders: Dict[str, Callable[[FacetDefinition, SelectionState], List[FacetBlock]]] = {
            FacetKind.PRICE.value: self.price_block,
            FacetKind.WEIGHT.value: self.weight_block,
            FacetKind.CONDITION.value: self.condition_block,
            FacetKind.QUANTITY.value: self.quantity_block,
            FacetKind.MANUFACTURER.value: self.manufacturer_block,
            FacetKind.ATTRIBUTE_GROUP.value: self.attribute_group_blocks,
            FacetKind.FEATURE.value: self.feature_blocks,
            FacetKind.CATEGORY.value: self.category_block,
        }

    @cached_property
    def stock_management(self) -> bool:
        return bool(self.settings.stock_management)

    @cached_property
    def order_out_of_stock(self) -> bool:
        return bool(self.settings.order_out_of_stock)

    def build(self, definition: FacetDefinition, selection: SelectionState) -> List[FacetBlock]:
        builder = self._builders.get(definition.kind)
        if builder is None:
            log.debug(f"Skipping facet of unknown kind {definition.kind!r}")
            return []
        return builder(definition, selection)

    def _t(self, text: str) -> str:
        return self.ctx.translate(text)

    # Range facets

    def price_block(self, definition: FacetDefinition, selection: SelectionState) -> List[FacetBlock]:
        if not self.ctx.show_prices:
            return []
        view = self.adapter.get_filtered_search_adapter()
        lo, hi = with_dimension_excluded(view, RANGE_DIMENSIONS, lambda a: a.get_min_max_price_value())
        return [RangeBlock(
            kind=FacetKind.PRICE.value,
            key=0,
            label=self._t("Price"),
            widget_type=WidgetType.SLIDER.value,
            display_limit=definition.display_limit,
            product_count=self.product_count,
            min=lo,
            max=hi,
            unit=self.ctx.currency.sign,
            selected_range=selection.price,
            format_spec=price_specification(self.ctx.currency),
        )]

    def weight_block(self, definition: FacetDefinition, selection: SelectionState) -> List[FacetBlock]:
        view = self.adapter.get_filtered_search_adapter()
        lo, hi = with_dimension_excluded(view, RANGE_DIMENSIONS, lambda a: a.get_min_max_value("weight"))
        if not lo and not hi:
            # No weighed products in scope, nothing to slide over
            return []
        return [RangeBlock(
            kind=FacetKind.WEIGHT.value,
            key=0,
            label=self._t("Weight"),
            widget_type=WidgetType.SLIDER.value,
            display_limit=definition.display_limit,
            product_count=self.product_count,
            min=lo,
            max=hi,
            unit=self.settings.weight_unit,
            selected_range=selection.weight,
        )]

    # Fixed-domain facets

    def condition_block(self, definition: FacetDefinition, selection: SelectionState) -> List[FacetBlock]:
        values = {
            key: FacetValue(id=key, label=self._t(label), checked=key in selection.condition)
            for key, label in CONDITIONS
        }
        view = self.adapter.get_filtered_search_adapter("condition")
        for row in view.value_count("condition"):
            value = values.get(row.value)
            if value is None:
                log.debug(f"Ignoring unknown product condition {row.value!r}")
                continue
            value.count = row.count
        return [ValueListBlock(
            kind=FacetKind.CONDITION.value,
            key=0,
            label=self._t("Condition"),
            widget_type=definition.widget_type,
            display_limit=definition.display_limit,
            values=list(values.values()),
        )]

    def quantity_block(self, definition: FacetDefinition, selection: SelectionState) -> List[FacetBlock]:
        unavailable = FacetValue(id=UNAVAILABLE, label=self._t("Not available"))
        available = FacetValue(id=AVAILABLE, label=self._t("In stock"))
        view = self.adapter.get_filtered_search_adapter("quantity")

        if not self.stock_management:
            total = view.count()
            view.add_filter("quantity", [0])
            rows = view.value_count("quantity")
            zero_quantity = rows[0].count if rows else 0
            unavailable.count, available.count = split_by_quantity(total, zero_quantity)
            available.checked = AVAILABLE in selection.quantity
        else:
            view.reset_filter("quantity")
            rows = view.value_count("out_of_stock")
            unavailable.count, available.count = reconcile_stock_states(
                ((r.value, r.count) for r in rows), self.order_out_of_stock
            )
            unavailable.checked = UNAVAILABLE in selection.quantity
            available.checked = AVAILABLE in selection.quantity

        return [ValueListBlock(
            kind=FacetKind.QUANTITY.value,
            key=0,
            label=self._t("Availability"),
            widget_type=definition.widget_type,
            display_limit=definition.display_limit,
            values=[unavailable, available],
        )]

    # Reference-ordered facets

    def manufacturer_block(self, definition: FacetDefinition, selection: SelectionState) -> List[FacetBlock]:
        manufacturers = {m.id: m for m in self.catalog.manufacturers(self.ctx.language_id)}
        if not manufacturers:
            return []

        view = self.adapter.get_filtered_search_adapter("manufacturer")
        found: Dict[int, FacetValue] = {}
        for row in view.value_count("manufacturer"):
            if row.value is None:
                continue
            manufacturer = manufacturers.get(int(row.value))
            if manufacturer is None or not manufacturer.name:
                log.debug(f"No reference data for manufacturer {row.value}")
                continue
            found[manufacturer.id] = FacetValue(
                id=manufacturer.id,
                label=manufacturer.name,
                count=row.count,
                checked=manufacturer.id in selection.manufacturer,
            )

        ordered = sort_by_reference(manufacturers, found)
        if not ordered:
            return []
        return [ValueListBlock(
            kind=FacetKind.MANUFACTURER.value,
            key=0,
            label=self._t("Brand"),
            widget_type=definition.widget_type,
            display_limit=definition.display_limit,
            values=list(ordered.values()),
        )]

    def attribute_group_blocks(self, definition: FacetDefinition, selection: SelectionState) -> List[FacetBlock]:
        group_id = definition.reference_id
        if group_id is None:
            return []
        lang = self.ctx.language_id

        # Selections in other groups still narrow this one
        if selection.has_attribute_group(group_id):
            view = self.adapter.get_filtered_search_adapter("attribute")
        else:
            view = self.adapter.get_filtered_search_adapter()

        groups = {g.id: g for g in self.catalog.attribute_groups(lang)}
        if not groups:
            return []
        attributes = {a.id: a for a in self.catalog.attributes(lang)}

        view.add_filter("attribute_group", [group_id])
        blocks: Dict[int, ValueListBlock] = {}
        values: Dict[int, Dict[int, FacetValue]] = {}
        for row in view.value_count("attribute"):
            attribute = attributes.get(row.value)
            if attribute is None:
                log.debug(f"No reference data for attribute {row.value}")
                continue
            gid = attribute.group_id
            if gid not in blocks:
                group = groups.get(gid)
                if group is None:
                    log.debug(f"No reference data for attribute group {gid}")
                    continue
                slug = self.catalog.attribute_group_slug(gid, lang)
                blocks[gid] = ValueListBlock(
                    kind=FacetKind.ATTRIBUTE_GROUP.value,
                    key=gid,
                    label=group.name,
                    widget_type=definition.widget_type,
                    display_limit=definition.display_limit,
                    is_color_group=group.is_color_group,
                    url_slug=slug.url_slug,
                    meta_title=slug.meta_title,
                )
                values[gid] = {}

            slug = self.catalog.attribute_slug(attribute.id, lang)
            values[gid][attribute.id] = FacetValue(
                id=attribute.id,
                label=attribute.name,
                count=row.count,
                # any group's selection counts, not only this group's
                checked=any(attribute.id in ids for ids in selection.attribute_groups.values()),
                url_slug=slug.url_slug,
                meta_title=slug.meta_title,
                color_swatch=attribute.color,
            )

        for gid, block in blocks.items():
            block.values = list(sort_by_reference(attributes, values[gid]).values())
        ordered = sort_by_reference(groups, blocks)
        return [block for block in ordered.values() if block.values]

    def feature_blocks(self, definition: FacetDefinition, selection: SelectionState) -> List[FacetBlock]:
        feature_id = definition.reference_id
        if feature_id is None:
            return []
        lang = self.ctx.language_id

        if selection.has_feature(feature_id):
            view = self.adapter.get_filtered_search_adapter("feature_value")
        else:
            view = self.adapter.get_filtered_search_adapter()

        features = {f.id: f for f in self.catalog.features(lang)}

        view.add_filter("feature", [feature_id])
        blocks: Dict[int, ValueListBlock] = {}
        feature_values: Dict[int, Dict[int, FeatureValueRecord]] = {}
        for row in view.value_count("feature_value", select=("feature",)):
            fid = row.extra.get("feature")
            feature = features.get(fid)
            if feature is None:
                log.debug(f"No reference data for feature {fid}")
                continue
            if fid not in blocks:
                feature_values[fid] = {v.id: v for v in self.catalog.feature_values(lang, fid)}
                slug = self.catalog.feature_slug(fid, lang)
                blocks[fid] = ValueListBlock(
                    kind=FacetKind.FEATURE.value,
                    key=fid,
                    label=feature.name,
                    widget_type=definition.widget_type,
                    display_limit=definition.display_limit,
                    url_slug=slug.url_slug,
                    meta_title=slug.meta_title,
                )

            record = feature_values[fid].get(row.value)
            if record is None or not record.value:
                continue
            slug = self.catalog.feature_value_slug(record.id, lang)
            blocks[fid].values.append(FacetValue(
                id=record.id,
                label=record.value,
                count=row.count,
                checked=any(record.id in ids for ids in selection.features.values()),
                url_slug=slug.url_slug,
                meta_title=slug.meta_title,
            ))

        out: List[FacetBlock] = []
        for block in blocks.values():
            if not block.values:
                continue
            block.values = sort_by_label(block.values)
            out.append(block)
        return out

    def category_block(self, definition: FacetDefinition, selection: SelectionState) -> List[FacetBlock]:
        if self.parent is None:
            log.debug("No navigated category, skipping category facet")
            return []
        lang = self.ctx.language_id

        view = self.adapter.get_filtered_search_adapter("category")
        restrict_to_subtree(
            view,
            self.parent,
            self.settings.category_depth,
            visible_group_ids(self.ctx, self.settings),
        )

        categories = {c.id: c for c in self.catalog.category_names(lang)}
        found: Dict[int, FacetValue] = {}
        for row in view.value_count("category"):
            category = categories.get(row.value)
            if category is None:
                log.debug(f"No reference data for category {row.value}")
                continue
            found[category.id] = FacetValue(
                id=category.id,
                label=category.name,
                count=row.count,
                checked=category.id in selection.category,
            )

        ordered = sort_by_reference(categories, found)
        if not ordered:
            return []
        return [ValueListBlock(
            kind=FacetKind.CATEGORY.value,
            key=0,
            label=self._t("Categories"),
            widget_type=definition.widget_type,
            display_limit=definition.display_limit,
            values=list(ordered.values()),
        )]
