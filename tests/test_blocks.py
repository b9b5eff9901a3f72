from __future__ import annotations

import gc
import tempfile
import unittest
from pathlib import Path
from typing import List, Tuple

from catalog_fixture import HOME, LANG, SHOP, build_catalog

from facetnav.config.settings import Settings
from facetnav.filters.blocks import BlockBuilder
from facetnav.filters.selection import open_search_adapter
from facetnav.index.catalog_repo import CatalogRepo
from facetnav.index.search_adapter import SearchAdapter, ValueCount
from facetnav.models.context import Currency, RequestContext, Scope
from facetnav.models.facets_model import (
    FacetDefinition,
    PriceRange,
    RangeBlock,
    SelectionState,
    ValueListBlock,
)


def _values(block) -> List[Tuple[object, str, int, bool]]:
    return [(v.id, v.label, v.count, v.checked) for v in block.values]


class BlockBuilderTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._tmpdir = tempfile.TemporaryDirectory()
        self.db_path = build_catalog(Path(self._tmpdir.name) / "catalog.db")
        self.catalog = CatalogRepo(self.db_path)
        self.scope = Scope(shop_id=SHOP, category_id=HOME)
        self.ctx = RequestContext(language_id=LANG, currency=Currency(iso_code="USD", sign="$", precision=2))

    def tearDown(self) -> None:
        gc.collect()
        self._tmpdir.cleanup()

    def _builder(self, selection: SelectionState, ctx: RequestContext | None = None, **settings) -> BlockBuilder:
        cfg = Settings(**settings)
        adapter = open_search_adapter(self.scope, selection, cfg, self.db_path)
        return BlockBuilder(
            adapter,
            self.catalog,
            cfg,
            ctx or self.ctx,
            parent=self.catalog.parent_category(HOME),
            product_count=adapter.count(),
        )

    def _build(self, kind: str, selection: SelectionState | None = None, reference_id=None, ctx=None, **settings):
        selection = selection or SelectionState()
        definition = FacetDefinition(kind=kind, reference_id=reference_id, widget_type="checkbox", display_limit=3)
        return self._builder(selection, ctx, **settings).build(definition, selection)

    # Range facets

    def test_price_block(self) -> None:
        (block,) = self._build("price")
        self.assertIsInstance(block, RangeBlock)
        self.assertEqual((block.min, block.max), (5.0, 30.0))
        self.assertEqual(block.unit, "$")
        self.assertEqual(block.widget_type, "slider")
        self.assertEqual(block.product_count, 4)
        self.assertIsNone(block.selected_range)
        self.assertEqual(block.format_spec["currency_code"], "USD")
        self.assertEqual(block.format_spec["max_fraction_digits"], 2)

    def test_price_bounds_ignore_own_selection(self) -> None:
        selection = SelectionState(price=PriceRange(5, 9))
        (block,) = self._build("price", selection)
        (unfiltered,) = self._build("price")

        self.assertEqual((block.min, block.max), (unfiltered.min, unfiltered.max))
        self.assertEqual(block.selected_range, PriceRange(5, 9))
        self.assertEqual(block.product_count, 1)

    def test_price_bounds_keep_other_filters(self) -> None:
        (block,) = self._build("price", SelectionState(condition={"used"}))
        self.assertEqual((block.min, block.max), (20.0, 25.0))

    def test_price_hidden_from_viewer(self) -> None:
        ctx = RequestContext(language_id=LANG, show_prices=False)
        self.assertEqual(self._build("price", ctx=ctx), [])

    def test_weight_block_ignores_price_and_weight_selection(self) -> None:
        selection = SelectionState(price=PriceRange(5, 9), weight=PriceRange(0.5, 0.5))
        (block,) = self._build("weight", selection)
        self.assertEqual((block.min, block.max), (0.5, 2.0))
        self.assertEqual(block.unit, "kg")
        self.assertEqual(block.selected_range, PriceRange(0.5, 0.5))

    def test_weight_block_omitted_without_weights(self) -> None:
        # Only product 3 is left and it has no weight
        self.assertEqual(self._build("weight", SelectionState(manufacturer={1}, condition={"new"}, category={7})), [])

    # Fixed-domain facets

    def test_condition_block(self) -> None:
        (block,) = self._build("condition")
        self.assertEqual(
            _values(block),
            [("new", "New", 2, False), ("used", "Used", 1, False), ("refurbished", "Refurbished", 1, False)],
        )

    def test_condition_block_keeps_zero_buckets(self) -> None:
        (block,) = self._build("condition", SelectionState(manufacturer={1}))
        self.assertEqual(
            _values(block),
            [("new", "New", 2, False), ("used", "Used", 0, False), ("refurbished", "Refurbished", 0, False)],
        )

    def test_condition_block_ignores_own_selection(self) -> None:
        (block,) = self._build("condition", SelectionState(condition={"used"}))
        self.assertEqual(
            _values(block),
            [("new", "New", 2, False), ("used", "Used", 1, True), ("refurbished", "Refurbished", 1, False)],
        )

    def test_quantity_block_without_stock_management(self) -> None:
        (block,) = self._build("quantity", SelectionState(quantity={0, 1}), stock_management=False)
        unavailable, available = block.values
        self.assertEqual((unavailable.count, available.count), (2, 2))
        self.assertEqual(unavailable.count + available.count, 4)
        # Only the in-stock bucket reflects the selection here
        self.assertFalse(unavailable.checked)
        self.assertTrue(available.checked)

    def test_quantity_block_ignores_own_selection(self) -> None:
        (block,) = self._build("quantity", SelectionState(quantity={1}), stock_management=False)
        self.assertEqual([v.count for v in block.values], [2, 2])

    def test_quantity_block_with_stock_management(self) -> None:
        # out_of_stock states: 0 → 1 product, 1 → 1 product, 2 → 2 products
        (block,) = self._build("quantity", SelectionState(quantity={0}), order_out_of_stock=True)
        self.assertEqual(_values(block), [(0, "Not available", 1, True), (1, "In stock", 3, False)])

        # Two default-policy products outweigh the single out-of-stock one
        (block,) = self._build("quantity", order_out_of_stock=False)
        self.assertEqual([v.count for v in block.values], [0, 1])
        self.assertTrue(all(v.count >= 0 for v in block.values))

    # Reference-ordered facets

    def test_manufacturer_block(self) -> None:
        (block,) = self._build("manufacturer", SelectionState(manufacturer={2}))
        # Manufacturer 3 has no reference name, Bolt has no products
        self.assertEqual(_values(block), [(1, "Acme", 2, False), (2, "Zenith", 1, True)])
        self.assertEqual(block.display_limit, 3)

    def test_manufacturer_block_omitted_without_values(self) -> None:
        self.assertEqual(self._build("manufacturer", SelectionState(condition={"refurbished"})), [])

    def test_attribute_group_block(self) -> None:
        (block,) = self._build("attribute_group", reference_id=2)
        self.assertIsInstance(block, ValueListBlock)
        self.assertEqual((block.key, block.label, block.is_color_group), (2, "Color", True))
        self.assertEqual((block.url_slug, block.meta_title), ("color", "Colour"))
        self.assertEqual(_values(block), [(3, "Red", 1, False), (4, "Blue", 2, False)])
        self.assertEqual([v.color_swatch for v in block.values], ["#ff0000", "#0000ff"])
        self.assertEqual(block.values[0].url_slug, "red")

    def test_attribute_group_selected_ignores_own_selection(self) -> None:
        selection = SelectionState(attribute_groups={2: {4}})
        (color,) = self._build("attribute_group", selection, reference_id=2)
        self.assertEqual(_values(color), [(3, "Red", 1, False), (4, "Blue", 2, True)])

        # Another group is narrowed by the colour selection
        (size,) = self._build("attribute_group", selection, reference_id=1)
        self.assertEqual(_values(size), [(1, "S", 1, False), (2, "M", 1, False)])

    def test_attribute_checked_across_groups(self) -> None:
        # Attribute 1 listed under another group's selection still shows checked
        selection = SelectionState(attribute_groups={2: {1, 3, 4}})
        (size,) = self._build("attribute_group", selection, reference_id=1)
        self.assertEqual([v.checked for v in size.values], [True, False])

    def test_attribute_group_without_values_is_omitted(self) -> None:
        self.assertEqual(self._build("attribute_group", reference_id=99), [])

    def test_feature_blocks_sorted_by_label(self) -> None:
        (material,) = self._build("feature", reference_id=1)
        self.assertEqual((material.key, material.label, material.url_slug), (1, "Material", "material"))
        self.assertEqual(_values(material), [(1, "cotton", 2, False), (2, "Polyester", 1, False)])

        (length,) = self._build("feature", reference_id=2)
        self.assertEqual([v.label for v in length.values], ["2 cm", "10 cm"])

    def test_feature_selected_ignores_own_selection(self) -> None:
        selection = SelectionState(features={1: {2}})
        (material,) = self._build("feature", selection, reference_id=1)
        self.assertEqual(_values(material), [(1, "cotton", 2, False), (2, "Polyester", 1, True)])

        # Product 2 is the only Polyester one and has no length
        self.assertEqual(self._build("feature", selection, reference_id=2), [])

    def test_category_block_respects_depth_and_groups(self) -> None:
        (block,) = self._build("category")
        # Accessories is hidden from anonymous viewers, deeper levels are cut
        self.assertEqual(_values(block), [(3, "Clothes", 3, False)])

        customer = RequestContext(language_id=LANG, customer_group_ids=(3,), authenticated=True)
        (block,) = self._build("category", SelectionState(category={7}), ctx=customer)
        self.assertEqual(_values(block), [(3, "Clothes", 3, False), (7, "Accessories", 1, True)])

    def test_category_block_unlimited_depth_in_tree_order(self) -> None:
        (block,) = self._build("category", category_depth=0)
        self.assertEqual(
            [(v.label, v.count) for v in block.values],
            [("Clothes", 3), ("Men", 2), ("Shirts", 1), ("Women", 1), ("Bags", 1)],
        )

    def test_category_block_two_levels_deep(self) -> None:
        # Shirts sits three levels below Home and is cut at depth 2
        (block,) = self._build("category", category_depth=2)
        labels = [v.label for v in block.values]
        self.assertEqual(labels, ["Clothes", "Men", "Women", "Bags"])
        self.assertNotIn("Shirts", labels)

        (block,) = self._build("category", category_depth=2, customer_groups_enabled=False)
        self.assertEqual(
            [(v.label, v.count) for v in block.values],
            [("Clothes", 3), ("Men", 2), ("Women", 1), ("Accessories", 1), ("Bags", 1)],
        )

    def test_category_block_without_group_restriction(self) -> None:
        (block,) = self._build("category", customer_groups_enabled=False)
        self.assertEqual([v.label for v in block.values], ["Clothes", "Accessories"])

    def test_unknown_kind_is_skipped(self) -> None:
        self.assertEqual(self._build("rating"), [])


class _CountingAdapter(SearchAdapter):
    """Records view requests to check the shared adapter is left alone."""

    def __init__(self, rows=None) -> None:
        self.filters = {}
        self.rows = rows or []
        self.views = []

    def add_filter(self, dimension, values, operator="="):
        self.filters[dimension] = (tuple(values), operator)

    def reset_filter(self, dimension):
        self.filters.pop(dimension, None)

    def get_filter(self, dimension):
        return self.filters.get(dimension)

    def set_filter(self, dimension, flt):
        if flt is None:
            self.filters.pop(dimension, None)
        else:
            self.filters[dimension] = flt

    def value_count(self, dimension, select=()):
        return list(self.rows)

    def count(self):
        return 0

    def get_min_max_value(self, column):
        return (None, None)

    def get_min_max_price_value(self):
        return (None, None)

    def get_filtered_search_adapter(self, exclude=None):
        view = _CountingAdapter(self.rows)
        self.views.append((exclude, view))
        return view


class BlockBuilderAdapterUseTestCase(unittest.TestCase):
    def test_shared_adapter_is_not_modified(self) -> None:
        shared = _CountingAdapter([ValueCount("new", 7)])
        builder = BlockBuilder(shared, CatalogRepo(":memory:"), Settings(stock_management=False), RequestContext())

        (block,) = builder.build(FacetDefinition(kind="condition"), SelectionState())
        builder.build(FacetDefinition(kind="quantity"), SelectionState())

        self.assertEqual([v.count for v in block.values], [7, 0, 0])
        self.assertEqual([exclude for exclude, _ in shared.views], ["condition", "quantity"])
        self.assertEqual(shared.filters, {})


if __name__ == "__main__":
    unittest.main()
