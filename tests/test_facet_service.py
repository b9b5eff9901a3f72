from __future__ import annotations

import gc
import tempfile
import unittest
from pathlib import Path

from catalog_fixture import HOME, LANG, SHOP, build_catalog

from facetnav.config.settings import Settings
from facetnav.index.cache import MemoryResultCache, SQLiteResultCache
from facetnav.index.facet_catalog import FacetCatalog
from facetnav.models.context import RequestContext, Scope
from facetnav.models.facets_model import PriceRange, SelectionState
from facetnav.service.facets import FacetService


class FacetCatalogTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._tmpdir = tempfile.TemporaryDirectory()
        self.db_path = build_catalog(Path(self._tmpdir.name) / "catalog.db")

    def tearDown(self) -> None:
        gc.collect()
        self._tmpdir.cleanup()

    def test_definitions_in_position_order_without_duplicates(self) -> None:
        definitions = FacetCatalog(self.db_path).definitions(Scope(shop_id=SHOP, category_id=HOME))
        self.assertEqual(
            [d.key for d in definitions],
            [
                ("price", None),
                ("weight", None),
                ("condition", None),
                ("quantity", None),
                ("manufacturer", None),
                ("attribute_group", 1),
                ("attribute_group", 2),
                ("feature", 1),
                ("feature", 2),
                ("category", None),
                ("rating", None),
            ],
        )
        self.assertEqual(definitions[0].position, 0)
        self.assertEqual(definitions[3].widget_type, "radio")

    def test_other_scope_has_no_definitions(self) -> None:
        self.assertEqual(FacetCatalog(self.db_path).definitions(Scope(shop_id=2, category_id=HOME)), [])


class FacetServiceTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._tmpdir = tempfile.TemporaryDirectory()
        self.db_path = build_catalog(Path(self._tmpdir.name) / "catalog.db")
        self.scope = Scope(shop_id=SHOP, category_id=HOME)
        self.ctx = RequestContext(language_id=LANG)

    def tearDown(self) -> None:
        gc.collect()
        self._tmpdir.cleanup()

    def _service(self, cache=None, **settings):
        return FacetService(self.db_path, Settings(**settings), cache=cache or MemoryResultCache())

    def test_blocks_follow_configured_order(self) -> None:
        blocks = self._service().compute_facets(self.scope, SelectionState(), self.ctx)

        self.assertEqual(
            [(b.kind, b.key) for b in blocks],
            [
                ("price", 0),
                ("weight", 0),
                ("condition", 0),
                ("quantity", 0),
                ("manufacturer", 0),
                ("attribute_group", 1),
                ("attribute_group", 2),
                ("feature", 1),
                ("feature", 2),
                ("category", 0),
            ],
        )
        self.assertEqual([b.product_count for b in blocks if b.variant == "range"], [4, 4])

    def test_selection_narrows_product_count(self) -> None:
        blocks = self._service().compute_facets(self.scope, SelectionState(condition={"new"}), self.ctx)
        self.assertEqual([b.product_count for b in blocks if b.variant == "range"], [2, 2])

    def test_empty_facets_are_left_out(self) -> None:
        # Product 4 only: no attribute of group 2, no feature 1, no brand reference
        selection = SelectionState(price=PriceRange(5, 9))
        blocks = self._service().compute_facets(self.scope, selection, self.ctx)
        self.assertEqual(
            [(b.kind, b.key) for b in blocks],
            [
                ("price", 0),
                ("weight", 0),
                ("condition", 0),
                ("quantity", 0),
                ("attribute_group", 1),
                ("feature", 2),
                ("category", 0),
            ],
        )

    def test_second_request_served_from_cache(self) -> None:
        cache = MemoryResultCache()
        service = self._service(cache)
        first = service.compute_facets(self.scope, SelectionState(), self.ctx)

        key = service.cache_key(self.scope, SelectionState(), self.ctx)
        self.assertEqual(cache.get(key), first)

        # A different service instance reading the same cache does not query the catalog
        other = self._service(cache)
        other.facet_catalog = None
        self.assertEqual(other.compute_facets(self.scope, SelectionState(), self.ctx), first)

    def test_stale_cache_entry_is_recomputed(self) -> None:
        cache = MemoryResultCache()
        service = self._service(cache)
        key = service.cache_key(self.scope, SelectionState(), self.ctx)
        cache._write(key, '{"schema_version": 0, "blocks": []}')

        blocks = service.compute_facets(self.scope, SelectionState(), self.ctx)

        self.assertEqual(len(blocks), 10)
        self.assertEqual(cache.get(key), blocks)

    def test_viewers_do_not_share_cache_entries(self) -> None:
        cache = MemoryResultCache()
        service = self._service(cache)
        service.compute_facets(self.scope, SelectionState(), self.ctx)

        hidden = RequestContext(language_id=LANG, show_prices=False)
        blocks = service.compute_facets(self.scope, SelectionState(), hidden)
        self.assertNotIn("price", [b.kind for b in blocks])

    def test_settings_change_is_not_served_stale(self) -> None:
        cache = MemoryResultCache()
        before = self._service(cache, order_out_of_stock=False).compute_facets(self.scope, SelectionState(), self.ctx)
        after = self._service(cache, order_out_of_stock=True).compute_facets(self.scope, SelectionState(), self.ctx)

        def quantity(blocks):
            (block,) = [b for b in blocks if b.kind == "quantity"]
            return [v.count for v in block.values]

        self.assertEqual(quantity(before), [0, 1])
        self.assertEqual(quantity(after), [1, 3])

    def test_cache_key_follows_output_settings(self) -> None:
        key = self._service().cache_key(self.scope, SelectionState(), self.ctx)
        self.assertEqual(self._service(cache_enabled=False).cache_key(self.scope, SelectionState(), self.ctx), key)
        self.assertNotEqual(self._service(category_depth=2).cache_key(self.scope, SelectionState(), self.ctx), key)
        self.assertNotEqual(self._service(weight_unit="lb").cache_key(self.scope, SelectionState(), self.ctx), key)

    def test_cache_disabled(self) -> None:
        cache = MemoryResultCache()
        self._service(cache, cache_enabled=False).compute_facets(self.scope, SelectionState(), self.ctx)
        self.assertEqual(cache.clear(), 0)

    def test_sqlite_cache_round_trip(self) -> None:
        cache = SQLiteResultCache(self.db_path)
        first = self._service(cache).compute_facets(self.scope, SelectionState(), self.ctx)
        again = self._service(cache).compute_facets(self.scope, SelectionState(), self.ctx)
        self.assertEqual(again, first)
        self.assertEqual(cache.clear(), 1)


if __name__ == "__main__":
    unittest.main()
