from __future__ import annotations

import logging
from dataclasses import asdict
from pathlib import Path
from typing import List, Tuple

from facetnav.config.settings import Settings
from facetnav.filters.blocks import BlockBuilder
from facetnav.filters.selection import open_search_adapter
from facetnav.filters.subtree import visible_group_ids
from facetnav.index.cache import ResultCache, SQLiteResultCache, fingerprint, safe_get, safe_put
from facetnav.index.catalog_repo import CatalogRepo
from facetnav.index.db import DB_PATH
from facetnav.index.facet_catalog import FacetCatalog
from facetnav.index.search_adapter import SearchAdapter
from facetnav.models.context import RequestContext, Scope
from facetnav.models.facets_model import FacetBlock, SelectionState


log = logging.getLogger(__name__)


class FacetService:
    def __init__(
        self,
        db_path: Path | str = DB_PATH,
        settings: Settings | None = None,
        *,
        catalog: CatalogRepo | None = None,
        facet_catalog: FacetCatalog | None = None,
        cache: ResultCache | None = None,
    ) -> None:
        self.db_path = db_path
        self.settings = settings or Settings.load()
        self.catalog = catalog or CatalogRepo(db_path)
        self.facet_catalog = facet_catalog or FacetCatalog(db_path)
        self.cache = cache if cache is not None else SQLiteResultCache(db_path)

    def cache_key(self, scope: Scope, selection: SelectionState, ctx: RequestContext) -> str:
        # Everything besides scope and selection that changes the blocks
        viewer: Tuple[object, ...] = (
            ctx.show_prices,
            visible_group_ids(ctx, self.settings),
            ctx.currency.sign,
            ctx.currency.precision,
            sorted((k, v) for k, v in asdict(self.settings).items() if k != "cache_enabled"),
        )
        return fingerprint(scope, ctx.language_id, ctx.currency.iso_code, selection, viewer)

    def compute_facets(
        self,
        scope: Scope,
        selection: SelectionState,
        ctx: RequestContext,
        adapter: SearchAdapter | None = None,
    ) -> List[FacetBlock]:
        """Facet blocks for the sidebar of `scope`, in configured order."""
        key = self.cache_key(scope, selection, ctx)
        if self.settings.cache_enabled:
            cached = safe_get(self.cache, key)
            if cached is not None:
                log.debug(f"Facet cache hit {key}")
                return cached

        if adapter is None:
            adapter = open_search_adapter(scope, selection, self.settings, self.db_path)
        definitions = self.facet_catalog.definitions(scope)
        builder = BlockBuilder(
            adapter,
            self.catalog,
            self.settings,
            ctx,
            parent=self.catalog.parent_category(scope.category_id),
            product_count=adapter.count(),
        )

        blocks: List[FacetBlock] = []
        for definition in definitions:
            blocks.extend(builder.build(definition, selection))
        log.info(f"Computed {len(blocks)} facet blocks for category {scope.category_id} (shop {scope.shop_id})")

        if self.settings.cache_enabled:
            safe_put(self.cache, key, blocks)
        return blocks
