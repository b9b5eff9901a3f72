from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Set, Tuple

from facetnav.models.context import Scope
from facetnav.models.facets_model import FacetDefinition

from .db import DB_PATH, connect


log = logging.getLogger(__name__)


class FacetCatalog:
    """Reads the facet configuration of a navigated category."""

    def __init__(self, db_path: Path | str = DB_PATH) -> None:
        self.db_path = db_path

    def definitions(self, scope: Scope) -> List[FacetDefinition]:
        con = connect(self.db_path)
        try:
            rows = con.execute(
                """
                SELECT kind, reference_id, display_limit, widget_type, position
                FROM facet_definitions
                WHERE category_id=? AND shop_id=?
                ORDER BY position ASC, id ASC
                """,
                (scope.category_id, scope.shop_id),
            ).fetchall()
        finally:
            con.close()

        out: List[FacetDefinition] = []
        seen: Set[Tuple[str, Optional[int]]] = set()
        for r in rows:
            definition = FacetDefinition(
                kind=str(r["kind"]),
                reference_id=int(r["reference_id"]) if r["reference_id"] is not None else None,
                display_limit=int(r["display_limit"]),
                widget_type=str(r["widget_type"]),
                position=int(r["position"]),
            )
            # (kind, reference_id) is unique; the lowest position wins
            if definition.key in seen:
                log.debug(f"Skipping duplicate facet definition {definition.key}")
                continue
            seen.add(definition.key)
            out.append(definition)
        return out
