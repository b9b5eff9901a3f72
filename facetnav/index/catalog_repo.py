from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from facetnav.models.context import ParentCategory

from .db import DB_PATH, connect


@dataclass(frozen=True)
class Manufacturer:
    id: int
    name: str


@dataclass(frozen=True)
class AttributeGroup:
    id: int
    name: str
    is_color_group: bool


@dataclass(frozen=True)
class Attribute:
    id: int
    group_id: int
    name: str
    color: str | None


@dataclass(frozen=True)
class Feature:
    id: int
    name: str


@dataclass(frozen=True)
class FeatureValue:
    id: int
    feature_id: int
    value: str


@dataclass(frozen=True)
class CategoryName:
    id: int
    name: str


@dataclass(frozen=True)
class Slug:
    url_slug: str | None = None
    meta_title: str | None = None


class CatalogRepo:
    """Read-only access to catalog reference data (labels, ordering, slugs)."""

    def __init__(self, db_path: Path | str = DB_PATH) -> None:
        self.db_path = db_path

    def _fetch(self, sql: str, params: Sequence[object] = ()) -> List[sqlite3.Row]:
        con = connect(self.db_path)
        try:
            return con.execute(sql, list(params)).fetchall()
        finally:
            con.close()

    def manufacturers(self, language_id: int) -> List[Manufacturer]:
        # Names are not translated; language kept for symmetry with the other lookups
        rows = self._fetch("SELECT id, name FROM manufacturers WHERE active=1 ORDER BY name COLLATE NOCASE, id")
        return [Manufacturer(int(r["id"]), str(r["name"])) for r in rows]

    def attribute_groups(self, language_id: int) -> List[AttributeGroup]:
        rows = self._fetch(
            """
            SELECT ag.id, agn.name, ag.is_color_group
            FROM attribute_groups ag
            LEFT JOIN attribute_group_names agn
              ON agn.attribute_group_id = ag.id AND agn.language_id = ?
            ORDER BY ag.position ASC, ag.id ASC
            """,
            (language_id,),
        )
        return [AttributeGroup(int(r["id"]), r["name"] or "", bool(r["is_color_group"])) for r in rows]

    def attributes(self, language_id: int) -> List[Attribute]:
        """Attributes with a name in `language_id`, ordered by group label then position."""
        rows = self._fetch(
            """
            SELECT a.id, a.attribute_group_id, a.color, an.name
            FROM attributes a
            JOIN attribute_groups ag ON ag.id = a.attribute_group_id
            JOIN attribute_group_names agn
              ON agn.attribute_group_id = ag.id AND agn.language_id = ?
            JOIN attribute_names an
              ON an.attribute_id = a.id AND an.language_id = ?
            ORDER BY agn.name ASC, a.position ASC, a.id ASC
            """,
            (language_id, language_id),
        )
        return [Attribute(int(r["id"]), int(r["attribute_group_id"]), str(r["name"]), r["color"]) for r in rows]

    def features(self, language_id: int) -> List[Feature]:
        rows = self._fetch(
            """
            SELECT f.id, fn.name
            FROM features f
            JOIN feature_names fn ON fn.feature_id = f.id AND fn.language_id = ?
            ORDER BY f.position ASC, f.id ASC
            """,
            (language_id,),
        )
        return [Feature(int(r["id"]), str(r["name"])) for r in rows]

    def feature_values(self, language_id: int, feature_id: int) -> List[FeatureValue]:
        rows = self._fetch(
            """
            SELECT fv.id, fv.feature_id, fvn.value
            FROM feature_values fv
            LEFT JOIN feature_value_names fvn
              ON fvn.feature_value_id = fv.id AND fvn.language_id = ?
            WHERE fv.feature_id = ?
            ORDER BY fv.id ASC
            """,
            (language_id, feature_id),
        )
        return [FeatureValue(int(r["id"]), int(r["feature_id"]), r["value"] or "") for r in rows]

    def category_names(self, language_id: int) -> List[CategoryName]:
        """Active categories in tree order (nested-set left bound, then position)."""
        rows = self._fetch(
            """
            SELECT c.id, cn.name
            FROM categories c
            JOIN category_names cn ON cn.category_id = c.id AND cn.language_id = ?
            WHERE c.active = 1
            ORDER BY c.nleft ASC, c.position ASC
            """,
            (language_id,),
        )
        return [CategoryName(int(r["id"]), str(r["name"])) for r in rows]

    def parent_category(self, category_id: int) -> Optional[ParentCategory]:
        rows = self._fetch("SELECT id, nleft, nright, level_depth FROM categories WHERE id=?", (category_id,))
        if not rows:
            return None
        r = rows[0]
        return ParentCategory(int(r["id"]), int(r["nleft"]), int(r["nright"]), int(r["level_depth"]))

    def _slug(self, table: str, id_column: str, ref_id: int, language_id: int) -> Slug:
        rows = self._fetch(
            f"SELECT url_slug, meta_title FROM {table} WHERE {id_column}=? AND language_id=?",
            (ref_id, language_id),
        )
        if not rows:
            return Slug()
        return Slug(rows[0]["url_slug"], rows[0]["meta_title"])

    def attribute_group_slug(self, attribute_group_id: int, language_id: int) -> Slug:
        return self._slug("attribute_group_slugs", "attribute_group_id", attribute_group_id, language_id)

    def attribute_slug(self, attribute_id: int, language_id: int) -> Slug:
        return self._slug("attribute_slugs", "attribute_id", attribute_id, language_id)

    def feature_slug(self, feature_id: int, language_id: int) -> Slug:
        return self._slug("feature_slugs", "feature_id", feature_id, language_id)

    def feature_value_slug(self, feature_value_id: int, language_id: int) -> Slug:
        return self._slug("feature_value_slugs", "feature_value_id", feature_value_id, language_id)
