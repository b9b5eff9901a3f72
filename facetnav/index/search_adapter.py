from __future__ import annotations

import logging
import sqlite3
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

from .db import DB_PATH, connect


log = logging.getLogger(__name__)


OPERATORS = ("=", "<", ">", "<=", ">=", "between", "available")

# dimension → column of the products table
PRODUCT_COLUMNS: Dict[str, str] = {
    "product": "id",
    "shop": "shop_id",
    "manufacturer": "manufacturer_id",
    "condition": "condition",
    "quantity": "quantity",
    "out_of_stock": "out_of_stock",
    "weight": "weight",
    "price_min": "price_min",
    "price_max": "price_max",
}

# dimension → (joined index view, column)
JOINED_COLUMNS: Dict[str, Tuple[str, str]] = {
    "attribute": ("attribute_index", "attribute_id"),
    "attribute_group": ("attribute_index", "attribute_group_id"),
    "feature": ("feature_index", "feature_id"),
    "feature_value": ("feature_index", "feature_value_id"),
    "category": ("category_index", "category_id"),
    "nleft": ("category_index", "nleft"),
    "nright": ("category_index", "nright"),
    "level_depth": ("category_index", "level_depth"),
    "customer_group": ("category_index", "group_id"),
}


class AdapterError(Exception):
    """Raised for filters or aggregations the adapter cannot express."""


def _freeze(value: Any) -> Any:
    if isinstance(value, (set, frozenset)):
        return tuple(sorted(value))
    if isinstance(value, (list, tuple)):
        return tuple(value)
    return value


@dataclass(frozen=True)
class Filter:
    """A constraint on one dimension.

    `values` holding tuples instead of scalars is a grouped filter: each
    tuple is an IN test and the groups are AND-ed together (one group per
    selected attribute group or feature).
    """
    values: Tuple[Any, ...]
    operator: str = "="

    @property
    def grouped(self) -> bool:
        return bool(self.values) and all(isinstance(v, tuple) for v in self.values)


class FilterOverlay:
    """Immutable mapping of dimension → Filter."""

    def __init__(self, filters: Mapping[str, Filter] | None = None) -> None:
        self._filters: Dict[str, Filter] = dict(filters or {})

    def get(self, dimension: str) -> Filter | None:
        return self._filters.get(dimension)

    def with_filter(self, dimension: str, flt: Filter | None) -> "FilterOverlay":
        filters = dict(self._filters)
        if flt is None:
            filters.pop(dimension, None)
        else:
            filters[dimension] = flt
        return FilterOverlay(filters)

    def without(self, *dimensions: str) -> "FilterOverlay":
        return FilterOverlay({k: v for k, v in self._filters.items() if k not in dimensions})

    def items(self) -> Iterator[Tuple[str, Filter]]:
        return iter(self._filters.items())

    def __contains__(self, dimension: object) -> bool:
        return dimension in self._filters

    def __len__(self) -> int:
        return len(self._filters)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, FilterOverlay) and self._filters == other._filters

    def __repr__(self) -> str:
        return f"FilterOverlay({self._filters!r})"


@dataclass(frozen=True)
class ValueCount:
    value: Any
    count: int
    extra: Dict[str, Any] = field(default_factory=dict)


class SearchAdapter(ABC):
    """Filtered count and bound queries over the catalog index."""

    @abstractmethod
    def add_filter(self, dimension: str, values: Sequence[Any], operator: str = "=") -> None:
        pass

    @abstractmethod
    def reset_filter(self, dimension: str) -> None:
        pass

    @abstractmethod
    def get_filter(self, dimension: str) -> Filter | None:
        pass

    @abstractmethod
    def set_filter(self, dimension: str, flt: Filter | None) -> None:
        pass

    @abstractmethod
    def value_count(self, dimension: str, select: Sequence[str] = ()) -> List[ValueCount]:
        pass

    @abstractmethod
    def count(self) -> int:
        pass

    @abstractmethod
    def get_min_max_value(self, column: str) -> Tuple[Any, Any]:
        pass

    @abstractmethod
    def get_min_max_price_value(self) -> Tuple[Any, Any]:
        pass

    @abstractmethod
    def get_filtered_search_adapter(self, exclude: str | Iterable[str] | None = None) -> "SearchAdapter":
        pass


def _exclusions(exclude: str | Iterable[str] | None) -> Tuple[str, ...]:
    if exclude is None:
        return ()
    if isinstance(exclude, str):
        return (exclude,)
    return tuple(exclude)


class SQLiteSearchAdapter(SearchAdapter):
    """Search adapter over the SQLite catalog index.

    `base` holds the request scope (shop, navigated category) and always
    constrains whole products. `overlay` holds the active selection; a
    plain overlay filter on a joined dimension constrains the joined row
    itself when that same index is being aggregated, so adding
    `attribute_group = [g]` before counting `attribute` only counts the
    attributes of group `g`.
    """

    def __init__(
        self,
        db_path: Path | str = DB_PATH,
        base: FilterOverlay | None = None,
        overlay: FilterOverlay | None = None,
        *,
        order_out_of_stock: bool = False,
    ) -> None:
        self.db_path = db_path
        self.base = base or FilterOverlay()
        self.overlay = overlay or FilterOverlay()
        self.order_out_of_stock = order_out_of_stock

    # Filter state

    def add_filter(self, dimension: str, values: Sequence[Any], operator: str = "=") -> None:
        self._check_dimension(dimension)
        if operator not in OPERATORS:
            raise AdapterError(f"Unsupported operator {operator!r}")
        self.overlay = self.overlay.with_filter(dimension, Filter(tuple(_freeze(v) for v in values), operator))

    def reset_filter(self, dimension: str) -> None:
        self.overlay = self.overlay.without(dimension)

    def get_filter(self, dimension: str) -> Filter | None:
        return self.overlay.get(dimension)

    def set_filter(self, dimension: str, flt: Filter | None) -> None:
        self.overlay = self.overlay.with_filter(dimension, flt)

    def get_filtered_search_adapter(self, exclude: str | Iterable[str] | None = None) -> "SQLiteSearchAdapter":
        return SQLiteSearchAdapter(
            self.db_path,
            self.base,
            self.overlay.without(*_exclusions(exclude)),
            order_out_of_stock=self.order_out_of_stock,
        )

    # Queries

    def value_count(self, dimension: str, select: Sequence[str] = ()) -> List[ValueCount]:
        if dimension in PRODUCT_COLUMNS:
            source = None
            column = f"p.{PRODUCT_COLUMNS[dimension]}"
            from_sql = "products p"
            extra_cols = [(name, f"p.{self._product_column(name)}") for name in select]
        elif dimension in JOINED_COLUMNS:
            source, col = JOINED_COLUMNS[dimension]
            column = f"s.{col}"
            from_sql = f"products p JOIN {source} s ON s.product_id = p.id"
            extra_cols = [(name, self._joined_or_product_column(name, source)) for name in select]
        else:
            raise AdapterError(f"Unknown dimension {dimension!r}")

        where_sql, params = self._where(source)
        group_sql = ", ".join([column] + [expr for _, expr in extra_cols])
        select_sql = ", ".join(
            [f"{column} AS value"] + [f"{expr} AS extra_{i}" for i, (_, expr) in enumerate(extra_cols)]
        )
        sql = (
            f"SELECT {select_sql}, COUNT(DISTINCT p.id) AS c FROM {from_sql} "
            f"WHERE {where_sql} GROUP BY {group_sql} ORDER BY {column}"
        )
        out: List[ValueCount] = []
        for r in self._query(sql, params):
            extra = {name: r[f"extra_{i}"] for i, (name, _) in enumerate(extra_cols)}
            out.append(ValueCount(value=r["value"], count=int(r["c"]), extra=extra))
        return out

    def count(self) -> int:
        where_sql, params = self._where(None)
        rows = self._query(f"SELECT COUNT(*) AS c FROM products p WHERE {where_sql}", params)
        return int(rows[0]["c"]) if rows else 0

    def get_min_max_value(self, column: str) -> Tuple[Any, Any]:
        col = self._product_column(column)
        where_sql, params = self._where(None)
        rows = self._query(f"SELECT MIN(p.{col}) AS lo, MAX(p.{col}) AS hi FROM products p WHERE {where_sql}", params)
        return (rows[0]["lo"], rows[0]["hi"]) if rows else (None, None)

    def get_min_max_price_value(self) -> Tuple[Any, Any]:
        where_sql, params = self._where(None)
        rows = self._query(
            f"SELECT MIN(p.price_min) AS lo, MAX(p.price_max) AS hi FROM products p WHERE {where_sql}",
            params,
        )
        return (rows[0]["lo"], rows[0]["hi"]) if rows else (None, None)

    # SQL building

    def _query(self, sql: str, params: Sequence[object]) -> List[sqlite3.Row]:
        log.debug("%s %s", sql, list(params))
        con = connect(self.db_path)
        try:
            con.execute("PRAGMA query_only=1")
            return con.execute(sql, list(params)).fetchall()
        finally:
            con.close()

    def _check_dimension(self, dimension: str) -> None:
        if dimension not in PRODUCT_COLUMNS and dimension not in JOINED_COLUMNS:
            raise AdapterError(f"Unknown dimension {dimension!r}")

    def _product_column(self, dimension: str) -> str:
        try:
            return PRODUCT_COLUMNS[dimension]
        except KeyError:
            raise AdapterError(f"{dimension!r} is not a product column") from None

    def _joined_or_product_column(self, dimension: str, source: str) -> str:
        if dimension in PRODUCT_COLUMNS:
            return f"p.{PRODUCT_COLUMNS[dimension]}"
        view, col = JOINED_COLUMNS.get(dimension, (None, None))
        if view != source:
            raise AdapterError(f"Cannot select {dimension!r} while aggregating {source}")
        return f"s.{col}"

    def _where(self, source: Optional[str]) -> Tuple[str, List[object]]:
        where: List[str] = []
        params: List[object] = []
        for dimension, flt in self.base.items():
            sql, p = self._condition(dimension, flt, None)
            where.append(sql)
            params.extend(p)
        for dimension, flt in self.overlay.items():
            sql, p = self._condition(dimension, flt, source)
            where.append(sql)
            params.extend(p)
        return (" AND ".join(where) if where else "1"), params

    def _condition(self, dimension: str, flt: Filter, source: Optional[str]) -> Tuple[str, List[object]]:
        if dimension in PRODUCT_COLUMNS:
            return self._predicate(f"p.{PRODUCT_COLUMNS[dimension]}", flt.values, flt.operator)
        if dimension not in JOINED_COLUMNS:
            raise AdapterError(f"Unknown dimension {dimension!r}")
        if flt.operator == "available":
            raise AdapterError(f"Operator 'available' only applies to product columns, not {dimension!r}")

        view, col = JOINED_COLUMNS[dimension]
        if flt.grouped:
            # Each group must be matched by some row of the product
            parts: List[str] = []
            params: List[object] = []
            for group in flt.values:
                sql, p = self._predicate(col, group, flt.operator)
                parts.append(f"p.id IN (SELECT product_id FROM {view} WHERE {sql})")
                params.extend(p)
            return "(" + " AND ".join(parts) + ")", params
        if view == source:
            return self._predicate(f"s.{col}", flt.values, flt.operator)
        sql, params = self._predicate(col, flt.values, flt.operator)
        return f"p.id IN (SELECT product_id FROM {view} WHERE {sql})", params

    def _predicate(self, column: str, values: Sequence[Any], operator: str) -> Tuple[str, List[object]]:
        if operator == "=":
            placeholders = ",".join(["?"] * len(values))
            return f"{column} IN ({placeholders})", list(values)
        if operator in ("<", ">", "<=", ">="):
            if not values:
                raise AdapterError(f"Operator {operator!r} needs a value")
            return f"{column} {operator} ?", [values[0]]
        if operator == "between":
            if len(values) != 2:
                raise AdapterError("Operator 'between' needs exactly two values")
            return f"{column} BETWEEN ? AND ?", [values[0], values[1]]
        if operator == "available":
            # 1 when orderable: in stock, always orderable, or following an enabled backorder policy
            alias = column.split(".", 1)[0]
            expr = (
                f"(CASE WHEN {alias}.quantity > 0 OR {alias}.out_of_stock = 1 "
                f"OR ({alias}.out_of_stock = 2 AND ?) THEN 1 ELSE 0 END)"
            )
            placeholders = ",".join(["?"] * len(values))
            return f"{expr} IN ({placeholders})", [int(self.order_out_of_stock), *values]
        raise AdapterError(f"Unsupported operator {operator!r}")
