from __future__ import annotations

import hashlib
import json
import logging
import sqlite3
import time
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from facetnav.models.context import Scope
from facetnav.models.facets_model import FacetBlock, SelectionState, block_from_dict

from .db import DB_PATH, connect


log = logging.getLogger(__name__)

SCHEMA_VERSION = 1


class CacheFormatError(Exception):
    """Raised when a cached blob was written in another format or is corrupt."""


def fingerprint(
    scope: Scope,
    language_id: int,
    currency_code: str,
    selection: SelectionState,
    viewer: Sequence[object] = (),
) -> str:
    # viewer: visitor traits that change the output (price display, customer groups)
    payload = {
        "viewer": list(viewer),
        "shop": scope.shop_id,
        "category": scope.category_id,
        "language": language_id,
        "currency": currency_code,
        "selection": selection.to_dict(),
    }
    raw = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.md5(raw.encode("utf-8")).hexdigest()


def encode_blocks(blocks: Sequence[FacetBlock]) -> str:
    return json.dumps({"schema_version": SCHEMA_VERSION, "blocks": [b.to_dict() for b in blocks]})


def decode_blocks(blob: str) -> List[FacetBlock]:
    try:
        doc = json.loads(blob)
    except ValueError as e:
        raise CacheFormatError(f"Cached blob is not JSON: {e}") from e
    if not isinstance(doc, dict) or doc.get("schema_version") != SCHEMA_VERSION:
        found = doc.get("schema_version") if isinstance(doc, dict) else None
        raise CacheFormatError(f"Cached blob has schema version {found!r}, expected {SCHEMA_VERSION}")
    try:
        return [block_from_dict(b) for b in doc.get("blocks", [])]
    except (KeyError, TypeError, ValueError) as e:
        raise CacheFormatError(f"Cached block is malformed: {e}") from e


class ResultCache:
    """Fingerprint → facet block list. Misses and unreadable entries return None."""

    def get(self, key: str) -> Optional[List[FacetBlock]]:
        blob = self._read(key)
        if blob is None:
            return None
        try:
            return decode_blocks(blob)
        except CacheFormatError as e:
            log.warning(f"Discarding cached facets {key}: {e}")
            return None

    def put(self, key: str, blocks: Sequence[FacetBlock]) -> None:
        self._write(key, encode_blocks(blocks))

    def _read(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def _write(self, key: str, blob: str) -> None:
        raise NotImplementedError

    def clear(self) -> int:
        raise NotImplementedError


class MemoryResultCache(ResultCache):
    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    def _read(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def _write(self, key: str, blob: str) -> None:
        self._data[key] = blob

    def clear(self) -> int:
        n = len(self._data)
        self._data.clear()
        return n


class SQLiteResultCache(ResultCache):
    def __init__(self, db_path: Path | str = DB_PATH) -> None:
        self.db_path = db_path

    def _read(self, key: str) -> Optional[str]:
        con = connect(self.db_path)
        try:
            row = con.execute("SELECT blob FROM facet_cache WHERE fingerprint=?", (key,)).fetchone()
        finally:
            con.close()
        return str(row[0]) if row else None

    def _write(self, key: str, blob: str) -> None:
        # Identical requests racing here write identical blobs; last write wins
        con = connect(self.db_path)
        try:
            with con:
                con.execute(
                    "INSERT OR REPLACE INTO facet_cache(fingerprint, blob, schema_version, created_ns) VALUES(?, ?, ?, ?)",
                    (key, blob, SCHEMA_VERSION, time.time_ns()),
                )
        finally:
            con.close()

    def clear(self) -> int:
        con = connect(self.db_path)
        try:
            with con:
                cur = con.execute("DELETE FROM facet_cache")
                return int(cur.rowcount)
        finally:
            con.close()


def safe_get(cache: ResultCache, key: str) -> Optional[List[FacetBlock]]:
    try:
        return cache.get(key)
    except sqlite3.Error as e:
        log.warning(f"Facet cache read failed for {key}: {e}")
        return None


def safe_put(cache: ResultCache, key: str, blocks: Sequence[FacetBlock]) -> None:
    try:
        cache.put(key, blocks)
    except (sqlite3.Error, OSError) as e:
        log.warning(f"Facet cache write failed for {key}: {e}")
