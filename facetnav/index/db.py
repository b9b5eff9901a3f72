from __future__ import annotations

import os
import sqlite3
from pathlib import Path
from typing import Dict, Union

from platformdirs import user_data_dir


APP_NAME = "FacetNav"
APP_AUTHOR = "FacetNav"
DATA_DIR = Path(user_data_dir(APP_NAME, APP_AUTHOR))
DB_PATH = Path(os.environ.get("FACETNAV_DB") or DATA_DIR / "facetnav.db")
SCHEMA_PATH = Path(__file__).with_name("schema.sql")

# The catalog index is rewritten by an external reindex job; requests only
# read it and write small cache rows, so readers must never wait on writers.
PRAGMAS: Dict[str, Union[str, int]] = {
    "journal_mode": "WAL",
    "synchronous": "NORMAL",
    "temp_store": "MEMORY",
    "mmap_size": 256 * 1024 * 1024,
    "foreign_keys": 1,
}

# facet_cache columns added after the first release, with their definitions
CACHE_COLUMNS_ADDED = {
    "schema_version": "INTEGER NOT NULL DEFAULT 0",
    "created_ns": "INTEGER NOT NULL DEFAULT 0",
}


def connect(db_path: Path | str = DB_PATH) -> sqlite3.Connection:
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    con = sqlite3.connect(str(db_path))
    con.row_factory = sqlite3.Row
    for key, value in PRAGMAS.items():
        con.execute(f"PRAGMA {key}={value}")
    return con


def initialize(db_path: Path | str = DB_PATH) -> None:
    """Create the catalog index schema, then add columns older databases miss."""
    con = connect(db_path)
    try:
        with con:
            con.executescript(SCHEMA_PATH.read_text(encoding="utf-8"))
            _add_missing_cache_columns(con)
    finally:
        con.close()


def _add_missing_cache_columns(con: sqlite3.Connection) -> None:
    present = {row["name"] for row in con.execute("PRAGMA table_info(facet_cache)")}
    for name, definition in CACHE_COLUMNS_ADDED.items():
        if name not in present:
            con.execute(f"ALTER TABLE facet_cache ADD COLUMN {name} {definition}")
