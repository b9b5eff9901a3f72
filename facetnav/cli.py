from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Optional

import typer

from facetnav.config.settings import Settings
from facetnav.index.cache import SQLiteResultCache
from facetnav.index.db import DB_PATH, initialize
from facetnav.models.context import Currency, RequestContext, Scope
from facetnav.models.facets_model import SelectionState
from facetnav.service.facets import FacetService

app = typer.Typer(help="FacetNav CLI")


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug output.")) -> None:
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format="[%(levelname)s] %(message)s")


@app.command("init-db")
def init_db(db: Path = typer.Option(DB_PATH, help="SQLite database path.")) -> None:
    """Create the catalog, facet configuration and cache tables."""
    initialize(db)
    typer.echo(f"Initialized {db}")


@app.command()
def facets(
    category: int = typer.Option(..., help="Navigated category id."),
    shop: int = typer.Option(1, help="Shop id."),
    lang: int = typer.Option(1, help="Language id."),
    currency: str = typer.Option("EUR", help="Currency ISO code."),
    currency_sign: Optional[str] = typer.Option(None, help="Currency symbol; defaults to the ISO code for non-EUR currencies."),
    precision: int = typer.Option(2, min=0, help="Price fraction digits."),
    selection: Optional[str] = typer.Option(None, help="Active selections as JSON."),
    no_cache: bool = typer.Option(False, "--no-cache", help="Bypass the result cache."),
    db: Path = typer.Option(DB_PATH, help="SQLite database path."),
) -> None:
    """Print the facet blocks for a category as JSON."""
    try:
        state = SelectionState.from_dict(json.loads(selection)) if selection else SelectionState()
    except (ValueError, KeyError, TypeError) as e:
        raise typer.BadParameter(f"Invalid selection: {e}", param_hint="--selection")

    settings = Settings.load()
    if no_cache:
        settings.cache_enabled = False
    service = FacetService(db, settings)
    default = Currency()
    sign = currency_sign or (default.sign if currency == default.iso_code else currency)
    ctx = RequestContext(language_id=lang, currency=Currency(iso_code=currency, sign=sign, precision=precision))
    blocks = service.compute_facets(Scope(shop_id=shop, category_id=category), state, ctx)
    typer.echo(json.dumps([b.to_dict() for b in blocks], indent=2, ensure_ascii=False))


@app.command("clear-cache")
def clear_cache(db: Path = typer.Option(DB_PATH, help="SQLite database path.")) -> None:
    """Drop every cached facet block list, e.g. after a catalog reindex."""
    removed = SQLiteResultCache(db).clear()
    typer.echo(f"Removed {removed} cached entries")


if __name__ == "__main__":
    sys.exit(app())
