from __future__ import annotations

import json
import logging
from dataclasses import dataclass, asdict, fields
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict

try:
    import tomllib  # type: ignore[attr-defined]
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # type: ignore[import]

from facetnav.index.db import DATA_DIR


log = logging.getLogger(__name__)

SETTINGS_PATH = DATA_DIR / "settings.json"
DEFAULTS_PATH = Path(__file__).with_name("defaults.toml")


@lru_cache(maxsize=None)
def _load_defaults(path: Path = DEFAULTS_PATH) -> Dict[str, Any]:
    """Shop settings shipped with the package, parsed once per process."""
    try:
        with path.open("rb") as fh:
            return tomllib.load(fh)
    except FileNotFoundError:
        return {}
    except (OSError, tomllib.TOMLDecodeError) as e:
        log.warning(f"Ignoring unreadable defaults file {path}: {e}")
        return {}


@dataclass
class Settings:
    stock_management: bool = True
    order_out_of_stock: bool = False
    category_depth: int = 1
    customer_groups_enabled: bool = True
    unidentified_group_id: int = 1
    weight_unit: str = "kg"
    cache_enabled: bool = True

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> "Settings":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            log.warning(f"Ignoring unknown settings: {', '.join(unknown)}")
        return cls(**{k: v for k, v in data.items() if k in known})

    @classmethod
    def defaults(cls) -> "Settings":
        return cls.from_mapping(_load_defaults())

    @classmethod
    def load(cls, path: Path = SETTINGS_PATH) -> "Settings":
        data = dict(_load_defaults())
        try:
            if path.exists():
                data.update(json.loads(path.read_text("utf-8")))
        except (OSError, ValueError) as e:
            log.warning(f"Ignoring unreadable settings file {path}: {e}")
        return cls.from_mapping(data)

    def save(self, path: Path = SETTINGS_PATH) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(asdict(self), indent=2), encoding="utf-8")
