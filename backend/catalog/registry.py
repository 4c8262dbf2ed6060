from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Iterable

import yaml

from catalog.config import catalogs_root, default_catalog_id
from catalog.types import CatalogConfig, CatalogSource


@dataclass(frozen=True)
class CatalogEntry:
    config: CatalogConfig
    # Absolute path to catalog.yaml on disk; relative source paths resolve against its parent.
    path: Path

    def resolve_source_path(self, source: CatalogSource) -> Path:
        p = Path(source.path or "")
        if p.is_absolute():
            return p
        return (self.path.parent / p).resolve()


def _iter_catalog_yaml_files() -> Iterable[Path]:
    root = catalogs_root()
    if not root.exists():
        return []
    # Convention: catalogs/*/catalog.yaml
    return root.glob("*/catalog.yaml")


def _load_yaml(path: Path) -> dict:
    raw = path.read_text(encoding="utf-8")
    data = yaml.safe_load(raw) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid catalog yaml root: {path}")
    return data


@lru_cache(maxsize=1)
def get_registry() -> dict[str, CatalogEntry]:
    out: dict[str, CatalogEntry] = {}
    for p in sorted(_iter_catalog_yaml_files(), key=lambda x: str(x)):
        cfg = CatalogConfig.model_validate(_load_yaml(p))
        if cfg.enabled and not cfg.slots:
            raise ValueError(f"Enabled catalog is missing `slots`: {p}")
        if cfg.id in out:
            raise ValueError(f"Duplicate catalog id {cfg.id!r}: {p}")
        out[cfg.id] = CatalogEntry(config=cfg, path=p.resolve())
    return out


def list_catalogs() -> list[CatalogConfig]:
    return [e.config for e in get_registry().values() if e.config.enabled]


def get_catalog(catalog_id: str | None = None) -> CatalogEntry:
    reg = get_registry()
    if not reg:
        raise RuntimeError(f"No catalogs discovered under `{catalogs_root()}/*/catalog.yaml`")
    cid = (catalog_id or "").strip() or default_catalog_id()
    if cid not in reg:
        if catalog_id:
            raise KeyError(cid)
        # Unknown env default: fall back to stable ordering.
        cid = next(iter(reg.keys()))
    return reg[cid]


def clear_registry_cache() -> None:
    """
    Clear in-memory catalog registry cache.

    Catalog YAML changes (or a changed HAZARD_CATALOGS_DIR) are otherwise not picked
    up until the process restarts.
    """
    get_registry.cache_clear()
