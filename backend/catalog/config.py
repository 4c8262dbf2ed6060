from __future__ import annotations

import os
from pathlib import Path


def _repo_root() -> Path:
    return Path(__file__).resolve().parents[2]


def catalogs_root() -> Path:
    return Path(os.getenv("HAZARD_CATALOGS_DIR") or (_repo_root() / "catalogs"))


def default_catalog_id() -> str:
    return (os.getenv("HAZARD_CATALOG_ID") or "california").strip()


def ocm_api_key() -> str | None:
    # Read from the environment only; the key is never committed.
    v = (os.getenv("OCM_API_KEY") or "").strip()
    return v or None


def telemetry_path() -> Path:
    return Path(
        os.getenv("HAZARD_TELEMETRY_PATH")
        or (_repo_root() / "data" / "telemetry" / "telemetry.duckdb")
    )


def telemetry_enabled() -> bool:
    # On unless explicitly switched off.
    v = (os.getenv("HAZARD_TELEMETRY") or "1").strip().lower()
    return v not in {"0", "false", "no", "off"}
