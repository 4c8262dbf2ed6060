import json
import sys
from pathlib import Path

import pytest
import yaml


# Ensure `backend/` is on sys.path so tests can import local modules
# like `lookup.*`, `geo.*`, and `main`.
BACKEND_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(BACKEND_ROOT))

# Query points used by the offline catalog below.
P1 = (36.0, -120.0)  # inside the LRA fire zone, the flood zone and the landslide raster
P2 = (38.0, -120.0)  # 60 km south of the SRA fire zone
P3 = (42.0, -120.0)  # far from everything

# 60 km expressed in degrees of latitude on the 6371008.8 m sphere.
SIXTY_KM_DEG = 60_000.0 / 111_195.08


def _square(min_lon, min_lat, max_lon, max_lat, **props):
    ring = [[min_lon, min_lat], [max_lon, min_lat], [max_lon, max_lat], [min_lon, max_lat], [min_lon, min_lat]]
    return {"type": "Feature", "properties": props, "geometry": {"type": "Polygon", "coordinates": [ring]}}


def _write_geojson(path, features):
    path.write_text(json.dumps({"type": "FeatureCollection", "features": features}), encoding="utf-8")


def write_offline_catalog(root: Path) -> Path:
    """
    A GeoJSON-only catalog (no network) with a fire, a flood and a landslide slot.
    """
    cat_dir = root / "testland"
    data_dir = cat_dir / "data"
    data_dir.mkdir(parents=True)

    _write_geojson(data_dir / "fire_lra.geojson", [_square(-120.1, 35.9, -119.9, 36.1, FHSZ_Description="High")])
    _write_geojson(
        data_dir / "fire_sra.geojson",
        [_square(-120.1, 38.0 + SIXTY_KM_DEG, -119.9, 38.7, FHSZ_Description="Moderate")],
    )
    _write_geojson(
        data_dir / "flood.geojson",
        [_square(-120.2, 35.8, -119.8, 36.2, ESRI_SYMBOLOGY="1% Annual Chance Flood Hazard")],
    )
    _write_geojson(data_dir / "landslide.geojson", [_square(-120.3, 35.7, -119.7, 36.3, **{"UniqueValue.Pixel Value": 8})])

    catalog = {
        "id": "testland",
        "title": "Offline test catalog",
        "defaultView": {"center": {"lat": 37.0, "lon": -120.0}, "zoom": 8},
        "sources": [
            {"id": "fire_lra", "title": "Fire LRA", "type": "geojson", "path": "data/fire_lra.geojson"},
            {"id": "fire_sra", "title": "Fire SRA", "type": "geojson", "path": "data/fire_sra.geojson"},
            {"id": "flood", "title": "Flood", "type": "geojson", "path": "data/flood.geojson"},
            {
                "id": "landslide",
                "title": "Landslide",
                "type": "geojson",
                "path": "data/landslide.geojson",
                "capabilities": {"contains": False, "nearby": False, "identify": True},
            },
        ],
        "slots": [
            {
                "key": "fire",
                "label": "Fire Hazard Zone",
                "strategy": "multi_provider",
                "tiers": [{"source": "fire_lra", "label": "LRA"}, {"source": "fire_sra", "label": "SRA"}],
                "format": {"kind": "zone", "field": "FHSZ_Description", "contained": "{label} ({tier}): {value}"},
            },
            {
                "key": "flood",
                "label": "Flood Hazard Zone",
                "strategy": "containment_first",
                "tiers": [{"source": "flood"}],
                "format": {"kind": "zone", "field": "ESRI_SYMBOLOGY"},
            },
            {
                "key": "landslide",
                "label": "Landslide Susceptibility",
                "strategy": "pixel_identify",
                "identifyProfile": "landslide",
                "classTable": "landslide",
                "tiers": [{"source": "landslide"}],
                "format": {"kind": "class", "contained": "{label}: Class {value}"},
            },
        ],
        "reportOrder": ["fire", "flood", "landslide"],
        "overlays": {
            "minZoom": {"ev_chargers": 14, "schools": 14},
            "switch": {"below": "highways", "above": "all_roads", "switchZoom": 10},
        },
        "viewport": {"url": "https://ocm.test/v3/poi/"},
    }
    path = cat_dir / "catalog.yaml"
    path.write_text(yaml.safe_dump(catalog, sort_keys=False), encoding="utf-8")
    return path


@pytest.fixture
def offline_catalog(tmp_path, monkeypatch):
    from catalog.registry import clear_registry_cache

    write_offline_catalog(tmp_path)
    monkeypatch.setenv("HAZARD_CATALOGS_DIR", str(tmp_path))
    monkeypatch.setenv("HAZARD_CATALOG_ID", "testland")
    monkeypatch.setenv("HAZARD_TELEMETRY", "0")
    clear_registry_cache()
    yield tmp_path
    clear_registry_cache()
