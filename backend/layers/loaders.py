from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from layers.field_hints import NAME_HINTS, YEAR_HINTS, pick_value
from layers.types import (
    Feature,
    FeatureCollection,
    LineFeature,
    MultiPolygonFeature,
    PointFeature,
    PolygonFeature,
    Ring,
)


def load_geojson(path: Path) -> FeatureCollection:
    data = json.loads(path.read_text(encoding="utf-8"))
    return decode_feature_collection(data)


def decode_feature_collection(data: Any) -> FeatureCollection:
    """
    Decode a GeoJSON FeatureCollection (as returned by ArcGIS `f=geojson`).

    Raises ValueError when the root is not a FeatureCollection-like object.
    Individual features without usable geometry are kept as-is when they still
    carry attributes (ArcGIS omits geometry when `returnGeometry=false`).
    """
    if not isinstance(data, dict):
        raise ValueError(f"Expected a GeoJSON object, got {type(data).__name__}")
    features = data.get("features")
    if not isinstance(features, list):
        raise ValueError("GeoJSON object has no `features` list")

    out: list[Feature] = []
    for i, feature in enumerate(features):
        decoded = decode_feature(feature, index=i)
        if decoded is not None:
            out.append(decoded)
    return FeatureCollection(features=out)


def decode_feature(feature: Any, *, index: int = 0) -> Feature | None:
    if not isinstance(feature, dict):
        return None
    geom = feature.get("geometry") or {}
    props = dict(feature.get("properties") or {})
    _attach_hinted_props(props)
    fid = str(feature.get("id") or props.get("OBJECTID") or props.get("id") or f"f-{index}")

    gtype = geom.get("type")
    coords = geom.get("coordinates")

    if gtype == "Point" and coords and len(coords) >= 2:
        return PointFeature(id=fid, lon=float(coords[0]), lat=float(coords[1]), props=props)
    if gtype == "LineString" and coords:
        line = _to_ring(coords)
        if len(line) >= 2:
            return LineFeature(id=fid, coords=line, props=props)
        return None
    if gtype == "Polygon" and coords:
        rings = [r for r in (_to_ring(r) for r in coords) if r]
        if rings:
            return PolygonFeature(id=fid, rings=rings, props=props)
        return None
    if gtype == "MultiPolygon" and coords:
        polygons: list[list[Ring]] = []
        for poly in coords:
            rings = [r for r in (_to_ring(r) for r in poly or []) if r]
            if rings:
                polygons.append(rings)
        if polygons:
            return MultiPolygonFeature(id=fid, polygons=polygons, props=props)
        return None
    if not gtype and props:
        # Attribute-only result; keep it so containment answers still work.
        return PointFeature(id=fid, lon=float("nan"), lat=float("nan"), props=props)
    return None


def _attach_hinted_props(props: dict[str, Any]) -> None:
    if "label" not in props:
        name = pick_value(props, NAME_HINTS)
        if name is not None:
            props["label"] = name
    if "year" not in props:
        year = pick_value(props, YEAR_HINTS)
        if year is not None:
            props["year"] = year


def _to_ring(ring: Any) -> Ring:
    out: Ring = []
    for p in ring or []:
        if not p or len(p) < 2:
            continue
        lon, lat = float(p[0]), float(p[1])
        out.append((lon, lat))
    return out
