from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

from shapely.errors import GEOSException
from shapely.geometry import LineString, MultiPolygon, Point, Polygon
from shapely.ops import unary_union
from shapely.geometry import box as shapely_box
from shapely.strtree import STRtree

from geo.aoi import LatLng
from geo.edge_distance import distance_to_feature_m
from layers.types import (
    Feature,
    FeatureCollection,
    LineFeature,
    MultiPolygonFeature,
    PointFeature,
    PolygonFeature,
    Ring,
)

_METERS_PER_DEG_LAT = 111_320.0


@dataclass
class GeoIndex:
    """
    Geometry index over one feature collection.

    Notes:
    - Input data is EPSG:4326 (lon/lat degrees).
    - Containment runs in lon/lat; proximity is measured in meters around the query point.
    - Results keep the collection's original order, like a remote service would.
    """

    features: list[Feature]

    _tree: STRtree = field(init=False, repr=False)
    _geoms: list[Any] = field(default_factory=list, repr=False)
    _feature_idx: list[int] = field(default_factory=list, repr=False)

    def __post_init__(self) -> None:
        for i, f in enumerate(self.features):
            g = _geometry_4326(f)
            if g is None or g.is_empty:
                continue
            self._geoms.append(g)
            self._feature_idx.append(i)
        self._tree = STRtree(self._geoms)

    def containing(self, point: LatLng) -> FeatureCollection:
        if not self._geoms:
            return FeatureCollection()
        q = Point(float(point.lon), float(point.lat))
        hits = _to_int_list(self._tree.query(q, predicate="intersects"))
        return self._collect(hits, lambda f: not isinstance(f, (PointFeature, LineFeature)))

    def within_radius(self, point: LatLng, radius_m: float) -> FeatureCollection:
        if not self._geoms:
            return FeatureCollection()
        window = _radius_window(point, radius_m)
        hits = _to_int_list(self._tree.query(window))
        return self._collect(hits, lambda f: distance_to_feature_m(point, f) <= radius_m)

    def _collect(self, hits: list[int], keep) -> FeatureCollection:
        out: list[Feature] = []
        for gi in sorted(hits):
            f = self.features[self._feature_idx[gi]]
            if keep(f):
                out.append(f)
        return FeatureCollection(features=out)


def build_geo_index(collection: FeatureCollection) -> GeoIndex:
    return GeoIndex(features=list(collection.features))


def _geometry_4326(f: Feature) -> Any | None:
    try:
        if isinstance(f, PointFeature):
            if math.isnan(f.lon) or math.isnan(f.lat):
                return None
            return Point(float(f.lon), float(f.lat))
        if isinstance(f, LineFeature):
            return LineString(f.coords) if len(f.coords) >= 2 else None
        if isinstance(f, PolygonFeature):
            return _polygon(f.rings)
        if isinstance(f, MultiPolygonFeature):
            polys = [p for p in (_polygon(r) for r in f.polygons) if p is not None]
            return unary_union(polys) if polys else None
    except (ValueError, TypeError, GEOSException):
        return None
    return None


def _polygon(rings: list[Ring]) -> Polygon | MultiPolygon | None:
    if not rings:
        return None
    outer = _ensure_closed(rings[0])
    if len(outer) < 4:
        return None
    holes = [_ensure_closed(r) for r in rings[1:] if len(r) >= 3]
    poly = Polygon(outer, holes=holes or None)
    if not poly.is_valid:
        poly = poly.buffer(0)
    # buffer(0) may split a self-intersecting ring into a MultiPolygon.
    if poly.is_empty or not isinstance(poly, (Polygon, MultiPolygon)):
        return None
    return poly


def _radius_window(point: LatLng, radius_m: float) -> Polygon:
    dlat = radius_m / _METERS_PER_DEG_LAT
    coslat = max(math.cos(math.radians(point.lat)), 1e-6)
    dlon = min(180.0, radius_m / (_METERS_PER_DEG_LAT * coslat))
    return shapely_box(point.lon - dlon, point.lat - dlat, point.lon + dlon, point.lat + dlat)


def _ensure_closed(ring: Ring) -> Ring:
    if not ring:
        return ring
    if ring[0] != ring[-1]:
        return [*ring, ring[0]]
    return ring


def _to_int_list(idxs: Any) -> list[int]:
    if idxs is None:
        return []
    return [int(i) for i in idxs]
