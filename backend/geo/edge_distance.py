from __future__ import annotations

import math
from functools import lru_cache
from typing import Any

from pyproj import Transformer
from shapely.geometry import LineString, MultiLineString, Point, Polygon
from shapely.ops import nearest_points, unary_union

from geo.aoi import LatLng
from layers.types import Feature, LineFeature, MultiPolygonFeature, PointFeature, PolygonFeature, Ring

# Mean earth radius (IUGG), the same sphere great-circle distances are usually quoted on.
EARTH_RADIUS_M = 6_371_008.8
METERS_PER_MILE = 1_609.344

_SPHERE_LONLAT = f"+proj=longlat +R={EARTH_RADIUS_M} +no_defs"


class GeometryUnsupported(ValueError):
    """Raised for geometries that have no polygon boundary (points, lines, empty)."""


@lru_cache(maxsize=256)
def local_transformer(lon: float, lat: float) -> Transformer:
    """
    Azimuthal equidistant projection centred on the query point.

    Distances measured from the origin of this projection are exact great-circle
    distances on the sphere, so the nearest boundary point found here is also the
    nearest one on the globe.
    """
    aeqd = f"+proj=aeqd +lat_0={lat} +lon_0={lon} +R={EARTH_RADIUS_M} +units=m +no_defs"
    return Transformer.from_crs(_SPHERE_LONLAT, aeqd, always_xy=True)


def distance_to_edge(point: LatLng, feature: Feature) -> float:
    """
    Shortest great-circle distance (miles, 2 decimals) from `point` to the
    boundary of a polygon/multipolygon feature.

    Returns NaN for non-polygonal geometry; callers must skip NaN when ranking.
    """
    try:
        rings = boundary_rings(feature)
    except GeometryUnsupported:
        return float("nan")

    boundary = _project_rings(point, rings)
    if boundary.is_empty:
        return float("nan")

    origin = Point(0.0, 0.0)
    nearest, _ = nearest_points(boundary, origin)
    meters = math.hypot(nearest.x, nearest.y)
    return round(meters / METERS_PER_MILE, 2)


def distance_to_feature_m(point: LatLng, feature: Feature) -> float:
    """
    Distance in meters from `point` to the feature geometry (0 when inside a polygon).

    Used to decide whether a feature falls within a proximity search radius.
    """
    geom = to_local_geometry(point, feature)
    if geom is None or geom.is_empty:
        return float("inf")
    return float(geom.distance(Point(0.0, 0.0)))


def boundary_rings(feature: Feature) -> list[Ring]:
    if isinstance(feature, PolygonFeature):
        rings = [r for r in feature.rings if len(r) >= 2]
    elif isinstance(feature, MultiPolygonFeature):
        rings = [r for poly in feature.polygons for r in poly if len(r) >= 2]
    else:
        raise GeometryUnsupported(f"{getattr(feature, 'kind', type(feature).__name__)} has no polygon boundary")
    if not rings:
        raise GeometryUnsupported(f"feature {feature.id} has no usable rings")
    return rings


def to_local_geometry(point: LatLng, feature: Feature) -> Any | None:
    """
    Feature geometry projected into the point-centred equidistant plane (meters).
    """
    t = local_transformer(float(point.lon), float(point.lat))
    if isinstance(feature, PointFeature):
        if math.isnan(feature.lon) or math.isnan(feature.lat):
            return None
        x, y = t.transform(feature.lon, feature.lat)
        return Point(float(x), float(y))
    if isinstance(feature, LineFeature):
        coords = _project_coords(t, feature.coords)
        return LineString(coords) if len(coords) >= 2 else None
    if isinstance(feature, PolygonFeature):
        return _local_polygon(t, feature.rings)
    if isinstance(feature, MultiPolygonFeature):
        polys = [p for p in (_local_polygon(t, rings) for rings in feature.polygons) if p is not None]
        if not polys:
            return None
        return unary_union(polys) if len(polys) > 1 else polys[0]
    return None


def _project_rings(point: LatLng, rings: list[Ring]) -> MultiLineString:
    t = local_transformer(float(point.lon), float(point.lat))
    lines = []
    for ring in rings:
        coords = _project_coords(t, _ensure_closed(ring))
        if len(coords) >= 2:
            lines.append(coords)
    return MultiLineString(lines)


def _local_polygon(t: Transformer, rings: list[Ring]) -> Polygon | None:
    if not rings:
        return None
    outer = _project_coords(t, _ensure_closed(rings[0]))
    if len(outer) < 4:
        return None
    holes = [_project_coords(t, _ensure_closed(r)) for r in rings[1:] if len(r) >= 3]
    poly = Polygon(outer, holes=holes or None)
    if not poly.is_valid:
        poly = poly.buffer(0)
    return None if poly.is_empty else poly


def _project_coords(t: Transformer, coords: list[tuple[float, float]]) -> list[tuple[float, float]]:
    if not coords:
        return []
    xs, ys = t.transform([c[0] for c in coords], [c[1] for c in coords])
    return [(float(x), float(y)) for x, y in zip(xs, ys)]


def _ensure_closed(ring: Ring) -> Ring:
    if not ring:
        return ring
    if ring[0] != ring[-1]:
        return [*ring, ring[0]]
    return ring
