import math

import pytest

from geo.aoi import LatLng
from geo.edge_distance import (
    EARTH_RADIUS_M,
    METERS_PER_MILE,
    GeometryUnsupported,
    boundary_rings,
    distance_to_edge,
    distance_to_feature_m,
)
from layers.types import LineFeature, MultiPolygonFeature, PointFeature, PolygonFeature


def _square(min_lon, min_lat, max_lon, max_lat, *, fid="sq", props=None):
    return PolygonFeature(
        id=fid,
        rings=[[(min_lon, min_lat), (max_lon, min_lat), (max_lon, max_lat), (min_lon, max_lat), (min_lon, min_lat)]],
        props=props or {},
    )


def test_boundary_point_is_near_zero_and_outside_point_is_farther():
    sq = _square(-120.1, 36.0, -119.9, 36.2)

    on_edge = distance_to_edge(LatLng(lat=36.0, lon=-120.0), sq)
    outside = distance_to_edge(LatLng(lat=35.5, lon=-120.0), sq)

    assert on_edge <= 0.01
    assert outside > on_edge
    # 0.5 degrees of latitude is ~34.5 miles.
    assert 34.0 < outside < 35.0


def test_inside_point_reports_distance_to_nearest_edge():
    sq = _square(-120.1, 36.0, -119.9, 36.2)
    d = distance_to_edge(LatLng(lat=36.1, lon=-120.0), sq)
    # Nearest edges are the east/west ones (~0.1 deg of longitude at 36N, ~5.6 mi).
    assert 5.0 < d < 6.0


def test_distance_is_rounded_to_two_decimals():
    sq = _square(-120.1, 36.0, -119.9, 36.2)
    d = distance_to_edge(LatLng(lat=35.7, lon=-120.0), sq)
    assert d == round(d, 2)


def test_sixty_km_north_matches_great_circle_distance():
    lat0, lon0 = 36.0, -120.0
    apex_lat = lat0 + math.degrees(60_000.0 / EARTH_RADIUS_M)
    # Diamond whose southern apex sits due north of the query point.
    diamond = PolygonFeature(
        id="d",
        rings=[
            [
                (lon0, apex_lat),
                (lon0 + 0.1, apex_lat + 0.1),
                (lon0, apex_lat + 0.2),
                (lon0 - 0.1, apex_lat + 0.1),
                (lon0, apex_lat),
            ]
        ],
        props={},
    )
    d = distance_to_edge(LatLng(lat=lat0, lon=lon0), diamond)
    assert abs(d - 60_000.0 / METERS_PER_MILE) <= 0.1


def test_multipolygon_uses_nearest_member():
    mp = MultiPolygonFeature(
        id="mp",
        polygons=[
            [[(-121.0, 37.0), (-120.9, 37.0), (-120.9, 37.1), (-121.0, 37.1), (-121.0, 37.0)]],
            [[(-120.1, 36.0), (-119.9, 36.0), (-119.9, 36.2), (-120.1, 36.2), (-120.1, 36.0)]],
        ],
        props={},
    )
    single = _square(-120.1, 36.0, -119.9, 36.2)
    p = LatLng(lat=35.8, lon=-120.0)
    assert distance_to_edge(p, mp) == distance_to_edge(p, single)


def test_non_polygon_geometry_yields_nan():
    p = LatLng(lat=36.0, lon=-120.0)
    pt = PointFeature(id="p", lon=-120.0, lat=36.1, props={})
    line = LineFeature(id="l", coords=[(-120.0, 36.1), (-119.9, 36.1)], props={})

    assert math.isnan(distance_to_edge(p, pt))
    assert math.isnan(distance_to_edge(p, line))


def test_boundary_rings_rejects_points():
    pt = PointFeature(id="p", lon=0.0, lat=0.0, props={})
    with pytest.raises(GeometryUnsupported):
        boundary_rings(pt)


def test_feature_distance_is_zero_inside_polygon():
    sq = _square(-120.1, 36.0, -119.9, 36.2)
    assert distance_to_feature_m(LatLng(lat=36.1, lon=-120.0), sq) == 0.0
    assert distance_to_feature_m(LatLng(lat=35.9, lon=-120.0), sq) > 10_000.0
