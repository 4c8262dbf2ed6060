from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, TypeAlias, Union


GeometryKind = Literal["point", "line", "polygon", "multipolygon"]

Ring: TypeAlias = list[tuple[float, float]]  # [(lon, lat), ...]


@dataclass(frozen=True)
class PointFeature:
    id: str
    lon: float
    lat: float
    props: dict[str, Any]

    kind: GeometryKind = field(default="point", init=False)


@dataclass(frozen=True)
class LineFeature:
    id: str
    coords: list[tuple[float, float]]  # [(lon, lat), ...]
    props: dict[str, Any]

    kind: GeometryKind = field(default="line", init=False)


@dataclass(frozen=True)
class PolygonFeature:
    id: str
    rings: list[Ring]  # [outer_ring, *holes]
    props: dict[str, Any]

    kind: GeometryKind = field(default="polygon", init=False)


@dataclass(frozen=True)
class MultiPolygonFeature:
    id: str
    polygons: list[list[Ring]]  # one rings list per member polygon
    props: dict[str, Any]

    kind: GeometryKind = field(default="multipolygon", init=False)


Feature: TypeAlias = Union[PointFeature, LineFeature, PolygonFeature, MultiPolygonFeature]


@dataclass(frozen=True)
class FeatureCollection:
    """
    Features as returned by one provider call, in the provider's own order.

    Consumers treat features as read-only; "first feature" always means index 0.
    """

    features: list[Feature] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.features)

    def first(self) -> Feature | None:
        return self.features[0] if self.features else None
