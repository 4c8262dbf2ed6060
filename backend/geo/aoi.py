from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class LatLng:
    """
    A WGS84 query point. Constructed once per query event and never mutated.
    """

    lat: float
    lon: float

    def as_lonlat(self) -> tuple[float, float]:
        return (float(self.lon), float(self.lat))


@dataclass(frozen=True)
class ViewportBounds:
    """
    Visible map region as a southwest/northeast corner pair.

    Compared by value only; every "change" produces a new instance.
    """

    southwest: LatLng
    northeast: LatLng

    @classmethod
    def from_bbox(
        cls, *, min_lon: float, min_lat: float, max_lon: float, max_lat: float
    ) -> "ViewportBounds":
        return cls(
            southwest=LatLng(lat=float(min_lat), lon=float(min_lon)),
            northeast=LatLng(lat=float(max_lat), lon=float(max_lon)),
        ).normalized()

    def normalized(self) -> "ViewportBounds":
        south = min(self.southwest.lat, self.northeast.lat)
        north = max(self.southwest.lat, self.northeast.lat)
        west = min(self.southwest.lon, self.northeast.lon)
        east = max(self.southwest.lon, self.northeast.lon)
        return ViewportBounds(
            southwest=LatLng(lat=south, lon=west),
            northeast=LatLng(lat=north, lon=east),
        )

    def contains(self, point: LatLng) -> bool:
        b = self.normalized()
        return (
            b.southwest.lat <= point.lat <= b.northeast.lat
            and b.southwest.lon <= point.lon <= b.northeast.lon
        )

    def rounded_key(self, decimals: int = 4) -> tuple[float, float, float, float]:
        """
        A stable, hashable key for deduplicating viewport-derived fetches.

        decimals=4 is ~11m-ish in latitude, which is good enough for interactive panning.
        """
        b = self.normalized()
        return (
            round(b.southwest.lon, decimals),
            round(b.southwest.lat, decimals),
            round(b.northeast.lon, decimals),
            round(b.northeast.lat, decimals),
        )
