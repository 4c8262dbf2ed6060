from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from geo.aoi import LatLng
from layers.types import FeatureCollection

# Legacy default: 80467 m is 50 miles.
DEFAULT_SEARCH_RADIUS_M = 80_467.0
DEFAULT_IDENTIFY_TOLERANCE = 8


class ProviderError(Exception):
    """Base class for anything a data source can do wrong."""

    def __init__(self, source_id: str, message: str):
        super().__init__(f"{source_id}: {message}")
        self.source_id = source_id
        self.message = message


class ProviderUnavailable(ProviderError):
    """Network failure, timeout, HTTP error status or a service-side error payload."""


class MalformedResponse(ProviderError):
    """The source answered, but not in a shape we understand."""


@dataclass(frozen=True)
class ProviderCapabilities:
    contains: bool = True
    nearby: bool = True
    identify: bool = False


@dataclass(frozen=True)
class ProviderDescriptor:
    """
    Identity and query capabilities of one data source.
    """

    id: str
    title: str
    capabilities: ProviderCapabilities = ProviderCapabilities()
    max_search_radius_m: float = DEFAULT_SEARCH_RADIUS_M
    identify_tolerance: int = DEFAULT_IDENTIFY_TOLERANCE

    @property
    def supports_contains(self) -> bool:
        return self.capabilities.contains

    @property
    def supports_nearby(self) -> bool:
        return self.capabilities.nearby

    @property
    def supports_identify(self) -> bool:
        return self.capabilities.identify


class GeoDataProvider(Protocol):
    """
    Data source interface consumed by lookup strategies.

    - ArcGISFeatureProvider / ArcGIS*IdentifyProvider: remote REST services
    - InMemoryProvider: GeoJSON loaded once, STRtree-indexed

    Every method raises `ProviderError` subclasses on failure; it never returns
    partial results.
    """

    descriptor: ProviderDescriptor

    async def query_contains(self, point: LatLng) -> FeatureCollection: ...

    async def query_nearby(self, point: LatLng, radius_m: float) -> FeatureCollection: ...

    async def identify(self, point: LatLng, tolerance: int) -> dict[str, Any]: ...
