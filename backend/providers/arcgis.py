from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from geo.aoi import LatLng
from layers.loaders import decode_feature_collection
from layers.types import FeatureCollection
from providers.http import get_json
from providers.types import (
    GeoDataProvider,
    MalformedResponse,
    ProviderDescriptor,
    ProviderUnavailable,
)

logger = logging.getLogger(__name__)

# Identify needs a map extent + image size to turn a pixel tolerance into ground units.
# Roughly a street-level view around the point.
_IDENTIFY_HALF_EXTENT_DEG = 0.01
_IDENTIFY_IMAGE_DISPLAY = "800,600,96"


def _point_geometry(point: LatLng) -> str:
    return f"{float(point.lon)},{float(point.lat)}"


async def _get_json(
    client: httpx.AsyncClient, source_id: str, url: str, params: dict[str, Any]
) -> Any:
    data = await get_json(client, source_id, url, params)
    # ArcGIS reports most failures as HTTP 200 with an `error` object.
    if isinstance(data, dict) and isinstance(data.get("error"), dict):
        err = data["error"]
        raise ProviderUnavailable(
            source_id, f"service error {err.get('code')}: {err.get('message') or 'unknown'}"
        )
    return data


class ArcGISFeatureProvider(GeoDataProvider):
    """
    FeatureServer / MapServer layer queried through `/query` with `f=geojson`.
    """

    def __init__(
        self,
        descriptor: ProviderDescriptor,
        *,
        url: str,
        client: httpx.AsyncClient,
        where: str | None = None,
    ):
        self.descriptor = descriptor
        self.url = url.rstrip("/")
        self.where = where or "1=1"
        self._client = client

    def _base_params(self, point: LatLng) -> dict[str, Any]:
        return {
            "f": "geojson",
            "where": self.where,
            "geometry": _point_geometry(point),
            "geometryType": "esriGeometryPoint",
            "inSR": 4326,
            "outSR": 4326,
            "spatialRel": "esriSpatialRelIntersects",
            "outFields": "*",
            "returnGeometry": "true",
        }

    async def query_contains(self, point: LatLng) -> FeatureCollection:
        return await self._query(self._base_params(point))

    async def query_nearby(self, point: LatLng, radius_m: float) -> FeatureCollection:
        params = self._base_params(point)
        params["distance"] = float(radius_m)
        params["units"] = "esriSRUnit_Meter"
        return await self._query(params)

    async def identify(self, point: LatLng, tolerance: int) -> dict[str, Any]:
        raise ProviderUnavailable(self.descriptor.id, "feature layers do not support identify")

    async def _query(self, params: dict[str, Any]) -> FeatureCollection:
        data = await _get_json(self._client, self.descriptor.id, f"{self.url}/query", params)
        try:
            fc = decode_feature_collection(data)
        except ValueError as e:
            raise MalformedResponse(self.descriptor.id, str(e)) from e
        logger.debug(
            "arcgis query", extra={"extra": {"source": self.descriptor.id, "features": len(fc)}}
        )
        return fc


class ArcGISMapIdentifyProvider(GeoDataProvider):
    """
    MapServer `/identify` against a raster-backed layer (e.g. landslide classes).
    """

    def __init__(
        self,
        descriptor: ProviderDescriptor,
        *,
        url: str,
        client: httpx.AsyncClient,
        layers: str = "visible:0",
    ):
        self.descriptor = descriptor
        self.url = url.rstrip("/")
        self.layers = layers
        self._client = client

    async def query_contains(self, point: LatLng) -> FeatureCollection:
        raise ProviderUnavailable(self.descriptor.id, "identify-only source")

    async def query_nearby(self, point: LatLng, radius_m: float) -> FeatureCollection:
        raise ProviderUnavailable(self.descriptor.id, "identify-only source")

    async def identify(self, point: LatLng, tolerance: int) -> dict[str, Any]:
        d = _IDENTIFY_HALF_EXTENT_DEG
        params = {
            "f": "json",
            "geometry": _point_geometry(point),
            "geometryType": "esriGeometryPoint",
            "sr": 4326,
            "layers": self.layers,
            "tolerance": int(tolerance),
            "mapExtent": f"{point.lon - d},{point.lat - d},{point.lon + d},{point.lat + d}",
            "imageDisplay": _IDENTIFY_IMAGE_DISPLAY,
            "returnGeometry": "false",
        }
        data = await _get_json(self._client, self.descriptor.id, f"{self.url}/identify", params)
        if not isinstance(data, dict):
            raise MalformedResponse(self.descriptor.id, "identify response is not an object")
        return data


class ArcGISImageIdentifyProvider(GeoDataProvider):
    """
    ImageServer `/identify` (continuous rasters such as shaking intensity).
    """

    def __init__(self, descriptor: ProviderDescriptor, *, url: str, client: httpx.AsyncClient):
        self.descriptor = descriptor
        self.url = url.rstrip("/")
        self._client = client

    async def query_contains(self, point: LatLng) -> FeatureCollection:
        raise ProviderUnavailable(self.descriptor.id, "identify-only source")

    async def query_nearby(self, point: LatLng, radius_m: float) -> FeatureCollection:
        raise ProviderUnavailable(self.descriptor.id, "identify-only source")

    async def identify(self, point: LatLng, tolerance: int) -> dict[str, Any]:
        geometry = {"x": float(point.lon), "y": float(point.lat), "spatialReference": {"wkid": 4326}}
        params = {
            "f": "json",
            "geometry": json.dumps(geometry, separators=(",", ":")),
            "geometryType": "esriGeometryPoint",
            "returnGeometry": "false",
            "returnCatalogItems": "false",
        }
        data = await _get_json(self._client, self.descriptor.id, f"{self.url}/identify", params)
        if not isinstance(data, dict):
            raise MalformedResponse(self.descriptor.id, "identify response is not an object")
        return data
