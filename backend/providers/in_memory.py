from __future__ import annotations

import asyncio
from functools import lru_cache
from pathlib import Path
from typing import Any

from geo.aoi import LatLng
from geo.index import GeoIndex, build_geo_index
from layers.loaders import load_geojson
from layers.types import FeatureCollection
from providers.types import (
    GeoDataProvider,
    MalformedResponse,
    ProviderDescriptor,
    ProviderUnavailable,
)


class InMemoryProvider(GeoDataProvider):
    """
    Serves a GeoJSON file (or an in-process collection) through an STRtree index.

    `identify` answers in the ArcGIS identify shape, using the attributes of the
    first feature containing the point, so raster-style slots can run offline too.
    """

    def __init__(
        self,
        descriptor: ProviderDescriptor,
        index: GeoIndex | None = None,
        *,
        path: Path | None = None,
    ):
        if index is None and path is None:
            raise ValueError("InMemoryProvider needs an index or a GeoJSON path")
        self.descriptor = descriptor
        self._index = index
        self._path = path

    def _get_index(self) -> GeoIndex:
        # GeoJSON is loaded on first use so a missing file fails its own slot only.
        if self._index is None:
            self._index = _index_for_path(str(self._path), self.descriptor.id)
        return self._index

    @classmethod
    def from_collection(
        cls, descriptor: ProviderDescriptor, collection: FeatureCollection
    ) -> "InMemoryProvider":
        return cls(descriptor, build_geo_index(collection))

    @classmethod
    def from_geojson(cls, descriptor: ProviderDescriptor, path: Path) -> "InMemoryProvider":
        return cls(descriptor, path=Path(path))

    # Index loading and queries run off the event loop.

    async def query_contains(self, point: LatLng) -> FeatureCollection:
        return await asyncio.to_thread(lambda: self._get_index().containing(point))

    async def query_nearby(self, point: LatLng, radius_m: float) -> FeatureCollection:
        return await asyncio.to_thread(lambda: self._get_index().within_radius(point, float(radius_m)))

    async def identify(self, point: LatLng, tolerance: int) -> dict[str, Any]:
        hits = await asyncio.to_thread(lambda: self._get_index().containing(point))
        hit = hits.first()
        if hit is None:
            return {"results": []}
        return {"results": [{"layerId": 0, "attributes": dict(hit.props)}]}


@lru_cache(maxsize=16)
def _index_for_path(path: str, source_id: str) -> GeoIndex:
    p = Path(path)
    if not p.exists():
        raise ProviderUnavailable(source_id, f"missing GeoJSON file: {p}")
    try:
        collection = load_geojson(p)
    except ValueError as e:
        raise MalformedResponse(source_id, str(e)) from e
    return build_geo_index(collection)


def clear_index_cache() -> None:
    _index_for_path.cache_clear()
