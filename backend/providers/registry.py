from __future__ import annotations

import logging
from typing import Iterator, Mapping

import httpx

from catalog.registry import CatalogEntry
from catalog.types import CatalogSource
from providers.arcgis import (
    ArcGISFeatureProvider,
    ArcGISImageIdentifyProvider,
    ArcGISMapIdentifyProvider,
)
from providers.in_memory import InMemoryProvider
from providers.types import GeoDataProvider, ProviderCapabilities, ProviderDescriptor

logger = logging.getLogger(__name__)


def descriptor_for(source: CatalogSource) -> ProviderDescriptor:
    caps = source.capabilities
    return ProviderDescriptor(
        id=source.id,
        title=source.title,
        capabilities=ProviderCapabilities(
            contains=caps.contains, nearby=caps.nearby, identify=caps.identify
        ),
        max_search_radius_m=source.maxSearchRadiusM,
        identify_tolerance=source.tolerance,
    )


class ProviderRegistry(Mapping[str, GeoDataProvider]):
    """
    Explicit source-id -> provider mapping, built once per catalog + HTTP client.

    Strategies and the aggregator receive providers from here; nothing looks them
    up globally.
    """

    def __init__(self, providers: Mapping[str, GeoDataProvider]):
        self._providers = dict(providers)

    @classmethod
    def from_catalog(cls, entry: CatalogEntry, client: httpx.AsyncClient) -> "ProviderRegistry":
        out: dict[str, GeoDataProvider] = {}
        for source in entry.config.sources:
            out[source.id] = build_provider(entry, source, client)
        logger.debug(
            "provider registry built",
            extra={"extra": {"catalog": entry.config.id, "sources": sorted(out)}},
        )
        return cls(out)

    def __getitem__(self, source_id: str) -> GeoDataProvider:
        return self._providers[source_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._providers)

    def __len__(self) -> int:
        return len(self._providers)


def build_provider(
    entry: CatalogEntry, source: CatalogSource, client: httpx.AsyncClient
) -> GeoDataProvider:
    descriptor = descriptor_for(source)
    if source.type == "geojson":
        return InMemoryProvider.from_geojson(descriptor, entry.resolve_source_path(source))
    url = source.url or ""
    if source.type == "arcgis_feature":
        return ArcGISFeatureProvider(descriptor, url=url, client=client, where=source.where)
    if source.type == "arcgis_map_identify":
        return ArcGISMapIdentifyProvider(descriptor, url=url, client=client, layers=source.layers)
    if source.type == "arcgis_image_identify":
        return ArcGISImageIdentifyProvider(descriptor, url=url, client=client)
    raise ValueError(f"Unsupported source type: {source.type}")
