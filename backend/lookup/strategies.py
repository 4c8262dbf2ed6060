from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Callable, Protocol, Sequence

from geo.aoi import LatLng
from geo.edge_distance import distance_to_edge
from layers.types import Feature, PointFeature
from lookup.identify_rules import IdentifyRule, label_reading, parse_identify
from lookup.outcomes import Contained, Failed, LookupOutcome, Nearest, NotFound
from providers.types import DEFAULT_SEARCH_RADIUS_M, GeoDataProvider, ProviderError

logger = logging.getLogger(__name__)

NEAREST_TIER = "nearest"
IDENTIFY_TIER = "identify"

EdgeDistanceFn = Callable[[LatLng, Feature], float]


class LookupStrategy(Protocol):
    """
    One slot's decision procedure. `lookup` always returns an outcome; it never raises.
    """

    async def lookup(self, point: LatLng) -> LookupOutcome: ...


@dataclass(frozen=True)
class Tier:
    provider: GeoDataProvider
    label: str | None = None


async def nearest_search(
    point: LatLng,
    providers: Sequence[GeoDataProvider],
    *,
    radius_m: float = DEFAULT_SEARCH_RADIUS_M,
    edge_distance: EdgeDistanceFn = distance_to_edge,
    tier_label: str = NEAREST_TIER,
) -> LookupOutcome:
    """
    Bounded proximity search across `providers` (queried one after another).

    The feature with the smallest edge distance wins; the first one seen wins ties.
    Features whose distance is NaN (not polygonal) are never ranked. Provider
    errors propagate to the caller.
    """
    best: Feature | None = None
    best_dist = math.inf
    for provider in providers:
        if not provider.descriptor.supports_nearby:
            continue
        radius = min(float(radius_m), float(provider.descriptor.max_search_radius_m))
        fc = await provider.query_nearby(point, radius)
        for feature in fc.features:
            d = edge_distance(point, feature)
            if math.isnan(d):
                continue
            if d < best_dist:
                best, best_dist = feature, d
    if best is None:
        return NotFound()
    return Nearest(feature=best, distance_mi=best_dist, tier_label=tier_label)


class MultiProviderTieredStrategy:
    """
    Containment against each tier in order, then nearest-search across the union.

    Tiers are strictly sequential: a tier is only queried when every earlier tier
    returned no containing feature, and the nearest search only runs when none did.
    """

    def __init__(
        self,
        tiers: Sequence[Tier],
        *,
        slot_key: str = "",
        radius_m: float = DEFAULT_SEARCH_RADIUS_M,
        edge_distance: EdgeDistanceFn = distance_to_edge,
    ):
        if not tiers:
            raise ValueError("at least one tier is required")
        self.tiers = list(tiers)
        self.slot_key = slot_key
        self.radius_m = float(radius_m)
        self._edge_distance = edge_distance

    async def lookup(self, point: LatLng) -> LookupOutcome:
        try:
            return await self._resolve(point)
        except ProviderError as e:
            logger.warning(
                "lookup failed",
                extra={"extra": {"slot": self.slot_key, "source": e.source_id, "error": e.message}},
            )
            return Failed(reason=str(e))
        except Exception as e:
            logger.exception("unexpected lookup error", extra={"extra": {"slot": self.slot_key}})
            return Failed(reason=f"{type(e).__name__}: {e}")

    async def _resolve(self, point: LatLng) -> LookupOutcome:
        for tier in self.tiers:
            if not tier.provider.descriptor.supports_contains:
                continue
            fc = await tier.provider.query_contains(point)
            first = fc.first()
            if first is not None:
                return Contained(feature=first, tier_label=tier.label)

        return await nearest_search(
            point,
            [t.provider for t in self.tiers],
            radius_m=self.radius_m,
            edge_distance=self._edge_distance,
        )


class ContainmentFirstStrategy(MultiProviderTieredStrategy):
    """
    Single-source containment with nearest fallback (polygon hazard zones).

    Sources whose descriptor does not support `nearby` resolve to NotFound when
    nothing contains the point.
    """

    def __init__(
        self,
        provider: GeoDataProvider,
        *,
        tier_label: str | None = None,
        slot_key: str = "",
        radius_m: float = DEFAULT_SEARCH_RADIUS_M,
        edge_distance: EdgeDistanceFn = distance_to_edge,
    ):
        super().__init__(
            [Tier(provider=provider, label=tier_label)],
            slot_key=slot_key,
            radius_m=radius_m,
            edge_distance=edge_distance,
        )


class PixelIdentifyStrategy:
    """
    Point-identify against a raster source, parsed with an ordered rule profile.
    """

    def __init__(
        self,
        provider: GeoDataProvider,
        rules: tuple[IdentifyRule, ...],
        *,
        class_table: str | None = None,
        slot_key: str = "",
        tolerance: int | None = None,
    ):
        self.provider = provider
        self.rules = rules
        self.class_table = class_table
        self.slot_key = slot_key
        self.tolerance = int(tolerance if tolerance is not None else provider.descriptor.identify_tolerance)

    async def lookup(self, point: LatLng) -> LookupOutcome:
        try:
            raw = await self.provider.identify(point, self.tolerance)
        except ProviderError as e:
            logger.warning(
                "identify failed",
                extra={"extra": {"slot": self.slot_key, "source": e.source_id, "error": e.message}},
            )
            return Failed(reason=str(e))
        except Exception as e:
            logger.exception("unexpected identify error", extra={"extra": {"slot": self.slot_key}})
            return Failed(reason=f"{type(e).__name__}: {e}")

        reading = parse_identify(raw, self.rules)
        if reading is None:
            return NotFound()
        feature = PointFeature(
            id=f"{self.provider.descriptor.id}:identify",
            lon=float(point.lon),
            lat=float(point.lat),
            props=label_reading(reading, self.class_table),
        )
        return Contained(feature=feature, tier_label=IDENTIFY_TIER)
