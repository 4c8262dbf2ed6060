from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

from catalog.types import CatalogConfig, CatalogSlot
from lookup.identify_rules import RULE_PROFILES
from lookup.strategies import (
    ContainmentFirstStrategy,
    LookupStrategy,
    MultiProviderTieredStrategy,
    PixelIdentifyStrategy,
    Tier,
)
from providers.types import GeoDataProvider
from report.aggregator import LookupTask


@dataclass(frozen=True)
class SlotSpec:
    key: str
    label: str
    strategy: LookupStrategy


def build_strategy(
    slot: CatalogSlot,
    providers: Mapping[str, GeoDataProvider],
    *,
    radius_m: float,
) -> LookupStrategy:
    if slot.strategy == "multi_provider":
        tiers = [Tier(provider=providers[t.source], label=t.label) for t in slot.tiers]
        return MultiProviderTieredStrategy(tiers, slot_key=slot.key, radius_m=radius_m)

    tier = slot.tiers[0]
    provider = providers[tier.source]
    if slot.strategy == "containment_first":
        return ContainmentFirstStrategy(
            provider, tier_label=tier.label, slot_key=slot.key, radius_m=radius_m
        )
    if slot.strategy == "pixel_identify":
        profile = slot.identifyProfile or ""
        if profile not in RULE_PROFILES:
            raise ValueError(f"slot {slot.key!r}: unknown identify profile {profile!r}")
        return PixelIdentifyStrategy(
            provider, RULE_PROFILES[profile], class_table=slot.classTable, slot_key=slot.key
        )
    raise ValueError(f"Unsupported strategy: {slot.strategy}")


def build_slot_specs(
    config: CatalogConfig, providers: Mapping[str, GeoDataProvider]
) -> dict[str, SlotSpec]:
    return {
        slot.key: SlotSpec(
            key=slot.key,
            label=slot.label,
            strategy=build_strategy(slot, providers, radius_m=config.searchRadiusM),
        )
        for slot in config.slots
    }


def build_lookup_tasks(specs: Mapping[str, SlotSpec]) -> dict[str, LookupTask]:
    return {key: spec.strategy.lookup for key, spec in specs.items()}
