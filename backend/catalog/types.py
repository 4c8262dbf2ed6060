from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, model_validator

from providers.types import DEFAULT_IDENTIFY_TOLERANCE, DEFAULT_SEARCH_RADIUS_M

SourceType = Literal["arcgis_feature", "arcgis_map_identify", "arcgis_image_identify", "geojson"]
StrategyKind = Literal["containment_first", "multi_provider", "pixel_identify"]
FormatterKind = Literal["zone", "indicator", "class", "intensity"]

OCM_POI_URL = "https://api.openchargemap.io/v3/poi/"


class CatalogCenter(BaseModel):
    lat: float
    lon: float


class CatalogDefaultView(BaseModel):
    center: CatalogCenter
    zoom: float = Field(ge=0.0, le=24.0)


class SourceCapabilities(BaseModel):
    contains: bool = True
    nearby: bool = True
    identify: bool = False


class CatalogSource(BaseModel):
    """
    One data source (ProviderDescriptor + how to reach it).

    `url` is required for ArcGIS sources, `path` for GeoJSON sources. Relative
    paths resolve against the catalog file's directory.
    """

    id: str
    title: str
    type: SourceType
    url: str | None = None
    path: str | None = None
    # ArcGIS `where` clause (feature sources only).
    where: str | None = None
    # MapServer identify `layers` parameter.
    layers: str = "visible:0"
    capabilities: SourceCapabilities = Field(default_factory=SourceCapabilities)
    maxSearchRadiusM: float = Field(default=DEFAULT_SEARCH_RADIUS_M, gt=0.0)
    tolerance: int = Field(default=DEFAULT_IDENTIFY_TOLERANCE, ge=0)

    @model_validator(mode="after")
    def _check_location(self) -> "CatalogSource":
        if self.type == "geojson":
            if not self.path:
                raise ValueError(f"source {self.id!r}: geojson sources need `path`")
        elif not self.url:
            raise ValueError(f"source {self.id!r}: {self.type} sources need `url`")
        return self


class SlotTier(BaseModel):
    source: str
    label: str | None = None
    description: str | None = None


class SlotFormat(BaseModel):
    """
    Message templates for one slot. Placeholders:

    - all outcomes: `{label}`
    - contained / nearest: `{value}` plus whatever the formatter kind adds
      (`{tier}`, `{tier_description}`, `{percentile}`, `{class_label}`)
    - nearest: `{distance}` (miles, two decimals)
    - failed: `{reason}`

    Missing placeholders render as "unknown".
    """

    kind: FormatterKind
    # Attribute holding the displayed value (zone/indicator kinds).
    field: str | None = None
    decimals: int = Field(default=2, ge=0, le=10)
    percentileField: str | None = None

    contained: str = "{label}: {value}"
    nearest: str = "Nearest {label}: {value} (distance: {distance} mi)"
    notFound: str = "{label}: No data."
    failed: str = "{label}: Error fetching data."
    # Appended to nearest / not-found renderings (e.g. data provenance).
    note: str | None = None

    @model_validator(mode="after")
    def _check_fields(self) -> "SlotFormat":
        if self.kind in {"zone", "indicator"} and not self.field:
            raise ValueError(f"{self.kind} formatter needs `field`")
        return self


class CatalogSlot(BaseModel):
    key: str
    label: str
    strategy: StrategyKind
    tiers: list[SlotTier] = Field(min_length=1)
    # pixel_identify only
    identifyProfile: str | None = None
    classTable: str | None = None
    format: SlotFormat

    @model_validator(mode="after")
    def _check_strategy(self) -> "CatalogSlot":
        if self.strategy in {"containment_first", "pixel_identify"} and len(self.tiers) != 1:
            raise ValueError(f"slot {self.key!r}: {self.strategy} takes exactly one tier")
        if self.strategy == "pixel_identify" and not self.identifyProfile:
            raise ValueError(f"slot {self.key!r}: pixel_identify needs `identifyProfile`")
        return self


class OverlaySwitch(BaseModel):
    """
    Mutually exclusive overlay pair driven by one switch point:
    `below` is shown at zoom <= switchZoom, `above` at zoom > switchZoom.
    """

    below: str
    above: str
    switchZoom: float


class CatalogOverlays(BaseModel):
    minZoom: dict[str, float] = Field(default_factory=dict)
    maxZoom: dict[str, float] = Field(default_factory=dict)
    switch: OverlaySwitch | None = None


class CatalogViewport(BaseModel):
    overlayId: str = "ev_chargers"
    debounceMs: int = Field(default=600, ge=0)
    maxResults: int = Field(default=5000, ge=1, le=50_000)
    url: str = OCM_POI_URL
    timeoutS: float = Field(default=10.0, gt=0.0)


class CatalogConfig(BaseModel):
    id: str
    title: str
    enabled: bool = True
    defaultView: CatalogDefaultView

    searchRadiusM: float = Field(default=DEFAULT_SEARCH_RADIUS_M, gt=0.0)
    providerTimeoutS: float = Field(default=10.0, gt=0.0)
    taskTimeoutS: float = Field(default=20.0, gt=0.0)

    sources: list[CatalogSource]
    slots: list[CatalogSlot]
    # Static display order of the report (permutation of slot keys).
    reportOrder: list[str]

    overlays: CatalogOverlays = Field(default_factory=CatalogOverlays)
    viewport: CatalogViewport = Field(default_factory=CatalogViewport)

    @model_validator(mode="after")
    def _check_references(self) -> "CatalogConfig":
        source_ids = [s.id for s in self.sources]
        if len(set(source_ids)) != len(source_ids):
            raise ValueError(f"catalog {self.id!r}: duplicate source ids")
        slot_keys = [s.key for s in self.slots]
        if len(set(slot_keys)) != len(slot_keys):
            raise ValueError(f"catalog {self.id!r}: duplicate slot keys")
        if sorted(self.reportOrder) != sorted(slot_keys):
            raise ValueError(f"catalog {self.id!r}: reportOrder must list every slot key exactly once")
        known = set(source_ids)
        for slot in self.slots:
            for tier in slot.tiers:
                if tier.source not in known:
                    raise ValueError(f"slot {slot.key!r} references unknown source {tier.source!r}")
        return self

    def source(self, source_id: str) -> CatalogSource:
        for s in self.sources:
            if s.id == source_id:
                return s
        raise KeyError(source_id)
