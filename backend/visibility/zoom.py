from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Mapping

from catalog.types import CatalogOverlays

logger = logging.getLogger(__name__)

OverlayListener = Callable[[str], None]


@dataclass(frozen=True)
class ZoomSwitch:
    """
    Two mutually exclusive overlays sharing one switch point:
    `below` at zoom <= switch_zoom, `above` at zoom > switch_zoom.
    """

    below: str
    above: str
    switch_zoom: float


@dataclass(frozen=True)
class ZoomThresholdTable:
    min_zoom: Mapping[str, float] = field(default_factory=dict)
    max_zoom: Mapping[str, float] = field(default_factory=dict)
    switch: ZoomSwitch | None = None

    @classmethod
    def from_config(cls, overlays: CatalogOverlays) -> "ZoomThresholdTable":
        sw = overlays.switch
        return cls(
            min_zoom=dict(overlays.minZoom),
            max_zoom=dict(overlays.maxZoom),
            switch=ZoomSwitch(below=sw.below, above=sw.above, switch_zoom=sw.switchZoom)
            if sw is not None
            else None,
        )

    @property
    def overlay_ids(self) -> tuple[str, ...]:
        ids = set(self.min_zoom) | set(self.max_zoom)
        if self.switch is not None:
            ids |= {self.switch.below, self.switch.above}
        return tuple(sorted(ids))

    def is_visible(self, overlay_id: str, zoom: float) -> bool:
        """
        Pure visibility rule. Overlays the table does not mention are always visible.
        """
        z = float(zoom)
        sw = self.switch
        if sw is not None:
            if overlay_id == sw.below:
                return z <= sw.switch_zoom
            if overlay_id == sw.above:
                return z > sw.switch_zoom
        lo = self.min_zoom.get(overlay_id)
        if lo is not None and z < lo:
            return False
        hi = self.max_zoom.get(overlay_id)
        if hi is not None and z > hi:
            return False
        return True

    def visible_overlays(self, zoom: float) -> frozenset[str]:
        return frozenset(oid for oid in self.overlay_ids if self.is_visible(oid, zoom))


@dataclass(frozen=True)
class VisibilityChange:
    zoom: float
    shown: tuple[str, ...]
    hidden: tuple[str, ...]

    @property
    def changed(self) -> bool:
        return bool(self.shown or self.hidden)


class ZoomVisibilityState:
    """
    The set of displayed overlays, re-derived from the table on every zoom event.

    Listeners are called with the overlay id for each show/hide transition
    (hidden first, then shown, each in id order).
    """

    def __init__(self, table: ZoomThresholdTable):
        self.table = table
        self._displayed: frozenset[str] = frozenset()
        self._zoom: float | None = None
        self._on_shown: list[OverlayListener] = []
        self._on_hidden: list[OverlayListener] = []

    @property
    def displayed(self) -> frozenset[str]:
        return self._displayed

    @property
    def zoom(self) -> float | None:
        return self._zoom

    def add_listener(
        self,
        *,
        on_shown: OverlayListener | None = None,
        on_hidden: OverlayListener | None = None,
    ) -> None:
        if on_shown is not None:
            self._on_shown.append(on_shown)
        if on_hidden is not None:
            self._on_hidden.append(on_hidden)

    def on_zoom_changed(self, zoom: float) -> VisibilityChange:
        target = self.table.visible_overlays(zoom)
        hidden = tuple(sorted(self._displayed - target))
        shown = tuple(sorted(target - self._displayed))
        self._displayed = target
        self._zoom = float(zoom)

        for oid in hidden:
            for cb in self._on_hidden:
                cb(oid)
        for oid in shown:
            for cb in self._on_shown:
                cb(oid)
        if hidden or shown:
            logger.debug(
                "overlay visibility changed",
                extra={"extra": {"zoom": float(zoom), "shown": list(shown), "hidden": list(hidden)}},
            )
        return VisibilityChange(zoom=float(zoom), shown=shown, hidden=hidden)


def bind_overlay(
    state: ZoomVisibilityState,
    overlay_id: str,
    *,
    on_enabled: Callable[[], object],
    on_disabled: Callable[[], object],
) -> None:
    """
    Forward one overlay's zoom transitions (e.g. to a ViewportRefreshController).
    """

    def shown(oid: str) -> None:
        if oid == overlay_id:
            on_enabled()

    def hidden(oid: str) -> None:
        if oid == overlay_id:
            on_disabled()

    state.add_listener(on_shown=shown, on_hidden=hidden)
