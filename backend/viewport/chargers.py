from __future__ import annotations

import logging
from typing import Any

import httpx

from catalog.types import OCM_POI_URL
from geo.aoi import ViewportBounds
from layers.types import PointFeature
from providers.http import get_json
from providers.types import MalformedResponse

logger = logging.getLogger(__name__)

SOURCE_ID = "openchargemap"


def _title(obj: Any, default: str) -> str:
    if isinstance(obj, dict) and obj.get("Title"):
        return str(obj["Title"])
    return default


def _quantity(conn: dict[str, Any]) -> int:
    try:
        q = int(conn.get("Quantity") or 0)
    except (TypeError, ValueError):
        q = 0
    # Connections without a quantity count as one port.
    return q if q > 0 else 1


def decode_charger(raw: Any, *, index: int = 0) -> PointFeature | None:
    """
    One OpenChargeMap POI -> point feature. POIs without coordinates are dropped.
    """
    if not isinstance(raw, dict):
        return None
    ai = raw.get("AddressInfo") or {}
    lat, lon = ai.get("Latitude"), ai.get("Longitude")
    if not lat or not lon:
        return None

    connections = [c for c in (raw.get("Connections") or []) if isinstance(c, dict)]
    equipment = [
        {
            "connectionType": _title(c.get("ConnectionType"), "Connector"),
            "quantity": _quantity(c),
            "powerKW": c.get("PowerKW"),
            "voltage": c.get("Voltage"),
            "amps": c.get("Amps"),
            "level": _title(c.get("Level"), "Level info unavailable"),
        }
        for c in connections
    ]
    props = {
        "title": str(ai.get("Title") or "EV Charger"),
        "status": _title(raw.get("StatusType"), "Unknown Status"),
        "usage": _title(raw.get("UsageType"), "Usage details not specified"),
        "network": _title(raw.get("OperatorInfo"), "Unknown Network"),
        "totalPorts": sum(e["quantity"] for e in equipment),
        "equipment": equipment,
    }
    fid = str(raw.get("ID") or raw.get("UUID") or f"ocm-{index}")
    return PointFeature(id=fid, lon=float(lon), lat=float(lat), props=props)


class OpenChargeMapFetcher:
    """
    Viewport overlay source: EV chargers inside a bounding box.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        url: str = OCM_POI_URL,
        api_key: str | None = None,
    ):
        self.url = url
        self.api_key = api_key
        self._client = client

    async def fetch_by_bounds(self, bounds: ViewportBounds, max_results: int = 5000) -> list[PointFeature]:
        b = bounds.normalized()
        params: dict[str, Any] = {
            "output": "json",
            "boundingbox": (
                f"({b.southwest.lat},{b.southwest.lon}),({b.northeast.lat},{b.northeast.lon})"
            ),
            "maxresults": int(max_results),
        }
        if self.api_key:
            params["key"] = self.api_key

        data = await get_json(self._client, SOURCE_ID, self.url, params)
        if not isinstance(data, list):
            raise MalformedResponse(SOURCE_ID, "expected a JSON list of POIs")

        out: list[PointFeature] = []
        for i, raw in enumerate(data):
            f = decode_charger(raw, index=i)
            if f is not None:
                out.append(f)
        logger.debug(
            "chargers fetched",
            extra={"extra": {"received": len(data), "kept": len(out), "bbox": list(b.rounded_key())}},
        )
        return out
