from __future__ import annotations

from typing import Any

import httpx
from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from api.report_stream import stream_report
from catalog.config import ocm_api_key
from catalog.registry import CatalogEntry, get_catalog, list_catalogs
from geo.aoi import LatLng, ViewportBounds
from providers.types import ProviderError
from report.service import ReportService
from telemetry.logging_setup import get_logger
from telemetry.singleton import get_store
from viewport.chargers import OpenChargeMapFetcher
from visibility.zoom import ZoomThresholdTable

logger = get_logger(__name__)

app = FastAPI()

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Tests swap in an `httpx.MockTransport` here.
app.state.http_transport = None


class ApiReportRequest(BaseModel):
    lat: float = Field(ge=-90.0, le=90.0)
    lon: float = Field(ge=-180.0, le=180.0)
    catalogId: str | None = None


class ApiBbox(BaseModel):
    minLon: float = Field(ge=-180.0, le=180.0)
    minLat: float = Field(ge=-90.0, le=90.0)
    maxLon: float = Field(ge=-180.0, le=180.0)
    maxLat: float = Field(ge=-90.0, le=90.0)


class ApiChargersRequest(BaseModel):
    bbox: ApiBbox
    maxResults: int | None = Field(default=None, ge=1, le=50_000)
    catalogId: str | None = None


_services: dict[tuple[str, str], ReportService] = {}


def _entry(catalog_id: str | None) -> CatalogEntry:
    try:
        return get_catalog(catalog_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown catalog: {catalog_id}")
    except RuntimeError as e:
        raise HTTPException(status_code=503, detail=str(e))


def _service(entry: CatalogEntry) -> ReportService:
    # One service per loaded catalog, so generations are compared across requests.
    key = (entry.config.id, str(entry.path))
    transport = app.state.http_transport
    svc = _services.get(key)
    if svc is None or svc.entry is not entry or svc.transport is not transport:
        svc = ReportService(entry, transport=transport)
        _services[key] = svc
    return svc


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/catalogs")
def catalogs():
    return [{"id": c.id, "title": c.title} for c in list_catalogs()]


@app.get("/catalog")
def catalog(catalogId: str | None = None):
    cfg = _entry(catalogId).config
    return {
        "id": cfg.id,
        "title": cfg.title,
        "defaultView": cfg.defaultView.model_dump(),
        "searchRadiusM": cfg.searchRadiusM,
        "reportOrder": list(cfg.reportOrder),
        "slots": [
            {
                "key": s.key,
                "label": s.label,
                "strategy": s.strategy,
                "sources": [t.source for t in s.tiers],
            }
            for s in cfg.slots
        ],
        "sources": [
            {"id": s.id, "title": s.title, "type": s.type, "capabilities": s.capabilities.model_dump()}
            for s in cfg.sources
        ],
        "overlays": cfg.overlays.model_dump(),
        "viewport": cfg.viewport.model_dump(),
    }


@app.post("/report")
async def report(body: ApiReportRequest):
    svc = _service(_entry(body.catalogId))
    result = await svc.report(LatLng(lat=body.lat, lon=body.lon))
    return result.to_dict()


@app.post("/report/stream")
def report_streamed(body: ApiReportRequest):
    svc = _service(_entry(body.catalogId))
    return StreamingResponse(
        stream_report(svc, LatLng(lat=body.lat, lon=body.lon)),
        media_type="text/event-stream",
    )


@app.get("/visibility")
def visibility(zoom: float = Query(ge=0.0, le=24.0), catalogId: str | None = None):
    table = ZoomThresholdTable.from_config(_entry(catalogId).config.overlays)
    visible = table.visible_overlays(zoom)
    return {
        "zoom": zoom,
        "visible": sorted(visible),
        "hidden": sorted(set(table.overlay_ids) - visible),
    }


@app.post("/overlays/chargers")
async def chargers(body: ApiChargersRequest):
    vp = _entry(body.catalogId).config.viewport
    bounds = ViewportBounds.from_bbox(
        min_lon=body.bbox.minLon,
        min_lat=body.bbox.minLat,
        max_lon=body.bbox.maxLon,
        max_lat=body.bbox.maxLat,
    )
    transport = app.state.http_transport or httpx.AsyncHTTPTransport(retries=1)
    async with httpx.AsyncClient(timeout=vp.timeoutS, transport=transport) as client:
        fetcher = OpenChargeMapFetcher(client, url=vp.url, api_key=ocm_api_key())
        try:
            features = await fetcher.fetch_by_bounds(bounds, body.maxResults or vp.maxResults)
        except ProviderError as e:
            logger.warning("charger fetch failed", extra={"extra": {"error": str(e)}})
            raise HTTPException(status_code=502, detail=str(e))
    return {
        "overlayId": vp.overlayId,
        "count": len(features),
        "features": [_point_payload(f) for f in features],
    }


def _point_payload(f) -> dict[str, Any]:
    return {"id": f.id, "lat": f.lat, "lon": f.lon, "properties": f.props}


@app.get("/telemetry/summary")
def telemetry_summary(catalogId: str | None = None, endpoint: str | None = None):
    store = get_store()
    if store is None:
        return {"enabled": False, "rows": []}
    store.flush(timeout_s=1.0)
    return {"enabled": True, "rows": store.summary(catalog_id=catalogId, endpoint=endpoint)}
