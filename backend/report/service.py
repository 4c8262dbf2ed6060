from __future__ import annotations

import logging
import time
from collections import Counter
from typing import Any

import httpx

from catalog.registry import CatalogEntry
from geo.aoi import LatLng
from providers.registry import ProviderRegistry
from report.aggregator import BusyCallback, QueryAggregator, ReportSink, SettledCallback
from report.assembler import Report, ReportAssembler
from report.formatters import build_formatters
from report.slots import build_lookup_tasks, build_slot_specs
from telemetry.singleton import get_store

logger = logging.getLogger(__name__)


class ReportService:
    """
    Point-query entry point for one catalog.

    The assembler and aggregator live as long as the service (so generations are
    compared across requests); providers are rebuilt per report around a fresh
    `httpx.AsyncClient`.
    """

    def __init__(
        self,
        entry: CatalogEntry,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        on_busy: BusyCallback | None = None,
        sink: ReportSink | None = None,
    ):
        self.entry = entry
        cfg = entry.config
        self.assembler = ReportAssembler(cfg.reportOrder, build_formatters(cfg))
        self.aggregator = QueryAggregator(
            self.assembler,
            task_timeout_s=cfg.taskTimeoutS,
            on_busy=on_busy,
            sink=sink,
        )
        self._transport = transport

    @property
    def catalog_id(self) -> str:
        return self.entry.config.id

    @property
    def transport(self) -> httpx.AsyncBaseTransport | None:
        return self._transport

    def _client(self) -> httpx.AsyncClient:
        transport = self._transport or httpx.AsyncHTTPTransport(retries=1)
        return httpx.AsyncClient(timeout=self.entry.config.providerTimeoutS, transport=transport)

    async def report(
        self,
        point: LatLng,
        *,
        on_settled: SettledCallback | None = None,
        endpoint: str = "/report",
    ) -> Report:
        t0 = time.perf_counter()
        async with self._client() as client:
            providers = ProviderRegistry.from_catalog(self.entry, client)
            specs = build_slot_specs(self.entry.config, providers)
            report = await self.aggregator.aggregate(
                point, build_lookup_tasks(specs), on_settled=on_settled
            )
        total_ms = (time.perf_counter() - t0) * 1000.0
        logger.info(
            "report assembled",
            extra={
                "extra": {
                    "catalog": self.catalog_id,
                    "generation": report.generation,
                    "current": report.current,
                    "totalMs": round(total_ms, 2),
                }
            },
        )
        self._record(point, report, endpoint=endpoint, total_ms=total_ms)
        return report

    def _record(self, point: LatLng, report: Report, *, endpoint: str, total_ms: float) -> None:
        # Telemetry is best-effort; it never fails a report.
        try:
            store = get_store()
            if store is None:
                return
            store.record(
                endpoint=endpoint,
                catalog_id=self.catalog_id,
                lat=point.lat,
                lon=point.lon,
                generation=report.generation,
                stats=report_stats(report, total_ms=total_ms),
            )
        except Exception:
            logger.warning("telemetry record failed", exc_info=True)


def report_stats(report: Report, *, total_ms: float) -> dict[str, Any]:
    kinds = Counter(e.outcome.kind for e in report.entries)
    return {
        "current": report.current,
        "slots": len(report.entries),
        "outcomes": {
            "contained": kinds.get("contained", 0),
            "nearest": kinds.get("nearest", 0),
            "notFound": kinds.get("not_found", 0),
            "failed": kinds.get("failed", 0),
        },
        "timingsMs": {"total": round(total_ms, 2)},
    }
