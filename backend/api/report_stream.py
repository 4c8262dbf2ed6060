from __future__ import annotations

import asyncio
import json
import logging
from enum import Enum
from typing import Any, AsyncIterator

from geo.aoi import LatLng
from lookup.outcomes import LookupOutcome
from report.service import ReportService

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    started = "started"
    slot = "slot"
    report = "report"
    error = "error"
    finished = "finished"


def format_event(type: EventType, data: str):
    return f"event: {type.value}\ndata: {data}\n\n"


def _json(data: Any) -> str:
    return json.dumps(data, ensure_ascii=False)


async def stream_report(service: ReportService, point: LatLng) -> AsyncIterator[str]:
    """
    Server-sent events for one point query.

    `started` once, then one `slot` per settled slot in completion order, then the
    assembled `report` (declared order), then `finished`. Any failure of the
    aggregation itself becomes an `error` event before `finished`.
    """
    yield format_event(
        EventType.started,
        _json(
            {
                "catalogId": service.catalog_id,
                "lat": point.lat,
                "lon": point.lon,
                "slots": list(service.assembler.slot_keys),
            }
        ),
    )

    settled: asyncio.Queue[tuple[str, LookupOutcome]] = asyncio.Queue()

    def on_settled(key: str, outcome: LookupOutcome) -> None:
        settled.put_nowait((key, outcome))

    task = asyncio.create_task(
        service.report(point, on_settled=on_settled, endpoint="/report/stream")
    )
    try:
        while not task.done():
            getter = asyncio.ensure_future(settled.get())
            done, _ = await asyncio.wait({getter, task}, return_when=asyncio.FIRST_COMPLETED)
            if getter not in done:
                getter.cancel()
                continue
            key, outcome = getter.result()
            yield format_event(EventType.slot, _json(service.assembler.entry(key, outcome).to_dict()))
        # Slots that settled in the same step the aggregation finished.
        while not settled.empty():
            key, outcome = settled.get_nowait()
            yield format_event(EventType.slot, _json(service.assembler.entry(key, outcome).to_dict()))

        report = task.result()
        yield format_event(EventType.report, _json(report.to_dict()))
    except Exception as e:
        logger.exception("report stream failed")
        yield format_event(EventType.error, _json({"message": f"{type(e).__name__}: {e}"}))
    finally:
        if not task.done():
            task.cancel()
    yield format_event(EventType.finished, _json({"catalogId": service.catalog_id}))
