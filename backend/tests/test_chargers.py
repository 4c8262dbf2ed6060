import asyncio
import json

import httpx
import pytest

from geo.aoi import ViewportBounds
from providers.types import MalformedResponse, ProviderUnavailable
from viewport.chargers import OpenChargeMapFetcher, decode_charger

POI = {
    "ID": 1234,
    "AddressInfo": {"Title": "Main St Garage", "Latitude": 37.77, "Longitude": -122.42},
    "StatusType": {"Title": "Operational"},
    "UsageType": {"Title": "Public"},
    "OperatorInfo": {"Title": "ChargePoint"},
    "Connections": [
        {
            "ConnectionType": {"Title": "J1772"},
            "Quantity": 2,
            "PowerKW": 7.2,
            "Voltage": 240,
            "Amps": 30,
            "Level": {"Title": "Level 2"},
        },
        {"ConnectionType": {"Title": "CCS"}, "Quantity": None, "PowerKW": 50},
    ],
}

BOUNDS = ViewportBounds.from_bbox(min_lon=-122.5, min_lat=37.7, max_lon=-122.3, max_lat=37.8)


def test_decode_charger_counts_ports():
    f = decode_charger(POI)
    assert f is not None
    assert f.id == "1234"
    assert (f.lat, f.lon) == (37.77, -122.42)
    assert f.props["title"] == "Main St Garage"
    assert f.props["network"] == "ChargePoint"
    assert f.props["totalPorts"] == 3
    assert f.props["equipment"][1]["level"] == "Level info unavailable"


def test_decode_charger_defaults_and_drops():
    f = decode_charger({"AddressInfo": {"Latitude": 37.0, "Longitude": -122.0}}, index=5)
    assert f.id == "ocm-5"
    assert f.props["status"] == "Unknown Status"
    assert f.props["totalPorts"] == 0

    assert decode_charger({"AddressInfo": {"Title": "no coords"}}) is None
    assert decode_charger("nope") is None


def _fetch(handler, *, api_key=None):
    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            fetcher = OpenChargeMapFetcher(client, url="https://ocm.test/v3/poi/", api_key=api_key)
            return await fetcher.fetch_by_bounds(BOUNDS, 100)

    return asyncio.run(run())


def test_fetch_by_bounds_sends_bbox_and_key():
    seen = []

    def handler(request):
        seen.append(dict(request.url.params))
        return httpx.Response(200, json=[POI, {"AddressInfo": {}}])

    features = _fetch(handler, api_key="k-123")
    assert [f.id for f in features] == ["1234"]
    params = seen[0]
    assert params["boundingbox"] == "(37.7,-122.5),(37.8,-122.3)"
    assert params["maxresults"] == "100"
    assert params["output"] == "json"
    assert params["key"] == "k-123"


def test_fetch_by_bounds_omits_missing_key():
    seen = []

    def handler(request):
        seen.append(dict(request.url.params))
        return httpx.Response(200, json=[])

    assert _fetch(handler) == []
    assert "key" not in seen[0]


def test_fetch_by_bounds_errors():
    with pytest.raises(MalformedResponse):
        _fetch(lambda request: httpx.Response(200, content=json.dumps({"error": "x"})))
    with pytest.raises(ProviderUnavailable):
        _fetch(lambda request: httpx.Response(503, text="busy"))
