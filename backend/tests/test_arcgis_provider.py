import asyncio
import json

import httpx
import pytest

from geo.aoi import LatLng
from providers.arcgis import (
    ArcGISFeatureProvider,
    ArcGISImageIdentifyProvider,
    ArcGISMapIdentifyProvider,
)
from providers.types import MalformedResponse, ProviderDescriptor, ProviderUnavailable

URL = "https://example.test/arcgis/rest/services/Zones/FeatureServer/0"
POINT = LatLng(lat=38.44, lon=-122.71)

ZONE = {
    "type": "Feature",
    "id": 1,
    "properties": {"FHSZ_Description": "High"},
    "geometry": {
        "type": "Polygon",
        "coordinates": [[[-123, 38], [-122, 38], [-122, 39], [-123, 39], [-123, 38]]],
    },
}


def _run(handler, call):
    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await call(client)

    return asyncio.run(go())


def test_contains_query_parameters_and_decoding():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"type": "FeatureCollection", "features": [ZONE]})

    desc = ProviderDescriptor(id="fire_lra", title="LRA")
    fc = _run(
        handler,
        lambda c: ArcGISFeatureProvider(desc, url=URL + "/", client=c, where="ozoneP IS NOT NULL").query_contains(POINT),
    )

    assert [f.props["FHSZ_Description"] for f in fc.features] == ["High"]
    req = seen[0]
    assert req.url.path.endswith("/FeatureServer/0/query")
    q = req.url.params
    assert q["f"] == "geojson"
    assert q["geometry"] == "-122.71,38.44"
    assert q["spatialRel"] == "esriSpatialRelIntersects"
    assert q["where"] == "ozoneP IS NOT NULL"
    assert "distance" not in q


def test_nearby_adds_distance_in_meters():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"type": "FeatureCollection", "features": []})

    desc = ProviderDescriptor(id="flood", title="Flood")
    fc = _run(handler, lambda c: ArcGISFeatureProvider(desc, url=URL, client=c).query_nearby(POINT, 80467))
    assert len(fc) == 0
    q = seen[0].url.params
    assert float(q["distance"]) == 80467.0
    assert q["units"] == "esriSRUnit_Meter"
    assert q["where"] == "1=1"


def test_service_error_payload_is_unavailable():
    def handler(request):
        return httpx.Response(200, json={"error": {"code": 498, "message": "Invalid token"}})

    desc = ProviderDescriptor(id="flood", title="Flood")
    with pytest.raises(ProviderUnavailable) as e:
        _run(handler, lambda c: ArcGISFeatureProvider(desc, url=URL, client=c).query_contains(POINT))
    assert "498" in str(e.value)


def test_http_status_and_timeouts_are_unavailable():
    desc = ProviderDescriptor(id="flood", title="Flood")

    def boom(request):
        return httpx.Response(503, text="down")

    with pytest.raises(ProviderUnavailable):
        _run(boom, lambda c: ArcGISFeatureProvider(desc, url=URL, client=c).query_contains(POINT))

    def slow(request):
        raise httpx.ReadTimeout("read timed out", request=request)

    with pytest.raises(ProviderUnavailable) as e:
        _run(slow, lambda c: ArcGISFeatureProvider(desc, url=URL, client=c).query_contains(POINT))
    assert "timeout" in e.value.message


def test_non_json_and_missing_features_are_malformed():
    desc = ProviderDescriptor(id="flood", title="Flood")

    def html(request):
        return httpx.Response(200, text="<html>maintenance</html>")

    with pytest.raises(MalformedResponse):
        _run(html, lambda c: ArcGISFeatureProvider(desc, url=URL, client=c).query_contains(POINT))

    def no_features(request):
        return httpx.Response(200, json={"type": "FeatureCollection"})

    with pytest.raises(MalformedResponse):
        _run(no_features, lambda c: ArcGISFeatureProvider(desc, url=URL, client=c).query_contains(POINT))


def test_map_identify_request_shape():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"results": [{"layerId": 0, "attributes": {"Pixel Value": "7"}}]})

    desc = ProviderDescriptor(id="landslide", title="Landslide")
    raw = _run(
        handler,
        lambda c: ArcGISMapIdentifyProvider(desc, url="https://example.test/MapServer", client=c).identify(POINT, 8),
    )
    assert raw["results"][0]["attributes"]["Pixel Value"] == "7"
    q = seen[0].url.params
    assert seen[0].url.path == "/MapServer/identify"
    assert q["tolerance"] == "8"
    assert q["layers"] == "visible:0"
    assert q["imageDisplay"] == "800,600,96"


def test_image_identify_sends_json_point():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"value": "6.4"})

    desc = ProviderDescriptor(id="shaking", title="Shaking")
    raw = _run(
        handler,
        lambda c: ArcGISImageIdentifyProvider(desc, url="https://example.test/ImageServer", client=c).identify(POINT, 8),
    )
    assert raw == {"value": "6.4"}
    geom = json.loads(seen[0].url.params["geometry"])
    assert geom == {"x": -122.71, "y": 38.44, "spatialReference": {"wkid": 4326}}


def test_identify_only_sources_refuse_feature_queries():
    def handler(request):
        raise AssertionError("no request expected")

    desc = ProviderDescriptor(id="shaking", title="Shaking")
    with pytest.raises(ProviderUnavailable):
        _run(
            handler,
            lambda c: ArcGISImageIdentifyProvider(desc, url="https://example.test/ImageServer", client=c).query_contains(POINT),
        )
