import asyncio

import httpx

from catalog.types import CatalogViewport
from geo.aoi import ViewportBounds
from layers.types import PointFeature
from viewport.chargers import OpenChargeMapFetcher
from viewport.controller import ViewportRefreshController

DEBOUNCE_S = 0.05


def _bounds(shift=0.0):
    return ViewportBounds.from_bbox(
        min_lon=-122.5 + shift, min_lat=37.7, max_lon=-122.3 + shift, max_lat=37.8
    )


def _charger(i):
    return PointFeature(id=f"c{i}", lon=-122.4, lat=37.75, props={"title": f"Charger {i}"})


class FakeFetch:
    def __init__(self, *, delay_s=0.0, error=None, n=3):
        self.delay_s = delay_s
        self.error = error
        self.n = n
        self.calls = []

    async def __call__(self, bounds, max_results):
        self.calls.append((bounds, max_results))
        await asyncio.sleep(self.delay_s)
        if self.error is not None:
            raise self.error
        return [_charger(i) for i in range(self.n)]


def _controller(fetch, **kwargs):
    kwargs.setdefault("debounce_s", DEBOUNCE_S)
    return ViewportRefreshController(fetch, **kwargs)


def test_burst_of_viewport_changes_fetches_once_with_latest_bounds():
    fetch = FakeFetch()

    async def main():
        c = _controller(fetch, enabled=True, max_results=250)
        for i in range(50):
            c.on_viewport_changed(_bounds(i * 0.001))
            await asyncio.sleep(0.001)
        await asyncio.sleep(DEBOUNCE_S * 3)
        await c.wait_idle()
        return c

    c = asyncio.run(main())
    assert len(fetch.calls) == 1
    bounds, max_results = fetch.calls[0]
    assert bounds == _bounds(49 * 0.001)
    assert max_results == 250
    assert len(c.dataset) == 3
    assert c.fetch_count == 1 and not c.busy


def test_disabled_overlay_never_fetches():
    fetch = FakeFetch()

    async def main():
        c = _controller(fetch)
        c.on_viewport_changed(_bounds())
        await asyncio.sleep(DEBOUNCE_S * 3)
        return c

    c = asyncio.run(main())
    assert fetch.calls == []
    assert c.dataset == ()


def test_debounced_fetch_is_dropped_while_busy():
    fetch = FakeFetch(delay_s=DEBOUNCE_S * 5)

    async def main():
        c = _controller(fetch)
        c.on_viewport_changed(_bounds())
        c.on_overlay_enabled()
        assert c.busy
        c.on_viewport_changed(_bounds(0.5))
        await asyncio.sleep(DEBOUNCE_S * 2)
        await c.wait_idle()
        return c

    c = asyncio.run(main())
    assert len(fetch.calls) == 1
    assert c.fetch_count == 1
    assert not c.busy


def test_failed_fetch_clears_busy_and_is_not_retried():
    fetch = FakeFetch(error=RuntimeError("HTTP 503"))

    async def main():
        c = _controller(fetch)
        c.on_viewport_changed(_bounds())
        c.on_overlay_enabled()
        await c.wait_idle()
        await asyncio.sleep(DEBOUNCE_S * 3)
        return c

    c = asyncio.run(main())
    assert len(fetch.calls) == 1
    assert c.failure_count == 1
    assert not c.busy
    assert c.dataset == ()


def test_enable_fetches_immediately_and_disable_clears():
    fetch = FakeFetch()
    published = []

    async def main():
        c = _controller(fetch, debounce_s=10.0, on_dataset=published.append)
        c.on_viewport_changed(_bounds())
        task = c.on_overlay_enabled()
        assert task is not None
        await task
        assert len(c.dataset) == 3
        c.on_overlay_disabled()
        return c

    c = asyncio.run(main())
    assert len(fetch.calls) == 1
    assert c.dataset == ()
    assert [len(d) for d in published] == [3, 0]


def test_result_arriving_after_disable_is_discarded():
    fetch = FakeFetch(delay_s=DEBOUNCE_S)

    async def main():
        c = _controller(fetch)
        c.on_viewport_changed(_bounds())
        c.on_overlay_enabled()
        await asyncio.sleep(0)
        c.on_overlay_disabled()
        await asyncio.sleep(DEBOUNCE_S * 3)
        return c

    c = asyncio.run(main())
    assert c.dataset == ()
    assert c.fetch_count == 0
    assert not c.busy


def test_same_viewport_is_not_refetched():
    fetch = FakeFetch()

    async def main():
        c = _controller(fetch)
        c.on_viewport_changed(_bounds())
        await c.on_overlay_enabled()
        c.on_viewport_changed(_bounds())
        await asyncio.sleep(DEBOUNCE_S * 3)
        await c.wait_idle()
        c.on_viewport_changed(_bounds(0.1))
        await asyncio.sleep(DEBOUNCE_S * 3)
        await c.wait_idle()
        return c

    c = asyncio.run(main())
    assert len(fetch.calls) == 2
    assert fetch.calls[1][0] == _bounds(0.1)


def test_enable_without_viewport_waits_for_one():
    fetch = FakeFetch()

    async def main():
        c = _controller(fetch)
        assert c.on_overlay_enabled() is None
        c.on_viewport_changed(_bounds())
        await asyncio.sleep(DEBOUNCE_S * 3)
        await c.wait_idle()
        return c

    c = asyncio.run(main())
    assert len(fetch.calls) == 1
    assert len(c.dataset) == 3


def test_enable_during_debounce_fetches_once():
    fetch = FakeFetch(n=0)

    async def main():
        c = _controller(fetch)
        c.on_viewport_changed(_bounds())
        await c.on_overlay_enabled()
        await asyncio.sleep(DEBOUNCE_S * 3)
        await c.wait_idle()
        return c

    c = asyncio.run(main())
    assert len(fetch.calls) == 1
    assert c.fetch_count == 1
    assert c.dataset == ()


def test_empty_result_counts_as_fetched_for_that_viewport():
    fetch = FakeFetch(n=0)

    async def main():
        c = _controller(fetch, enabled=True)
        c.on_viewport_changed(_bounds())
        await asyncio.sleep(DEBOUNCE_S * 3)
        await c.wait_idle()
        c.on_viewport_changed(_bounds())
        await asyncio.sleep(DEBOUNCE_S * 3)
        await c.wait_idle()
        return c

    asyncio.run(main())
    assert len(fetch.calls) == 1


def test_failed_fetch_is_retried_only_by_the_next_viewport_change():
    fetch = FakeFetch(error=RuntimeError("HTTP 503"))

    async def main():
        c = _controller(fetch, enabled=True)
        c.on_viewport_changed(_bounds())
        await asyncio.sleep(DEBOUNCE_S * 3)
        await c.wait_idle()
        assert len(fetch.calls) == 1
        c.on_viewport_changed(_bounds())
        await asyncio.sleep(DEBOUNCE_S * 3)
        await c.wait_idle()
        return c

    c = asyncio.run(main())
    assert len(fetch.calls) == 2
    assert c.failure_count == 2


def test_controller_from_catalog_viewport():
    vp = CatalogViewport(overlayId="chargers", debounceMs=250, maxResults=42)

    async def main():
        async with httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200, json=[]))) as client:
            fetcher = OpenChargeMapFetcher(client, url="https://ocm.test/v3/poi/")
            c = ViewportRefreshController.from_config(vp, fetcher, enabled=True)
            assert (c.overlay_id, c.debounce_s, c.max_results) == ("chargers", 0.25, 42)
            c.on_viewport_changed(_bounds())
            await c.on_overlay_enabled()
            return c

    c = asyncio.run(main())
    assert c.fetch_count == 1
