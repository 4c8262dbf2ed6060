from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Sequence

from catalog.types import CatalogViewport
from geo.aoi import ViewportBounds
from layers.types import PointFeature
from viewport.chargers import OpenChargeMapFetcher

logger = logging.getLogger(__name__)

FetchByBounds = Callable[[ViewportBounds, int], Awaitable[Sequence[PointFeature]]]
DatasetListener = Callable[[tuple[PointFeature, ...]], None]


class ViewportRefreshController:
    """
    Owns one overlay dataset and re-fetches it when the visible region changes.

    - Viewport changes are debounced: a fetch fires only after `debounce_s` with
      no further change, using the latest bounds.
    - At most one fetch is in flight. A debounced fetch that finds the controller
      busy (or the overlay disabled) is dropped, not queued.
    - Enabling the overlay fetches immediately; disabling clears the dataset and
      discards the result of any fetch still running.
    - A completed fetch replaces the whole dataset in one assignment.
    - Failures are logged and clear the busy flag; nothing is retried.
    """

    def __init__(
        self,
        fetch: FetchByBounds,
        *,
        overlay_id: str = "ev_chargers",
        debounce_s: float = 0.6,
        max_results: int = 5000,
        enabled: bool = False,
        on_dataset: DatasetListener | None = None,
    ):
        self.overlay_id = overlay_id
        self.debounce_s = float(debounce_s)
        self.max_results = int(max_results)
        self._fetch = fetch
        self._on_dataset = on_dataset

        self._enabled = bool(enabled)
        self._busy = False
        self._bounds: ViewportBounds | None = None
        self._dataset: tuple[PointFeature, ...] = ()
        self._last_key: tuple[float, float, float, float] | None = None
        # Bumped on disable; results from an older epoch are discarded.
        self._epoch = 0
        self._timer: asyncio.TimerHandle | None = None
        self._task: asyncio.Task | None = None

        self.fetch_count = 0
        self.failure_count = 0

    @classmethod
    def from_config(
        cls,
        viewport: CatalogViewport,
        fetcher: OpenChargeMapFetcher,
        *,
        enabled: bool = False,
        on_dataset: DatasetListener | None = None,
    ) -> "ViewportRefreshController":
        return cls(
            fetcher.fetch_by_bounds,
            overlay_id=viewport.overlayId,
            debounce_s=viewport.debounceMs / 1000.0,
            max_results=viewport.maxResults,
            enabled=enabled,
            on_dataset=on_dataset,
        )

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def dataset(self) -> tuple[PointFeature, ...]:
        return self._dataset

    @property
    def bounds(self) -> ViewportBounds | None:
        return self._bounds

    def on_viewport_changed(self, bounds: ViewportBounds) -> None:
        self._bounds = bounds
        if self._timer is not None:
            self._timer.cancel()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.debounce_s, self._on_quiet)

    def on_overlay_enabled(self) -> asyncio.Task | None:
        self._enabled = True
        # Superseded by the immediate fetch.
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        return self._start_fetch(reason="enabled", dedupe=False)

    def on_overlay_disabled(self) -> None:
        self._enabled = False
        self._epoch += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        self._busy = False
        self._last_key = None
        self._replace_dataset(())

    async def wait_idle(self) -> None:
        task = self._task
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    def close(self) -> None:
        self.on_overlay_disabled()

    def _on_quiet(self) -> None:
        self._timer = None
        self._start_fetch(reason="viewport", dedupe=True)

    def _start_fetch(self, *, reason: str, dedupe: bool) -> asyncio.Task | None:
        if not self._enabled:
            logger.debug("fetch skipped: overlay disabled", extra={"extra": {"overlay": self.overlay_id}})
            return None
        if self._busy:
            logger.debug("fetch skipped: busy", extra={"extra": {"overlay": self.overlay_id}})
            return None
        bounds = self._bounds
        if bounds is None:
            logger.debug("fetch skipped: no viewport yet", extra={"extra": {"overlay": self.overlay_id}})
            return None
        key = bounds.rounded_key()
        if dedupe and key == self._last_key:
            logger.debug("fetch skipped: same viewport", extra={"extra": {"overlay": self.overlay_id}})
            return None

        self._busy = True
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run_fetch(bounds, key, self._epoch, reason))
        return self._task

    async def _run_fetch(
        self,
        bounds: ViewportBounds,
        key: tuple[float, float, float, float],
        epoch: int,
        reason: str,
    ) -> None:
        try:
            features = await self._fetch(bounds, self.max_results)
        except Exception as e:
            if epoch == self._epoch:
                self.failure_count += 1
                logger.warning(
                    "overlay fetch failed",
                    extra={"extra": {"overlay": self.overlay_id, "reason": reason, "error": str(e)}},
                )
            return
        finally:
            if epoch == self._epoch:
                self._busy = False

        if epoch != self._epoch or not self._enabled:
            logger.debug("fetch result discarded", extra={"extra": {"overlay": self.overlay_id}})
            return
        self.fetch_count += 1
        self._last_key = key
        self._replace_dataset(tuple(features))
        logger.debug(
            "overlay refreshed",
            extra={"extra": {"overlay": self.overlay_id, "reason": reason, "features": len(self._dataset)}},
        )

    def _replace_dataset(self, features: tuple[PointFeature, ...]) -> None:
        self._dataset = features
        if self._on_dataset is not None:
            self._on_dataset(features)
