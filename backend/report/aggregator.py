from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Iterable, Mapping

from geo.aoi import LatLng
from lookup.outcomes import Failed, LookupOutcome
from report.assembler import Report, ReportAssembler

logger = logging.getLogger(__name__)

LookupTask = Callable[[LatLng], Awaitable[LookupOutcome]]
SettledCallback = Callable[[str, LookupOutcome], None]
BusyCallback = Callable[[bool], None]
ReportSink = Callable[[Report], None]


class SlotAlreadySettled(RuntimeError):
    def __init__(self, key: str):
        super().__init__(f"slot {key!r} settled twice")
        self.key = key


class SlotBoard:
    """
    Settled outcomes for one query point. Each declared slot is written exactly once.
    """

    def __init__(self, keys: Iterable[str]):
        self._expected = tuple(keys)
        self._settled: dict[str, LookupOutcome] = {}

    def settle(self, key: str, outcome: LookupOutcome) -> None:
        if key not in self._expected:
            raise ValueError(f"undeclared slot {key!r}")
        if key in self._settled:
            raise SlotAlreadySettled(key)
        self._settled[key] = outcome

    @property
    def settled_count(self) -> int:
        return len(self._settled)

    @property
    def complete(self) -> bool:
        return len(self._settled) == len(self._expected)

    def snapshot(self) -> dict[str, LookupOutcome]:
        return dict(self._settled)


class QueryAggregator:
    """
    Runs one lookup task per declared slot concurrently and joins on all of them.

    - A task that raises or exceeds `task_timeout_s` settles `Failed` for its own
      slot; siblings keep running.
    - Declared slots with no task settle `Failed` immediately.
    - Every call gets a new generation; only a report whose generation is still
      the latest when it completes is handed to `sink` (older ones are returned
      with `current=False`).
    - `on_busy(True)` fires when the first outstanding aggregation starts and
      `on_busy(False)` when the last one finishes.
    """

    def __init__(
        self,
        assembler: ReportAssembler,
        *,
        task_timeout_s: float | None = None,
        on_busy: BusyCallback | None = None,
        sink: ReportSink | None = None,
    ):
        self.assembler = assembler
        self.task_timeout_s = task_timeout_s
        self._on_busy = on_busy
        self._sink = sink
        self._generation = 0
        self._in_flight = 0

    @property
    def busy(self) -> bool:
        return self._in_flight > 0

    @property
    def latest_generation(self) -> int:
        return self._generation

    async def aggregate(
        self,
        point: LatLng,
        tasks: Mapping[str, LookupTask],
        *,
        on_settled: SettledCallback | None = None,
    ) -> Report:
        keys = self.assembler.slot_keys
        unknown = sorted(set(tasks) - set(keys))
        if unknown:
            raise ValueError(f"tasks for undeclared slots: {unknown}")

        self._generation += 1
        generation = self._generation
        try:
            self._enter()
            board = SlotBoard(keys)

            async def run(key: str) -> None:
                task = tasks.get(key)
                if task is None:
                    outcome: LookupOutcome = Failed(reason="no lookup configured")
                else:
                    outcome = await self._run_task(key, task, point)
                board.settle(key, outcome)
                if on_settled is not None:
                    self._notify(on_settled, key, outcome)

            await asyncio.gather(*(run(k) for k in keys))
            current = generation == self._generation
            report = self.assembler.assemble(board.snapshot(), generation=generation, current=current)
        finally:
            self._exit()

        if report.current:
            if self._sink is not None:
                self._guarded("report sink", self._sink, report)
        else:
            logger.info(
                "stale report dropped",
                extra={"extra": {"generation": generation, "latest": self._generation}},
            )
        return report

    async def _run_task(self, key: str, task: LookupTask, point: LatLng) -> LookupOutcome:
        try:
            if self.task_timeout_s is not None:
                return await asyncio.wait_for(task(point), timeout=self.task_timeout_s)
            return await task(point)
        except asyncio.TimeoutError:
            logger.warning("lookup timed out", extra={"extra": {"slot": key, "timeoutS": self.task_timeout_s}})
            return Failed(reason=f"timeout after {self.task_timeout_s:g}s")
        except Exception as e:
            logger.exception("lookup task raised", extra={"extra": {"slot": key}})
            return Failed(reason=f"{type(e).__name__}: {e}")

    def _notify(self, cb: SettledCallback, key: str, outcome: LookupOutcome) -> None:
        try:
            cb(key, outcome)
        except Exception:
            logger.exception("settled callback failed", extra={"extra": {"slot": key}})

    def _guarded(self, what: str, cb: Callable[..., None], *args: Any) -> None:
        # Display callbacks never fail an aggregation.
        try:
            cb(*args)
        except Exception:
            logger.exception("display callback failed", extra={"extra": {"callback": what}})

    def _enter(self) -> None:
        self._in_flight += 1
        if self._in_flight == 1 and self._on_busy is not None:
            self._guarded("busy callback", self._on_busy, True)

    def _exit(self) -> None:
        self._in_flight -= 1
        if self._in_flight == 0 and self._on_busy is not None:
            self._guarded("busy callback", self._on_busy, False)
