from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable

import structlog

from tickload.config import RunConfig
from tickload.loadgen.client import elapsed_ms, failure_outcome
from tickload.loadgen.unit import MakeUnit, RequestUnit
from tickload.metrics import Outcome, RunState

logger = structlog.get_logger()

OutcomeCallback = Callable[[Outcome], None]
FinalizeCallback = Callable[[RunState], None]


class DispatchScheduler:
    """Open-loop dispatcher: every tick releases up to ``target_rate`` units.

    Units run as independent tasks and are never awaited by the ticker.
    Completions funnel through one lock where the outcome is reported, the
    completed counter advances and the finalize check runs.
    """

    def __init__(
        self,
        config: RunConfig,
        make_unit: MakeUnit,
        on_outcome: OutcomeCallback,
        on_finalize: FinalizeCallback | None = None,
    ) -> None:
        self.config = config
        self.state = RunState(total_budget=config.total_budget)
        self.ticks = 0
        self.started_mono = 0.0
        self._make_unit = make_unit
        self._on_outcome = on_outcome
        self._on_finalize = on_finalize
        self._lock = asyncio.Lock()
        self._inflight: set[asyncio.Task[None]] = set()
        self._ticker: asyncio.Task[None] | None = None
        self._stopped = False
        self._finished = asyncio.Event()
        self._error: BaseException | None = None

    def start(self) -> RunHandle:
        if self._ticker is not None:
            msg = "Scheduler already started"
            raise RuntimeError(msg)
        self.started_mono = time.perf_counter()
        self._ticker = asyncio.create_task(self._tick_loop(), name="tickload-ticker")
        self._ticker.add_done_callback(self._on_ticker_done)
        return RunHandle(self)

    @property
    def stopped(self) -> bool:
        return self._stopped

    async def _tick_loop(self) -> None:
        interval = self.config.tick_interval_sec
        while True:
            await _sleep_until_time(self.started_mono + (self.ticks + 1) * interval)
            if self._stopped or self.state.budget_exhausted:
                break
            self.ticks += 1
            self._dispatch_tick()
            if self.state.budget_exhausted:
                break
        self._stop()

    def _dispatch_tick(self) -> None:
        dispatched = 0
        for _ in range(self.config.target_rate):
            sequence_number = self.state.claim_slot()
            if sequence_number is None:
                break
            unit = self._build_unit(sequence_number)
            task = asyncio.create_task(
                self._run_unit(unit),
                name=f"tickload-request-{sequence_number}",
            )
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)
            dispatched += 1
        logger.debug(
            "tick_dispatched",
            tick=self.ticks,
            dispatched=dispatched,
            sent=self.state.sent,
            completed=self.state.completed,
        )

    def _build_unit(self, sequence_number: int) -> RequestUnit:
        try:
            return self._make_unit(sequence_number)
        except Exception as exc:
            logger.warning("unit_build_failed", sequence_number=sequence_number, exc_info=True)
            return RequestUnit(sequence_number, None, _raising(exc))

    async def _run_unit(self, unit: RequestUnit) -> None:
        start_mono = time.perf_counter()
        try:
            outcome = await unit.execute()
        except Exception as exc:
            outcome = failure_outcome(unit.sequence_number, exc, elapsed_ms(start_mono))
        async with self._lock:
            try:
                self._on_outcome(outcome)
            except Exception:
                logger.exception("outcome_callback_failed", sequence_number=unit.sequence_number)
            self.state.mark_completed()
            self._maybe_finalize()

    def _maybe_finalize(self) -> None:
        if self.state.finalized:
            return
        drained = self._stopped and self.state.completed == self.state.sent
        if self.state.completed == self.state.total_budget or drained:
            self._finalize()

    def _finalize(self) -> None:
        self.state.finalized = True
        logger.info(
            "run_finalized",
            sent=self.state.sent,
            completed=self.state.completed,
            ticks=self.ticks,
        )
        try:
            if self._on_finalize is not None:
                self._on_finalize(self.state)
        except Exception as exc:
            self._error = exc
        finally:
            self._finished.set()

    def _stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        logger.info("dispatch_stopped", sent=self.state.sent, ticks=self.ticks)

    def cancel(self) -> None:
        if self._ticker is not None and not self._ticker.done():
            self._ticker.cancel()
        self._stop()
        self._maybe_finalize()

    def _on_ticker_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("ticker_failed", error=repr(exc))
            self._error = exc
            self._stopped = True
            self._finished.set()

    async def wait(self) -> RunState:
        await self._finished.wait()
        if self._error is not None:
            raise self._error
        return self.state


class RunHandle:
    """Caller-side view of a started run."""

    def __init__(self, scheduler: DispatchScheduler) -> None:
        self._scheduler = scheduler

    @property
    def state(self) -> RunState:
        return self._scheduler.state

    @property
    def done(self) -> bool:
        return self._scheduler.state.finalized

    def cancel(self) -> None:
        self._scheduler.cancel()

    async def wait(self) -> RunState:
        return await self._scheduler.wait()


def start(
    config: RunConfig,
    make_unit: MakeUnit,
    on_outcome: OutcomeCallback,
    on_finalize: FinalizeCallback | None = None,
) -> RunHandle:
    return DispatchScheduler(config, make_unit, on_outcome, on_finalize).start()


def _raising(exc: Exception) -> Callable[[], Awaitable[Outcome]]:
    async def execute() -> Outcome:
        raise exc

    return execute


async def _sleep_until_time(target: float) -> None:
    delay = max(0.0, target - time.perf_counter())
    if delay > 0:
        await asyncio.sleep(delay)
