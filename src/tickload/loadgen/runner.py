from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from functools import partial
from pathlib import Path

import httpx
import structlog

from tickload.config import RunConfig
from tickload.loadgen.client import send_request
from tickload.loadgen.recorder import OutcomeRecorder
from tickload.loadgen.scheduler import DispatchScheduler, RunHandle
from tickload.loadgen.unit import RequestUnit
from tickload.metrics import (
    Outcome,
    PerSecondMetrics,
    RunState,
    RunSummary,
    aggregate_per_second,
    summarize,
)
from tickload.payloads import PayloadSource
from tickload.storage import Storage

logger = structlog.get_logger()


@dataclass(frozen=True, slots=True)
class RunReport:
    run_id: str
    state: RunState
    summary: RunSummary
    per_second: list[PerSecondMetrics]
    results_path: Path
    summary_line: str


def _new_run_id() -> str:
    return uuid.uuid4().hex


def client_limits(config: RunConfig) -> httpx.Limits:
    # None leaves the pool unbounded, so no request waits for a free connection.
    return httpx.Limits(
        max_connections=config.max_connections,
        max_keepalive_connections=config.max_connections,
    )


def start_banner(config: RunConfig) -> str:
    return f"Starting {config.target.method.upper()} test: {config.target_rate} RPS for {config.duration_sec}s..."


class RunCoordinator:
    """Wires one run together: payloads, transport, scheduler and recorder.

    ``client`` may be supplied by the caller (tests pass one backed by
    ``httpx.MockTransport``); otherwise the coordinator owns and closes its own.
    """

    def __init__(
        self,
        config: RunConfig,
        payloads: PayloadSource,
        storage: Storage | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if config.run_id is None:
            config = replace(config, run_id=_new_run_id())
        self.config = config
        self.run_id: str = config.run_id
        self.payloads = payloads
        self.storage = storage
        self.recorder = OutcomeRecorder(
            config.results_path,
            log_all_responses=config.log_all_responses,
            summary_label=config.summary_label,
        )
        self.outcomes: list[Outcome] = []
        self._client = client
        self._owns_client = client is None
        self._scheduler: DispatchScheduler | None = None
        self._handle: RunHandle | None = None

    def make_unit(self, sequence_number: int) -> RequestUnit:
        payload = self.payloads.for_sequence(sequence_number)
        return RequestUnit(
            sequence_number=sequence_number,
            payload=payload,
            execute=partial(send_request, self._client, self.config.target, sequence_number, payload),
        )

    def _on_outcome(self, outcome: Outcome) -> None:
        self.outcomes.append(outcome)
        self.recorder.record(outcome)

    def _on_finalize(self, state: RunState) -> None:
        self.recorder.finalize(state.sent, state.completed)

    def start(self) -> RunHandle:
        if self._handle is not None:
            msg = f"Run {self.run_id} already started"
            raise RuntimeError(msg)
        if self.storage is not None and self.storage.run_exists(self.run_id):
            msg = f"Run {self.run_id} already exists"
            raise ValueError(msg)
        self.recorder.open()
        if self._client is None:
            self._client = httpx.AsyncClient(limits=client_limits(self.config))
        logger.info(
            "run_started",
            run_id=self.run_id,
            url=self.config.target.url,
            method=self.config.target.method,
            target_rate=self.config.target_rate,
            duration_sec=self.config.duration_sec,
            total_budget=self.config.total_budget,
            results_path=str(self.config.results_path),
        )
        if not self.config.target.token:
            logger.warning("auth_token_missing", url=self.config.target.url)
        self._scheduler = DispatchScheduler(
            self.config,
            self.make_unit,
            self._on_outcome,
            self._on_finalize,
        )
        self._handle = self._scheduler.start()
        return self._handle

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()

    async def wait(self) -> RunReport:
        if self._handle is None or self._scheduler is None:
            msg = "Run has not been started"
            raise RuntimeError(msg)
        try:
            state = await self._handle.wait()
        finally:
            self.recorder.close()
            if self._owns_client and self._client is not None:
                await self._client.aclose()
        summary = summarize(state, self.outcomes)
        per_second = aggregate_per_second(
            self.run_id,
            self.outcomes,
            self._scheduler.ticks,
            self.config.target_rate,
            self._scheduler.started_mono,
            self.config.tick_interval_sec,
        )
        if self.storage is not None:
            self.storage.save_run(self.config, self.run_id, summary, self.outcomes, per_second)
        logger.info(
            "run_completed",
            run_id=self.run_id,
            sent=summary.sent,
            completed=summary.completed,
            ok=summary.ok_count,
            error_responses=summary.error_response_count,
            transport_failures=summary.transport_failure_count,
            p50_ms=summary.p50_ms,
            p99_ms=summary.p99_ms,
        )
        return RunReport(
            run_id=self.run_id,
            state=state,
            summary=summary,
            per_second=per_second,
            results_path=self.config.results_path,
            summary_line=self.recorder.summary or summary.line(self.config.summary_label),
        )


async def run_load(
    config: RunConfig,
    payloads: PayloadSource,
    storage: Storage | None = None,
    client: httpx.AsyncClient | None = None,
) -> RunReport:
    coordinator = RunCoordinator(config, payloads, storage=storage, client=client)
    coordinator.start()
    return await coordinator.wait()
