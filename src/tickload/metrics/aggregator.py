from __future__ import annotations

from collections import defaultdict
from typing import Iterable

import numpy as np

from tickload.metrics.models import (
    ErrorType,
    Outcome,
    OutcomeKind,
    PerSecondMetrics,
    RunState,
    RunSummary,
)


def summarize(state: RunState, outcomes: Iterable[Outcome]) -> RunSummary:
    outcomes = list(outcomes)
    latencies = [o.elapsed_ms for o in outcomes]
    ok_count = sum(1 for o in outcomes if o.ok)
    failures = sum(1 for o in outcomes if o.kind is OutcomeKind.FAILURE)
    if latencies:
        p50 = float(np.percentile(latencies, 50))
        p95 = float(np.percentile(latencies, 95))
        p99 = float(np.percentile(latencies, 99))
        peak = float(np.max(latencies))
    else:
        p50 = p95 = p99 = peak = 0.0
    return RunSummary(
        sent=state.sent,
        completed=state.completed,
        ok_count=ok_count,
        error_response_count=len(outcomes) - ok_count - failures,
        transport_failure_count=failures,
        p50_ms=p50,
        p95_ms=p95,
        p99_ms=p99,
        max_ms=peak,
    )


def aggregate_per_second(
    run_id: str,
    outcomes: Iterable[Outcome],
    ticks: int,
    target_rate: int,
    started_mono: float,
    tick_interval_sec: float = 1.0,
) -> list[PerSecondMetrics]:
    buckets: dict[int, list[Outcome]] = defaultdict(list)
    for outcome in outcomes:
        second = max(0, int((outcome.completed_mono - started_mono) / tick_interval_sec))
        buckets[second].append(outcome)

    # Completions can trail the last tick; keep them in their own buckets.
    last = max([ticks - 1, *buckets.keys()]) if buckets else ticks - 1
    metrics: list[PerSecondMetrics] = []
    for second in range(last + 1):
        bucket = buckets.get(second, [])
        latencies = [o.elapsed_ms for o in bucket]
        achieved = len(bucket)
        error_count = sum(1 for o in bucket if not o.ok)
        timeout_count = sum(1 for o in bucket if o.error_type is ErrorType.TIMEOUT)
        if latencies:
            p50 = float(np.percentile(latencies, 50))
            p95 = float(np.percentile(latencies, 95))
            p99 = float(np.percentile(latencies, 99))
        else:
            p50 = p95 = p99 = 0.0
        total = max(1, achieved)
        metrics.append(
            PerSecondMetrics(
                run_id=run_id,
                second=second,
                requested_rps=float(target_rate) if second < ticks else 0.0,
                achieved_rps=achieved / tick_interval_sec,
                p50_ms=p50,
                p95_ms=p95,
                p99_ms=p99,
                error_rate=error_count / total,
                timeout_rate=timeout_count / total,
            )
        )
    return metrics
