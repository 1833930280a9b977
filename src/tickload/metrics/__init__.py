from __future__ import annotations

from tickload.metrics.aggregator import aggregate_per_second, summarize
from tickload.metrics.models import (
    UNKNOWN_ERROR,
    ErrorType,
    Outcome,
    OutcomeKind,
    PerSecondMetrics,
    RunState,
    RunSummary,
    summary_line,
)

__all__ = [
    "UNKNOWN_ERROR",
    "ErrorType",
    "Outcome",
    "OutcomeKind",
    "PerSecondMetrics",
    "RunState",
    "RunSummary",
    "aggregate_per_second",
    "summarize",
    "summary_line",
]
