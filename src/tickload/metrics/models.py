from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

UNKNOWN_ERROR = "Unknown error"


class ErrorType(str, Enum):
    TIMEOUT = "timeout"
    CONNECT = "connect"
    READ = "read"
    OTHER = "other"


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(frozen=True, slots=True)
class Outcome:
    """Terminal result of one request attempt.

    ``SUCCESS`` means a response came back, whatever its status code.
    ``FAILURE`` means the transport gave up; ``status`` then holds the HTTP
    status recovered from the error, or ``UNKNOWN_ERROR``.
    """

    sequence_number: int
    kind: OutcomeKind
    status: int | str
    body: Any
    elapsed_ms: int
    error_type: ErrorType | None = None
    completed_mono: float = 0.0

    @property
    def ok(self) -> bool:
        return (
            self.kind is OutcomeKind.SUCCESS
            and isinstance(self.status, int)
            and 200 <= self.status < 300
        )


@dataclass(slots=True)
class RunState:
    """Sent/completed counters for one run.

    Not synchronised on its own; the scheduler owns it and mutates it from
    a single event loop.
    """

    total_budget: int
    sent: int = 0
    completed: int = 0
    finalized: bool = False

    @property
    def budget_exhausted(self) -> bool:
        return self.sent >= self.total_budget

    @property
    def in_flight(self) -> int:
        return self.sent - self.completed

    def claim_slot(self) -> int | None:
        if self.budget_exhausted:
            return None
        self.sent += 1
        return self.sent

    def mark_completed(self) -> int:
        if self.completed >= self.sent:
            msg = f"completion {self.completed + 1} exceeds sent count {self.sent}"
            raise RuntimeError(msg)
        self.completed += 1
        return self.completed


@dataclass(frozen=True, slots=True)
class RunSummary:
    sent: int
    completed: int
    ok_count: int
    error_response_count: int
    transport_failure_count: int
    p50_ms: float
    p95_ms: float
    p99_ms: float
    max_ms: float

    def line(self, label: str = "") -> str:
        return summary_line(self.sent, self.completed, label)


def summary_line(sent: int, completed: int, label: str = "") -> str:
    return f"Test completed. Total sent: {sent}, Completed: {completed}{label}."


@dataclass(frozen=True, slots=True)
class PerSecondMetrics:
    run_id: str
    second: int
    requested_rps: float
    achieved_rps: float
    p50_ms: float
    p95_ms: float
    p99_ms: float
    error_rate: float
    timeout_rate: float
