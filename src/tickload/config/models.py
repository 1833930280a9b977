from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping


class ConfigurationError(ValueError):
    """Raised when a run cannot start because its configuration is unusable."""


@dataclass(frozen=True, slots=True)
class TargetConfig:
    url: str
    method: str = "GET"
    token: str | None = None
    timeout_sec: float = 10.0
    headers: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.url:
            msg = "BASE_URL is not defined"
            raise ConfigurationError(msg)

    def request_headers(self) -> dict[str, str]:
        headers = dict(self.headers)
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers


@dataclass(frozen=True, slots=True)
class RunConfig:
    target: TargetConfig
    target_rate: int
    duration_sec: int
    tick_interval_sec: float = 1.0
    log_all_responses: bool = False
    results_path: Path = Path("results/results.txt")
    summary_label: str = ""
    run_id: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    notes: str = ""
    max_connections: int | None = None
    total_budget: int = field(init=False)

    def __post_init__(self) -> None:
        _require_positive_int("target_rate", self.target_rate)
        _require_positive_int("duration_sec", self.duration_sec)
        if self.tick_interval_sec <= 0:
            msg = f"tick_interval_sec must be positive, got {self.tick_interval_sec}"
            raise ConfigurationError(msg)
        if self.max_connections is not None:
            _require_positive_int("max_connections", self.max_connections)
        object.__setattr__(self, "total_budget", self.target_rate * self.duration_sec)

    def to_metadata(self) -> Mapping[str, Any]:
        return {
            "run_id": self.run_id or "",
            "created_at": self.created_at.isoformat(),
            "target_rate": self.target_rate,
            "duration_sec": self.duration_sec,
            "total_budget": self.total_budget,
            "tick_interval_sec": self.tick_interval_sec,
            "log_all_responses": self.log_all_responses,
            "results_path": str(self.results_path),
            "notes": self.notes,
            "max_connections": self.max_connections,
            "target": {
                "url": self.target.url,
                "method": self.target.method,
                "timeout_sec": self.target.timeout_sec,
                "authenticated": bool(self.target.token),
                "headers": dict(self.target.headers),
            },
        }


def _require_positive_int(name: str, value: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        msg = f"{name} must be a positive integer, got {value!r}"
        raise ConfigurationError(msg)
