from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Iterable

import duckdb
import pandas as pd

from tickload.config import RunConfig
from tickload.metrics import Outcome, PerSecondMetrics, RunSummary


@dataclass(slots=True)
class Storage:
    db_path: Path

    def __post_init__(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _connect(self) -> duckdb.DuckDBPyConnection:
        return duckdb.connect(str(self.db_path))

    def _init_schema(self) -> None:
        with self._connect() as con:
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS run_meta (
                    run_id TEXT PRIMARY KEY,
                    created_at TIMESTAMP,
                    config_json TEXT,
                    summary_json TEXT,
                    notes TEXT
                );
                """
            )
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS outcomes (
                    run_id TEXT,
                    sequence_number INTEGER,
                    kind TEXT,
                    status TEXT,
                    elapsed_ms INTEGER,
                    error_type TEXT,
                    ok BOOLEAN
                );
                """
            )
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS per_second (
                    run_id TEXT,
                    second INTEGER,
                    requested_rps DOUBLE,
                    achieved_rps DOUBLE,
                    p50_ms DOUBLE,
                    p95_ms DOUBLE,
                    p99_ms DOUBLE,
                    error_rate DOUBLE,
                    timeout_rate DOUBLE
                );
                """
            )

    def run_exists(self, run_id: str) -> bool:
        with self._connect() as con:
            result = con.execute(
                "SELECT COUNT(*) FROM run_meta WHERE run_id = ?",
                [run_id],
            ).fetchone()
            return bool(result and result[0] > 0)

    def save_run(
        self,
        config: RunConfig,
        run_id: str,
        summary: RunSummary,
        outcomes: Iterable[Outcome],
        per_second: Iterable[PerSecondMetrics],
    ) -> None:
        if self.run_exists(run_id):
            msg = f"Run {run_id} already exists"
            raise ValueError(msg)
        config_json = json.dumps({**config.to_metadata(), "run_id": run_id})
        summary_json = json.dumps(asdict(summary))
        with self._connect() as con:
            con.execute(
                "INSERT INTO run_meta VALUES (?, ?, ?, ?, ?)",
                [run_id, config.created_at, config_json, summary_json, config.notes],
            )
            outcomes_df = pd.DataFrame(
                [
                    {
                        "run_id": run_id,
                        "sequence_number": o.sequence_number,
                        "kind": o.kind.value,
                        "status": str(o.status),
                        "elapsed_ms": o.elapsed_ms,
                        "error_type": o.error_type.value if o.error_type else None,
                        "ok": o.ok,
                    }
                    for o in outcomes
                ]
            )
            if not outcomes_df.empty:
                con.execute("INSERT INTO outcomes SELECT * FROM outcomes_df")
            per_df = pd.DataFrame([asdict(m) for m in per_second])
            if not per_df.empty:
                con.execute("INSERT INTO per_second SELECT * FROM per_df")

    def list_runs(self) -> pd.DataFrame:
        with self._connect() as con:
            return con.execute(
                "SELECT run_id, created_at, notes FROM run_meta ORDER BY created_at DESC"
            ).fetchdf()

    def load_run_meta(self, run_id: str) -> dict[str, object] | None:
        with self._connect() as con:
            row = con.execute(
                "SELECT config_json, summary_json FROM run_meta WHERE run_id = ?",
                [run_id],
            ).fetchone()
            if not row:
                return None
            meta = json.loads(row[0])
            meta["summary"] = json.loads(row[1])
            return meta

    def load_outcomes(self, run_id: str) -> pd.DataFrame:
        with self._connect() as con:
            return con.execute(
                "SELECT * FROM outcomes WHERE run_id = ? ORDER BY sequence_number",
                [run_id],
            ).fetchdf()

    def load_per_second(self, run_id: str) -> pd.DataFrame:
        with self._connect() as con:
            return con.execute(
                "SELECT * FROM per_second WHERE run_id = ? ORDER BY second",
                [run_id],
            ).fetchdf()
