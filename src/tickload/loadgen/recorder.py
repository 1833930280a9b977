from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import TextIO

import structlog

from tickload.metrics import Outcome, summary_line

logger = structlog.get_logger()


class OutcomeRecorder:
    """Append-only result log for one run.

    Per-request blocks are written only for failed outcomes unless
    ``log_all_responses`` is set. The summary line is always written, once.
    The file stays open from ``open()`` until ``finalize()`` or ``close()``.
    """

    def __init__(self, path: Path, log_all_responses: bool = False, summary_label: str = "") -> None:
        self.path = Path(path)
        self.log_all_responses = log_all_responses
        self.summary_label = summary_label
        self.entries_written = 0
        self.summary: str | None = None
        self._lock = threading.Lock()
        self._fh: TextIO | None = None
        self._finalized = False

    @property
    def closed(self) -> bool:
        return self._fh is None

    def open(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._fh = self.path.open("w", encoding="utf-8")

    def record(self, outcome: Outcome) -> bool:
        if outcome.ok and not self.log_all_responses:
            return False
        entry = format_entry(outcome)
        with self._lock:
            if self._finalized:
                msg = f"Result log {self.path} is already finalized"
                raise RuntimeError(msg)
            self._append(entry)
            self.entries_written += 1
        return True

    def finalize(self, sent: int, completed: int) -> bool:
        with self._lock:
            if self._finalized:
                return False
            self._finalized = True
            self.summary = summary_line(sent, completed, self.summary_label)
            try:
                self._append(self.summary + "\n")
            finally:
                self._close()
        logger.info("result_log_finalized", path=str(self.path), entries=self.entries_written)
        return True

    def close(self) -> None:
        with self._lock:
            self._close()

    def _append(self, text: str) -> None:
        if self._fh is None:
            msg = f"Result log {self.path} is not open"
            raise RuntimeError(msg)
        self._fh.write(text)
        self._fh.flush()

    def _close(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None


def format_entry(outcome: Outcome) -> str:
    body = json.dumps(outcome.body, default=str, ensure_ascii=False)
    return (
        f"Request {outcome.sequence_number}\n"
        f"Status: {outcome.status}\n"
        f"Response time: {outcome.elapsed_ms}ms\n"
        f"Response body: {body}\n\n"
    )
