from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from tickload.metrics import Outcome


@dataclass(frozen=True, slots=True)
class RequestUnit:
    sequence_number: int
    payload: Any
    execute: Callable[[], Awaitable[Outcome]]


MakeUnit = Callable[[int], RequestUnit]
