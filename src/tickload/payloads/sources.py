from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Protocol, Sequence

from tickload.payloads.templates import Template, materialize


class PayloadSource(Protocol):
    def for_sequence(self, sequence_number: int) -> Any:
        ...


@dataclass(frozen=True, slots=True)
class QueryCycle:
    """Query parameter sets picked by ``sequence_number % len(param_sets)``."""

    param_sets: Sequence[Mapping[str, str]]

    def for_sequence(self, sequence_number: int) -> dict[str, str] | None:
        if not self.param_sets:
            return None
        return dict(self.param_sets[sequence_number % len(self.param_sets)])


@dataclass(frozen=True, slots=True)
class TemplateBody:
    template: Template

    def for_sequence(self, sequence_number: int) -> Any:
        return materialize(self.template)
