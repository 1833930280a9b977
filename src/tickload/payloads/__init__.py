from __future__ import annotations

from tickload.payloads.sources import PayloadSource, QueryCycle, TemplateBody
from tickload.payloads.templates import (
    Const,
    DictOf,
    Generated,
    ListOf,
    Template,
    materialize,
    template_from,
)

__all__ = [
    "Const",
    "DictOf",
    "Generated",
    "ListOf",
    "PayloadSource",
    "QueryCycle",
    "Template",
    "TemplateBody",
    "materialize",
    "template_from",
]
