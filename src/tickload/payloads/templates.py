"""Request body templates.

A template is a tree of four node types. ``materialize`` walks the tree and
produces a fresh value on every call, so ``Generated`` nodes (random ints,
uuids, ...) are re-evaluated once per request.

Templates can be written as plain JSON, where an object holding exactly one
``$``-prefixed key is a generator directive::

    {"key1": "value1", "key3": {"$randint": [1, 9]}}

A body field that really is a one-key ``$`` object is wrapped in
``$literal``, whose argument is sent verbatim::

    {"update": {"$literal": {"$set": {"n": 1}}}}
"""

from __future__ import annotations

import copy
import random
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Union

from tickload.config import ConfigurationError


@dataclass(frozen=True, slots=True)
class Const:
    value: Any


@dataclass(frozen=True, slots=True)
class Generated:
    factory: Callable[[], Any]


@dataclass(frozen=True, slots=True)
class ListOf:
    items: tuple["Template", ...]


@dataclass(frozen=True, slots=True)
class DictOf:
    fields: tuple[tuple[str, "Template"], ...]


Template = Union[Const, Generated, ListOf, DictOf]


def materialize(template: Template) -> Any:
    if isinstance(template, Const):
        return template.value
    if isinstance(template, Generated):
        return template.factory()
    if isinstance(template, ListOf):
        return [materialize(item) for item in template.items]
    if isinstance(template, DictOf):
        return {key: materialize(value) for key, value in template.fields}
    msg = f"Unsupported template node: {template!r}"
    raise TypeError(msg)


def template_from(obj: Any) -> Template:
    if isinstance(obj, (Const, Generated, ListOf, DictOf)):
        return obj
    if callable(obj):
        return Generated(obj)
    if isinstance(obj, dict):
        if len(obj) == 1:
            (key,) = obj
            if isinstance(key, str) and key.startswith("$"):
                return _directive(key, obj[key])
        return DictOf(tuple((str(k), template_from(v)) for k, v in obj.items()))
    if isinstance(obj, (list, tuple)):
        return ListOf(tuple(template_from(item) for item in obj))
    return Const(obj)


def _directive(name: str, arg: Any) -> Generated:
    if name == "$literal":
        return Generated(lambda: copy.deepcopy(arg))
    if name == "$randint":
        lo, hi = _int_pair(name, arg)
        return Generated(lambda: random.randint(lo, hi))
    if name == "$choice":
        if not isinstance(arg, list) or not arg:
            msg = "$choice expects a non-empty list"
            raise ConfigurationError(msg)
        options = list(arg)
        return Generated(lambda: random.choice(options))
    if name == "$uuid":
        return Generated(lambda: str(uuid.uuid4()))
    msg = f"Unknown template directive: {name}"
    raise ConfigurationError(msg)


def _int_pair(name: str, arg: Any) -> tuple[int, int]:
    if (
        not isinstance(arg, list)
        or len(arg) != 2
        or not all(isinstance(v, int) and not isinstance(v, bool) for v in arg)
        or arg[0] > arg[1]
    ):
        msg = f"{name} expects [low, high] integers, got {arg!r}"
        raise ConfigurationError(msg)
    return arg[0], arg[1]
