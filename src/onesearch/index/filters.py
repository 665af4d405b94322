"""
Filter Expressions

A tiny filter AST used everywhere records are selected (deletes, scoped
searches, chunk re-fetches). It is rendered to the backend's filter DSL only
at the backend boundary, and evaluated directly by the in-memory backend.

Rendering
---------
- ``Eq("post_type", "post")``          -> ``post_type:"post"``
- ``Or(Eq(...), Eq(...))``             -> ``A OR B``
- ``And(Or(...), Or(...))``            -> ``(A OR B) AND (C OR D)``
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Tuple, Union


@dataclass(frozen=True)
class Eq:
    field: str
    value: Any


@dataclass(frozen=True)
class Or:
    children: Tuple["Filter", ...]

    def __init__(self, *children: "Filter") -> None:
        object.__setattr__(self, "children", tuple(children))


@dataclass(frozen=True)
class And:
    children: Tuple["Filter", ...]

    def __init__(self, *children: "Filter") -> None:
        object.__setattr__(self, "children", tuple(children))


Filter = Union[Eq, Or, And]


# ---------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------

def any_of(field: str, values: Iterable[Any]) -> Optional[Filter]:
    """OR of equalities; None for no values, a bare Eq for one."""
    terms = [Eq(field, v) for v in values]
    if not terms:
        return None
    if len(terms) == 1:
        return terms[0]
    return Or(*terms)


def all_of(*filters: Optional[Filter]) -> Optional[Filter]:
    """AND of the given filters, skipping None."""
    present = [f for f in filters if f is not None]
    if not present:
        return None
    if len(present) == 1:
        return present[0]
    return And(*present)


# ---------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------

def _render_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def render(expr: Filter) -> str:
    if isinstance(expr, Eq):
        return f"{expr.field}:{_render_value(expr.value)}"
    if isinstance(expr, Or):
        return " OR ".join(render(child) for child in expr.children)
    if isinstance(expr, And):
        return " AND ".join(
            f"({render(child)})" if not isinstance(child, Eq) else render(child)
            for child in expr.children
        )
    raise TypeError(f"Unsupported filter node: {type(expr).__name__}")


# ---------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------

def _lookup(record: Mapping[str, Any], path: str) -> Any:
    value: Any = record
    for part in path.split("."):
        if not isinstance(value, Mapping):
            return None
        value = value.get(part)
    return value


def _equals(actual: Any, expected: Any) -> bool:
    if isinstance(actual, (list, tuple)):
        return any(_equals(a, expected) for a in actual)
    if isinstance(actual, bool) or isinstance(expected, bool):
        return actual is expected or str(actual).lower() == str(expected).lower()
    return actual is not None and str(actual) == str(expected)


def matches(expr: Optional[Filter], record: Mapping[str, Any]) -> bool:
    """Evaluate a filter against one record; no filter matches everything."""
    if expr is None:
        return True
    if isinstance(expr, Eq):
        return _equals(_lookup(record, expr.field), expr.value)
    if isinstance(expr, Or):
        return any(matches(child, record) for child in expr.children)
    if isinstance(expr, And):
        return all(matches(child, record) for child in expr.children)
    raise TypeError(f"Unsupported filter node: {type(expr).__name__}")
