"""Filter expressions for transaction subscriptions.

A filter expression describes which values of an event attribute are
acceptable. The server does the matching; the client only builds the tree
and serializes it.

Wire form:
    {"match": "100"}
    {"not": <expr>}
    {"allOf": [<expr>, ...]}
    {"anyOf": [<expr>, ...]}
    {"oneOf": [<expr>, ...]}

An EventFilter maps an event name to per-attribute expressions, all of which
must hold:
    {"transfer": {"amount": {"match": "100"}, "sender": {"not": {"match": "x"}}}}
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, TypeAlias


@dataclass(frozen=True)
class Match:
    """Attribute value equals `value`."""

    value: str


@dataclass(frozen=True)
class Not:
    """Inner expression must not hold."""

    expr: FilterExpr


@dataclass(frozen=True)
class AllOf:
    """Every child must hold."""

    exprs: tuple[FilterExpr, ...] = ()


@dataclass(frozen=True)
class AnyOf:
    """At least one child must hold."""

    exprs: tuple[FilterExpr, ...] = ()


@dataclass(frozen=True)
class OneOf:
    """Exactly one child must hold."""

    exprs: tuple[FilterExpr, ...] = ()


FilterExpr: TypeAlias = Match | Not | AllOf | AnyOf | OneOf
EventFilter: TypeAlias = Mapping[str, Mapping[str, FilterExpr]]

_GROUPS: dict[str, type[AllOf] | type[AnyOf] | type[OneOf]] = {
    "allOf": AllOf,
    "anyOf": AnyOf,
    "oneOf": OneOf,
}
_GROUP_KEYS = {cls: key for key, cls in _GROUPS.items()}


# =============================================================================
# Constructors
# =============================================================================


def match(value: str) -> Match:
    return Match(str(value))


def not_(expr: FilterExpr) -> Not:
    return Not(_check(expr))


def all_of(*exprs: FilterExpr) -> AllOf:
    return AllOf(_children(exprs))


def any_of(*exprs: FilterExpr) -> AnyOf:
    return AnyOf(_children(exprs))


def one_of(*exprs: FilterExpr) -> OneOf:
    return OneOf(_children(exprs))


def _check(expr: Any) -> FilterExpr:
    if not isinstance(expr, Match | Not | AllOf | AnyOf | OneOf):
        raise TypeError(f"Expected a filter expression, got {type(expr).__name__}")
    return expr


def _children(exprs: Iterable[Any]) -> tuple[FilterExpr, ...]:
    return tuple(_check(e) for e in exprs)


# =============================================================================
# Encoding
# =============================================================================


def encode_filter(expr: FilterExpr) -> dict[str, Any]:
    """Serialize an expression tree to its wire form, preserving child order."""
    if isinstance(expr, Match):
        return {"match": expr.value}
    if isinstance(expr, Not):
        return {"not": encode_filter(expr.expr)}
    if isinstance(expr, AllOf | AnyOf | OneOf):
        return {_GROUP_KEYS[type(expr)]: [encode_filter(e) for e in expr.exprs]}
    raise TypeError(f"Expected a filter expression, got {type(expr).__name__}")


def encode_event_filter(event_filter: EventFilter) -> dict[str, dict[str, Any]]:
    """Serialize one EventFilter (event name -> attribute -> expression)."""
    encoded: dict[str, dict[str, Any]] = {}
    for event_name, attributes in event_filter.items():
        if not isinstance(attributes, Mapping):
            raise TypeError(
                f"Attributes for event {event_name!r} must be a mapping, "
                f"got {type(attributes).__name__}"
            )
        encoded[str(event_name)] = {
            str(attr): encode_filter(expr) for attr, expr in attributes.items()
        }
    return encoded


def decode_filter(data: Any) -> FilterExpr:
    """Parse the wire form back into an expression tree.

    Raises:
        ValueError: If the data is not a well-formed filter expression
    """
    if not isinstance(data, dict) or len(data) != 1:
        raise ValueError(f"Filter expression must be an object with one key: {data!r}")

    key, value = next(iter(data.items()))
    if key == "match":
        if not isinstance(value, str):
            raise ValueError(f"'match' expects a string, got {type(value).__name__}")
        return Match(value)
    if key == "not":
        return Not(decode_filter(value))
    if key in _GROUPS:
        if not isinstance(value, list):
            raise ValueError(f"{key!r} expects a list, got {type(value).__name__}")
        return _GROUPS[key](tuple(decode_filter(v) for v in value))
    raise ValueError(f"Unknown filter operator: {key!r}")


def decode_event_filter(data: Any) -> dict[str, dict[str, FilterExpr]]:
    """Parse one wire-form EventFilter."""
    if not isinstance(data, dict):
        raise ValueError(f"Event filter must be an object: {data!r}")
    decoded: dict[str, dict[str, FilterExpr]] = {}
    for event_name, attributes in data.items():
        if not isinstance(attributes, dict):
            raise ValueError(f"Attributes for event {event_name!r} must be an object")
        decoded[event_name] = {attr: decode_filter(expr) for attr, expr in attributes.items()}
    return decoded
