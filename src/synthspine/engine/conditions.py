"""
Condition evaluation.

``evaluate`` is a pure function over a closed set of condition variants:
no reflection, no side effects, same answer for the same input. Lists of
conditions are an implicit AND; ``AnyOf`` is the only OR.

Missing and null attributes are the same thing here. Every positive test
on them is false, ``AttributeAbsent`` is true, and ``Negate`` inverts
whatever its inner condition returned.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from numbers import Real
from typing import Any

from synthspine.rules.models import (
    AnyOf,
    AttributeAbsent,
    AttributeCompare,
    AttributeEquals,
    AttributePresent,
    Condition,
    Negate,
)


def _values_equal(actual: Any, expected: Any) -> bool:
    # bool is an int subclass; True must not equal 1
    if isinstance(actual, bool) or isinstance(expected, bool):
        return type(actual) is type(expected) and actual == expected
    return actual == expected


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, Real):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value)
        except ValueError:
            return None
    else:
        return None
    return None if math.isnan(number) else number


def _compare(actual: Any, op: str, expected: float) -> bool:
    number = _as_number(actual)
    if number is None:
        return False
    match op:
        case "gt":
            return number > expected
        case "gte":
            return number >= expected
        case "lt":
            return number < expected
        case "lte":
            return number <= expected
    raise ValueError(f"Unknown comparison operator: {op!r}")


def evaluate(condition: Condition, attributes: Mapping[str, Any]) -> bool:
    """Evaluate one condition against an attribute mapping."""
    if isinstance(condition, Negate):
        return not evaluate(condition.inner, attributes)

    actual = attributes.get(condition.attribute)

    if isinstance(condition, AttributeAbsent):
        return actual is None
    if actual is None:
        return False
    if isinstance(condition, AttributePresent):
        return True
    if isinstance(condition, AttributeEquals):
        return _values_equal(actual, condition.value)
    if isinstance(condition, AnyOf):
        return any(_values_equal(actual, v) for v in condition.values)
    if isinstance(condition, AttributeCompare):
        return _compare(actual, condition.op, condition.value)
    raise TypeError(f"Unknown condition type: {type(condition).__name__}")


def evaluate_all(conditions: Iterable[Condition], attributes: Mapping[str, Any]) -> bool:
    """Implicit AND; an empty list is true."""
    return all(evaluate(c, attributes) for c in conditions)
