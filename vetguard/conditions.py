"""
Attribute-based condition evaluation.

Conditions attached to a granted permission are ANDed.  Evaluation stops
at the first failing condition and reports it.  Every malformed input
fails closed: an unknown operator, a non-collection operand for
``in``/``not_in``, values that cannot be ordered, a field missing from
the context, or a ``${name}`` variable the context does not define.
Nothing here raises.
"""

from __future__ import annotations

import logging
import operator
from typing import Any, Callable, Iterable, Mapping, NamedTuple, Optional

from vetguard.models import Condition, ConditionOperator

logger = logging.getLogger(__name__)

_COLLECTION_TYPES = (list, tuple, set, frozenset)


class ConditionResult(NamedTuple):
    passed: bool
    reason: Optional[str] = None


def _is_variable(value: Any) -> bool:
    return isinstance(value, str) and value.startswith("${") and value.endswith("}")


def _contains(collection: Any, item: Any) -> bool:
    if not isinstance(collection, _COLLECTION_TYPES):
        raise TypeError(f"expected a collection, got {type(collection).__name__}")
    return item in collection


_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    ConditionOperator.EQUALS.value: operator.eq,
    ConditionOperator.NOT_EQUALS.value: operator.ne,
    ConditionOperator.IN.value: lambda actual, expected: _contains(expected, actual),
    ConditionOperator.NOT_IN.value: lambda actual, expected: not _contains(expected, actual),
    ConditionOperator.GREATER_THAN.value: operator.gt,
    ConditionOperator.LESS_THAN.value: operator.lt,
}


def evaluate_condition(condition: Condition, context: Mapping[str, Any]) -> ConditionResult:
    """Evaluate one condition against ``context``."""
    compare = _OPERATORS.get(condition.operator)
    if compare is None:
        return ConditionResult(False, f"Unknown operator: {condition.operator}")

    expected = condition.value
    if _is_variable(expected):
        name = expected[2:-1]
        if name not in context:
            return ConditionResult(False, f"{condition.field}: unresolved variable {expected}")
        expected = context[name]

    failure = f"{condition.field} {condition.operator} {expected}"
    if condition.field not in context:
        return ConditionResult(False, failure)

    try:
        passed = bool(compare(context[condition.field], expected))
    except TypeError as exc:
        logger.debug("Condition %s could not be compared: %s", failure, exc)
        passed = False
    return ConditionResult(True) if passed else ConditionResult(False, failure)


def evaluate_conditions(
    conditions: Iterable[Condition], context: Mapping[str, Any]
) -> ConditionResult:
    """AND all ``conditions``; report the first that fails.

    Args:
        conditions: Conditions of a granted permission.  An empty iterable
            passes.
        context: Flat attribute map, typically
            ``PermissionContext.condition_context()``.

    Returns:
        ``ConditionResult(True)``, or ``ConditionResult(False, reason)``
        where ``reason`` names the failing field, operator and the resolved
        comparison value (e.g. ``"ownerId equals 42"``).
    """
    for condition in conditions:
        result = evaluate_condition(condition, context)
        if not result.passed:
            return result
    return ConditionResult(True)
