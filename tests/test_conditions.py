"""
Tests for vetguard.conditions -- attribute-based condition evaluation.

Covers: every operator, ``${name}`` substitution, AND semantics with
first-failure reporting, and fail-closed handling of unknown operators,
non-collection operands, incomparable values and missing context keys.
"""

from __future__ import annotations

import pytest

from vetguard.conditions import ConditionResult, evaluate_condition, evaluate_conditions
from vetguard.models import Condition


def _cond(field: str, operator: str, value) -> Condition:
    return Condition(field=field, operator=operator, value=value)


# ---------------------------------------------------------------------------
# 1. Operators
# ---------------------------------------------------------------------------

class TestOperators:
    @pytest.mark.parametrize(
        "operator,value,actual,expected",
        [
            ("equals", "a", "a", True),
            ("equals", "a", "b", False),
            ("not_equals", "a", "b", True),
            ("not_equals", "a", "a", False),
            ("in", ["a", "b"], "a", True),
            ("in", ["a", "b"], "c", False),
            ("not_in", ["a", "b"], "c", True),
            ("not_in", ["a", "b"], "a", False),
            ("greater_than", 5, 6, True),
            ("greater_than", 5, 5, False),
            ("less_than", 5, 4, True),
            ("less_than", 5, 5, False),
        ],
    )
    def test_operator(self, operator, value, actual, expected):
        result = evaluate_condition(_cond("x", operator, value), {"x": actual})
        assert result.passed is expected

    def test_strict_equality_between_types(self):
        result = evaluate_condition(_cond("ownerId", "equals", 42), {"ownerId": "42"})
        assert result.passed is False

    def test_in_accepts_tuple_and_set(self):
        assert evaluate_condition(_cond("x", "in", ("a",)), {"x": "a"}).passed is True
        assert evaluate_condition(_cond("x", "in", {"a"}), {"x": "a"}).passed is True


# ---------------------------------------------------------------------------
# 2. Variable substitution
# ---------------------------------------------------------------------------

class TestSubstitution:
    def test_owner_matches_user(self):
        result = evaluate_condition(
            _cond("ownerId", "equals", "${userId}"), {"userId": "42", "ownerId": "42"}
        )
        assert result == ConditionResult(True)

    def test_owner_differs_reports_resolved_value(self):
        result = evaluate_condition(
            _cond("ownerId", "equals", "${userId}"), {"userId": "42", "ownerId": "99"}
        )
        assert result.passed is False
        assert result.reason == "ownerId equals 42"

    def test_unresolved_variable_fails_closed(self):
        result = evaluate_condition(_cond("ownerId", "equals", "${userId}"), {"ownerId": None})
        assert result.passed is False
        assert "${userId}" in result.reason

    def test_substituted_list_used_for_in(self):
        result = evaluate_condition(
            _cond("petId", "in", "${allowedPets}"),
            {"petId": "p1", "allowedPets": ["p1", "p2"]},
        )
        assert result.passed is True


# ---------------------------------------------------------------------------
# 3. Fail closed
# ---------------------------------------------------------------------------

class TestFailClosed:
    def test_unknown_operator(self):
        result = evaluate_condition(_cond("x", "between", [1, 5]), {"x": 3})
        assert result.passed is False
        assert result.reason == "Unknown operator: between"

    @pytest.mark.parametrize("operator", ["in", "not_in"])
    def test_membership_requires_collection(self, operator):
        result = evaluate_condition(_cond("x", operator, "abc"), {"x": "a"})
        assert result.passed is False

    def test_incomparable_values(self):
        result = evaluate_condition(_cond("age", "greater_than", 5), {"age": "old"})
        assert result.passed is False

    def test_none_ordering(self):
        result = evaluate_condition(_cond("age", "less_than", 5), {"age": None})
        assert result.passed is False

    def test_missing_field(self):
        result = evaluate_condition(_cond("ownerId", "not_equals", "7"), {"userId": "7"})
        assert result.passed is False

    def test_unhashable_member_of_set(self):
        result = evaluate_condition(_cond("x", "in", {"a"}), {"x": ["a"]})
        assert result.passed is False


# ---------------------------------------------------------------------------
# 4. AND semantics
# ---------------------------------------------------------------------------

class TestConjunction:
    def test_empty_passes(self):
        assert evaluate_conditions([], {}).passed is True

    def test_all_must_pass(self):
        conditions = [
            _cond("ownerId", "equals", "${userId}"),
            _cond("status", "in", ["active"]),
        ]
        context = {"userId": "1", "ownerId": "1", "status": "archived"}
        result = evaluate_conditions(conditions, context)
        assert result.passed is False
        assert result.reason.startswith("status in")

    def test_stops_at_first_failure(self):
        conditions = [
            _cond("a", "equals", 1),
            _cond("b", "between", 2),
        ]
        result = evaluate_conditions(conditions, {"a": 0, "b": 2})
        assert result.reason == "a equals 1"
