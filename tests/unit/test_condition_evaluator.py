"""Tests for step condition evaluation"""
import pytest

from hrflow.domain.enums import ConditionOperator
from hrflow.domain.errors import ConditionError, InvalidConditionError, MissingFactError
from hrflow.domain.models import WorkflowStep
from hrflow.engine import ConditionEvaluator


def _step(condition_value=None, condition_field="days", order=1):
    return WorkflowStep(
        step_order=order,
        step_name=f"Step {order}",
        approver_role="MANAGER",
        condition_field=condition_field if condition_value is not None else None,
        condition_value=condition_value,
    )


@pytest.fixture
def evaluator():
    return ConditionEvaluator()


def test_step_without_condition_is_always_included(evaluator):
    assert evaluator.included(_step(), {}) is True


@pytest.mark.parametrize("days, expected", [(8, True), (7, False), (3, False)])
def test_greater_than_is_strict(evaluator, days, expected):
    assert evaluator.included(_step(">7"), {"days": days}) is expected


@pytest.mark.parametrize(
    "condition, days, expected",
    [
        (">=7", 7, True),
        (">=7", 6.5, False),
        ("<=3", 3, True),
        ("<3", 3, False),
        ("==5", 5, True),
        ("==5", 5.5, False),
    ],
)
def test_operators(evaluator, condition, days, expected):
    assert evaluator.included(_step(condition), {"days": days}) is expected


def test_two_character_operator_is_not_read_as_one(evaluator):
    op, literal = evaluator.parse(">=10", _step(">=10"))
    assert op == ConditionOperator.GREATER_THAN_OR_EQUALS
    assert literal == 10.0


def test_numeric_strings_are_accepted(evaluator):
    assert evaluator.included(_step("> 7"), {"days": "9"}) is True


def test_missing_fact_raises(evaluator):
    with pytest.raises(MissingFactError) as exc_info:
        evaluator.included(_step(">7"), {"amount": 100})
    assert exc_info.value.details["fact"] == "days"


@pytest.mark.parametrize("condition", ["!=7", "7", "~7", "between 1 and 2"])
def test_unknown_operator_raises(evaluator, condition):
    with pytest.raises(InvalidConditionError):
        evaluator.included(_step(condition), {"days": 9})


@pytest.mark.parametrize("condition", [">seven", ">", ">nan", ">inf"])
def test_bad_literal_raises(evaluator, condition):
    with pytest.raises(InvalidConditionError):
        evaluator.included(_step(condition), {"days": 9})


@pytest.mark.parametrize("value", ["many", None, True, [9], float("nan")])
def test_non_numeric_fact_raises(evaluator, value):
    with pytest.raises(InvalidConditionError):
        evaluator.included(_step(">7"), {"days": value})


def test_condition_errors_share_a_parent():
    assert issubclass(MissingFactError, ConditionError)
    assert issubclass(InvalidConditionError, ConditionError)
    assert MissingFactError("x").http_status == 422


def test_build_inclusion_orders_and_flags_steps(evaluator):
    steps = [
        _step(order=3),
        _step(">7", order=1),
        _step("<=2", order=2),
    ]
    snapshot = evaluator.build_inclusion(steps, {"days": 2})

    assert [s.step_order for s in snapshot] == [1, 2, 3]
    assert [s.included for s in snapshot] == [False, True, True]
    assert snapshot[1].condition_value == "<=2"
