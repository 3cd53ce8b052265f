"""Condition Evaluator - Safe evaluation of step inclusion conditions"""
import math
import operator
from typing import Any, Callable, Dict, List, Mapping, Tuple

from ..domain.models import InstanceStep, WorkflowStep
from ..domain.enums import ConditionOperator
from ..domain.errors import InvalidConditionError, MissingFactError
from ..utils.logger import get_logger

logger = get_logger(__name__)

_COMPARATORS: Dict[ConditionOperator, Callable[[float, float], bool]] = {
    ConditionOperator.GREATER_THAN_OR_EQUALS: operator.ge,
    ConditionOperator.LESS_THAN_OR_EQUALS: operator.le,
    ConditionOperator.EQUALS: operator.eq,
    ConditionOperator.GREATER_THAN: operator.gt,
    ConditionOperator.LESS_THAN: operator.lt,
}


class ConditionEvaluator:
    """
    Evaluate step conditions against an instance fact set

    Grammar is an operator (>, <, >=, <=, ==) directly followed by a
    numeric literal, e.g. ">7". No eval() or exec().
    """

    def included(self, step: WorkflowStep, facts: Mapping[str, Any]) -> bool:
        """
        Decide whether a step applies to an instance

        Args:
            step: Step carrying an optional condition
            facts: Instance fact set

        Returns:
            True if the step has no condition or the condition holds

        Raises:
            MissingFactError: The condition's fact is not in the fact set
            InvalidConditionError: Unknown operator, bad literal or non-numeric fact
        """
        if not step.has_condition:
            return True

        op, literal = self.parse(step.condition_value, step)
        if step.condition_field not in facts:
            raise MissingFactError(
                f"Fact '{step.condition_field}' required by step {step.step_order} was not supplied",
                details={"step_order": step.step_order, "fact": step.condition_field}
            )
        value = self._numeric_fact(step, facts[step.condition_field])
        return _COMPARATORS[op](value, literal)

    def parse(self, expression: Any, step: WorkflowStep) -> Tuple[ConditionOperator, float]:
        """Split an expression into its operator and numeric literal"""
        text = str(expression or "").strip()
        # Two-character operators come first in the enum so ">=" is not read as ">"
        for op in ConditionOperator:
            if text.startswith(op.value):
                raw_literal = text[len(op.value):].strip()
                try:
                    literal = float(raw_literal)
                except ValueError:
                    raise InvalidConditionError(
                        f"Condition '{text}' on step {step.step_order} has a non-numeric operand",
                        details={"step_order": step.step_order, "condition": text}
                    )
                if not math.isfinite(literal):
                    raise InvalidConditionError(
                        f"Condition '{text}' on step {step.step_order} has a non-finite operand",
                        details={"step_order": step.step_order, "condition": text}
                    )
                return op, literal

        raise InvalidConditionError(
            f"Condition '{text}' on step {step.step_order} uses an unknown operator",
            details={
                "step_order": step.step_order,
                "condition": text,
                "allowed_operators": [op.value for op in ConditionOperator],
            }
        )

    def _numeric_fact(self, step: WorkflowStep, value: Any) -> float:
        if isinstance(value, bool):
            raise InvalidConditionError(
                f"Fact '{step.condition_field}' must be numeric, got a boolean",
                details={"step_order": step.step_order, "fact": step.condition_field}
            )
        try:
            number = float(value)
        except (TypeError, ValueError):
            raise InvalidConditionError(
                f"Fact '{step.condition_field}' must be numeric, got {value!r}",
                details={"step_order": step.step_order, "fact": step.condition_field}
            )
        if not math.isfinite(number):
            raise InvalidConditionError(
                f"Fact '{step.condition_field}' must be a finite number",
                details={"step_order": step.step_order, "fact": step.condition_field}
            )
        return number

    def build_inclusion(
        self,
        steps: List[WorkflowStep],
        facts: Mapping[str, Any],
    ) -> List[InstanceStep]:
        """Evaluate every step once and return the ordered instance snapshot"""
        snapshot = []
        for step in sorted(steps, key=lambda s: s.step_order):
            included = self.included(step, facts)
            snapshot.append(InstanceStep(**step.model_dump(), included=included))

        logger.debug(
            "Computed step inclusion",
            extra={"step_order": [s.step_order for s in snapshot if s.included]}
        )
        return snapshot
