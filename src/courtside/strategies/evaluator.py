"""
Condition and trigger evaluation.

Evaluation never raises on bad data. A condition fails closed when:
    - the field name is not a ContextField
    - the field value is None (data unavailable)
    - an ordering/between operator sees a non-numeric operand
    - contains sees a non-string operand

Bools are not numbers here: homeLeading > 0 fails, homeLeading equals 1 fails.
Numeric-looking string operands ("5", "-3.5") are coerced when the field is
numeric, because condition values round-trip through JSON columns.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Optional

from .context import ContextField, EvaluationContext
from .models import Condition, ConditionOperator, Trigger

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TriggerEvaluation:
    """Result of evaluating one trigger against one context."""
    trigger: Trigger
    passed: bool
    matched: tuple[Condition, ...] = ()
    failed: tuple[Condition, ...] = ()


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _as_number(value: Any) -> Optional[float]:
    """Numeric operand, coercing numeric strings. None if not numeric."""
    if _is_number(value):
        return value
    if isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
        if math.isnan(number):
            return None
        return number
    return None


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        text = value.strip().lower()
        if text == "true":
            return True
        if text == "false":
            return False
    return None


def _equals(field_value: Any, operand: Any) -> bool:
    if isinstance(field_value, bool):
        return _as_bool(operand) is field_value
    if _is_number(field_value):
        number = _as_number(operand)
        return number is not None and field_value == number
    if isinstance(field_value, str):
        return isinstance(operand, str) and field_value == operand
    return False


def evaluate_condition(condition: Condition, context: EvaluationContext) -> bool:
    """
    Evaluate one condition.

    Args:
        condition: Condition to check
        context: Context built for the current game state

    Returns:
        True only if the field exists, has a value, and the comparison holds
    """
    context_field = ContextField.lookup(condition.field)
    if context_field is None:
        logger.warning(f"Unknown condition field: {condition.field}")
        return False

    field_value = context.get(context_field)
    if field_value is None:
        return False

    operator = condition.operator

    if operator == ConditionOperator.EQUALS:
        return _equals(field_value, condition.value)

    if operator == ConditionOperator.NOT_EQUALS:
        return not _equals(field_value, condition.value)

    if operator == ConditionOperator.CONTAINS:
        return (
            isinstance(field_value, str)
            and isinstance(condition.value, str)
            and condition.value in field_value
        )

    if not _is_number(field_value):
        return False

    operand = _as_number(condition.value)
    if operand is None:
        return False

    if operator == ConditionOperator.GREATER_THAN:
        return field_value > operand
    if operator == ConditionOperator.LESS_THAN:
        return field_value < operand
    if operator == ConditionOperator.GREATER_THAN_OR_EQUAL:
        return field_value >= operand
    if operator == ConditionOperator.LESS_THAN_OR_EQUAL:
        return field_value <= operand
    if operator == ConditionOperator.BETWEEN:
        upper = _as_number(condition.value2)
        if upper is None:
            return False
        return operand <= field_value <= upper

    logger.warning(f"Unsupported operator: {operator}")
    return False


def evaluate_trigger(trigger: Trigger, context: EvaluationContext) -> TriggerEvaluation:
    """
    Evaluate every condition of a trigger (AND semantics).

    A trigger with no conditions never passes. All conditions are evaluated
    even after one fails, so matched/failed are complete for diagnostics.
    """
    if not trigger.conditions:
        logger.warning(f"Trigger '{trigger.name}' has no conditions and will never fire")
        return TriggerEvaluation(trigger=trigger, passed=False)

    matched = []
    failed = []
    for condition in trigger.conditions:
        if evaluate_condition(condition, context):
            matched.append(condition)
        else:
            failed.append(condition)

    return TriggerEvaluation(
        trigger=trigger,
        passed=not failed,
        matched=tuple(matched),
        failed=tuple(failed),
    )
