"""
Strategy Layer - Strategy model and trigger evaluation.

This module provides:
    - Strategy / Trigger / Condition: Structured strategy definitions
    - build_context: Derived evaluation fields for one game
    - evaluate_trigger: AND of a trigger's conditions (fails closed)
    - passes_rules: Strategy-level gates
    - schedule: Sequential/parallel trigger scheduling per strategy

Evaluation never raises on bad data; an unknown field or missing value
simply fails the condition.
"""

from .context import (
    ContextField,
    EvaluationContext,
    MatchupStats,
    TeamStats,
    TriggerSnapshot,
    build_context,
    capture_trigger_snapshot,
)
from .evaluator import TriggerEvaluation, evaluate_condition, evaluate_trigger
from .models import (
    BetSide,
    Condition,
    ConditionOperator,
    OddsRequirement,
    OddsType,
    Rule,
    RuleType,
    Strategy,
    Trigger,
    TriggerMode,
    TriggerRole,
    WinRequirement,
    WinRequirementType,
)
from .rules import RuleCheck, check_rule, passes_rules
from .scheduler import ScheduleResult, SignalProgress, TriggerFire, schedule

__all__ = [
    # Models
    "BetSide",
    "Condition",
    "ConditionOperator",
    "OddsRequirement",
    "OddsType",
    "Rule",
    "RuleType",
    "Strategy",
    "Trigger",
    "TriggerMode",
    "TriggerRole",
    "WinRequirement",
    "WinRequirementType",
    # Context
    "ContextField",
    "EvaluationContext",
    "MatchupStats",
    "TeamStats",
    "TriggerSnapshot",
    "build_context",
    "capture_trigger_snapshot",
    # Evaluation
    "TriggerEvaluation",
    "evaluate_condition",
    "evaluate_trigger",
    "RuleCheck",
    "check_rule",
    "passes_rules",
    # Scheduling
    "ScheduleResult",
    "SignalProgress",
    "TriggerFire",
    "schedule",
]
