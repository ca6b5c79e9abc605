"""
Strategy model.

A Strategy is a named, ordered collection of Triggers plus optional gating
Rules, an optional OddsRequirement and optional WinRequirements. Everything
here is immutable: strategies are reloaded wholesale by the repository and
shared read-only across concurrent evaluation passes.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class ConditionOperator(str, Enum):
    """Comparison operator for a Condition."""
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    GREATER_THAN_OR_EQUAL = "greater_than_or_equal"
    LESS_THAN_OR_EQUAL = "less_than_or_equal"
    BETWEEN = "between"
    CONTAINS = "contains"

    @classmethod
    def parse(cls, value: str) -> "ConditionOperator":
        text = str(value).strip().lower()
        text = _OPERATOR_ALIASES.get(text, text)
        return cls(text)


_OPERATOR_ALIASES = {
    "=": "equals",
    "==": "equals",
    "eq": "equals",
    "!=": "not_equals",
    "ne": "not_equals",
    ">": "greater_than",
    "gt": "greater_than",
    "<": "less_than",
    "lt": "less_than",
    ">=": "greater_than_or_equal",
    "gte": "greater_than_or_equal",
    "<=": "less_than_or_equal",
    "lte": "less_than_or_equal",
}


class TriggerRole(str, Enum):
    """Whether a trigger opens a signal or advances it to odds-watching."""
    ENTRY = "entry"
    CLOSE = "close"


class TriggerMode(str, Enum):
    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"


class OddsType(str, Enum):
    SPREAD = "spread"
    MONEYLINE = "moneyline"
    TOTAL_OVER = "total_over"
    TOTAL_UNDER = "total_under"


class BetSide(str, Enum):
    """Which side of the game the odds requirement refers to."""
    LEADING_TEAM = "leading_team"
    TRAILING_TEAM = "trailing_team"
    HOME = "home"
    AWAY = "away"

    @classmethod
    def parse(cls, value: str) -> "BetSide":
        text = str(value).strip().lower()
        if text in ("losing_team", "trailing"):
            return cls.TRAILING_TEAM
        if text == "leading":
            return cls.LEADING_TEAM
        return cls(text)


class RuleType(str, Enum):
    FIRST_HALF_ONLY = "first_half_only"
    SECOND_HALF_ONLY = "second_half_only"
    SPECIFIC_QUARTER = "specific_quarter"
    EXCLUDE_OVERTIME = "exclude_overtime"
    STOP_AT = "stop_at"
    MINIMUM_SCORE = "minimum_score"


class WinRequirementType(str, Enum):
    LEADING_TEAM_WINS = "leading_team_wins"
    HOME_WINS = "home_wins"
    AWAY_WINS = "away_wins"
    FINAL_LEAD_GTE = "final_lead_gte"
    FINAL_LEAD_LTE = "final_lead_lte"


@dataclass(frozen=True)
class Condition:
    """
    A single field comparison.

    Attributes:
        field: Context field name, e.g. "currentLead"
        operator: Comparison operator
        value: Operand (number, string or bool)
        value2: Upper bound for BETWEEN
    """
    field: str
    operator: ConditionOperator
    value: Any = None
    value2: Any = None

    def describe(self) -> str:
        if self.operator == ConditionOperator.BETWEEN:
            return f"{self.field} between {self.value} and {self.value2}"
        return f"{self.field} {self.operator.value} {self.value}"


@dataclass(frozen=True)
class Trigger:
    """
    An ordered, AND-combined set of conditions within a strategy.

    A trigger with no conditions never fires.
    """
    id: str
    name: str
    order: int = 0
    role: TriggerRole = TriggerRole.ENTRY
    conditions: tuple[Condition, ...] = ()


@dataclass(frozen=True)
class OddsRequirement:
    """Threshold a watching signal must reach before the bet is taken."""
    odds_type: OddsType
    bet_side: BetSide
    value: float


@dataclass(frozen=True)
class Rule:
    """Gating rule. value is the quarter, "Q4 2:20" clock or score threshold."""
    rule_type: RuleType
    value: Any = None


@dataclass(frozen=True)
class WinRequirement:
    requirement_type: WinRequirementType
    value: Optional[float] = None


@dataclass(frozen=True)
class Strategy:
    """
    A configured betting strategy.

    Attributes:
        id: Record id
        name: Display name
        triggers: Triggers, any order (see sorted_triggers)
        mode: Sequential or parallel trigger evaluation
        is_active: Inactive strategies are skipped entirely
        odds_requirement: Optional odds threshold checked while watching
        rules: Gating rules, all must pass
        win_requirements: Extra settlement conditions
        expiry_cutoff_seconds: Q4 clock cutoff override for watching signals
        discord_webhooks: Strategy-specific alert destinations
    """
    id: str
    name: str
    triggers: tuple[Trigger, ...] = ()
    mode: TriggerMode = TriggerMode.SEQUENTIAL
    is_active: bool = True
    odds_requirement: Optional[OddsRequirement] = None
    rules: tuple[Rule, ...] = ()
    win_requirements: tuple[WinRequirement, ...] = ()
    expiry_cutoff_seconds: Optional[int] = None
    discord_webhooks: tuple[str, ...] = ()
    description: str = ""

    @property
    def sorted_triggers(self) -> list[Trigger]:
        return sorted(self.triggers, key=lambda t: t.order)

    @property
    def entry_triggers(self) -> list[Trigger]:
        return [t for t in self.sorted_triggers if t.role == TriggerRole.ENTRY]

    @property
    def close_triggers(self) -> list[Trigger]:
        return [t for t in self.sorted_triggers if t.role == TriggerRole.CLOSE]

    @property
    def has_close_trigger(self) -> bool:
        return any(t.role == TriggerRole.CLOSE for t in self.triggers)

    def trigger_by_id(self, trigger_id: str) -> Optional[Trigger]:
        for trigger in self.triggers:
            if trigger.id == trigger_id:
                return trigger
        return None
