"""
Strategy gating rules.

Rules decide whether a strategy may run at all against the current game
state. They are checked in declaration order and the first failing rule
stops the check.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from courtside.ingestion.models import GameSnapshot

from .models import Rule, RuleType

logger = logging.getLogger(__name__)

_STOP_AT_PATTERN = re.compile(r"Q(\d+)\s+(\d+):(\d+)", re.IGNORECASE)


@dataclass(frozen=True)
class RuleCheck:
    passed: bool
    failed_rule: Optional[Rule] = None
    reason: str = ""


def parse_stop_at(value: Any) -> Optional[tuple[int, int]]:
    """
    Parse a "Q4 2:20" stop-at value.

    Returns:
        (quarter, seconds_remaining) or None if the value is malformed
    """
    if not isinstance(value, str):
        return None
    match = _STOP_AT_PATTERN.search(value)
    if not match:
        return None
    quarter, minutes, seconds = (int(g) for g in match.groups())
    return quarter, minutes * 60 + seconds


def _as_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def check_rule(rule: Rule, game: GameSnapshot) -> Optional[str]:
    """Return a failure reason, or None if the rule allows the game state."""
    quarter = game.quarter

    if rule.rule_type == RuleType.FIRST_HALF_ONLY:
        if quarter > 2:
            return f"first_half_only: game is in Q{quarter}"

    elif rule.rule_type == RuleType.SECOND_HALF_ONLY:
        if quarter < 3:
            return f"second_half_only: game is in Q{quarter}"

    elif rule.rule_type == RuleType.SPECIFIC_QUARTER:
        required = _as_int(rule.value)
        if required is None:
            return f"specific_quarter: invalid quarter {rule.value!r}"
        if quarter != required:
            return f"specific_quarter: game is in Q{quarter}, requires Q{required}"

    elif rule.rule_type == RuleType.EXCLUDE_OVERTIME:
        if quarter > 4:
            return f"exclude_overtime: game is in Q{quarter}"

    elif rule.rule_type == RuleType.STOP_AT:
        stop_at = parse_stop_at(rule.value)
        if stop_at is None:
            logger.warning(f"Ignoring malformed stop_at value: {rule.value!r}")
            return None
        stop_quarter, stop_seconds = stop_at
        if quarter > stop_quarter:
            return f"stop_at: game is past Q{stop_quarter}"
        if quarter == stop_quarter and game.clock_seconds < stop_seconds:
            return f"stop_at: passed {rule.value} ({game.time_remaining} remaining)"

    elif rule.rule_type == RuleType.MINIMUM_SCORE:
        threshold = _as_int(rule.value)
        if threshold is None:
            return f"minimum_score: invalid threshold {rule.value!r}"
        if game.total_score < threshold:
            return f"minimum_score: total {game.total_score} below {threshold}"

    return None


def passes_rules(rules: Sequence[Rule], game: GameSnapshot) -> RuleCheck:
    """
    Check every rule against the game, stopping at the first failure.

    An empty rule list always passes.
    """
    for rule in rules:
        reason = check_rule(rule, game)
        if reason is not None:
            return RuleCheck(passed=False, failed_rule=rule, reason=reason)
    return RuleCheck(passed=True)
