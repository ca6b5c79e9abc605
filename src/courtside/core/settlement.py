"""
Settlement of placed bets.

settle() is a pure function of the signal's captured entry data and the final
score, so repeated calls always produce the same result.

Raw outcome, by odds type:
    spread       bet team margin + line > 0 win, == 0 push, < 0 loss
    moneyline    bet team wins -> win, tie -> push, else loss
    total_over   combined > line win, == push, < loss
    total_under  combined < line win, == push, > loss

Win requirements override: if any requirement fails the result is a loss.
Without an odds requirement the result comes from win requirements alone
(all pass -> win), and is a push when there are none.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from courtside.strategies.models import OddsType, WinRequirement, WinRequirementType

from .signals import SettlementResult, Signal


@dataclass(frozen=True)
class RequirementCheck:
    requirement: WinRequirement
    passed: bool
    reason: str


@dataclass(frozen=True)
class Settlement:
    result: SettlementResult
    summary: str
    requirement_checks: tuple[RequirementCheck, ...] = ()


def _winner(final_home: int, final_away: int) -> str:
    if final_home > final_away:
        return "home"
    if final_away > final_home:
        return "away"
    return "tie"


def check_win_requirement(
    requirement: WinRequirement,
    final_home: int,
    final_away: int,
    leading_at_trigger: Optional[str],
) -> RequirementCheck:
    """Evaluate one win requirement against the final score."""
    winner = _winner(final_home, final_away)
    home_margin = final_home - final_away
    kind = requirement.requirement_type

    if kind == WinRequirementType.LEADING_TEAM_WINS:
        if leading_at_trigger not in ("home", "away"):
            return RequirementCheck(requirement, False, "no leading team recorded at trigger")
        passed = winner == leading_at_trigger
        return RequirementCheck(requirement, passed, f"leader {leading_at_trigger}, winner {winner}")

    if kind == WinRequirementType.HOME_WINS:
        return RequirementCheck(requirement, winner == "home", f"winner {winner}")

    if kind == WinRequirementType.AWAY_WINS:
        return RequirementCheck(requirement, winner == "away", f"winner {winner}")

    threshold = requirement.value if requirement.value is not None else 0
    if leading_at_trigger in ("home", "away"):
        margin = home_margin if leading_at_trigger == "home" else -home_margin
    else:
        margin = abs(home_margin)

    if kind == WinRequirementType.FINAL_LEAD_GTE:
        return RequirementCheck(requirement, margin >= threshold, f"final margin {margin} >= {threshold}")

    if kind == WinRequirementType.FINAL_LEAD_LTE:
        return RequirementCheck(requirement, margin <= threshold, f"final margin {margin} <= {threshold}")

    return RequirementCheck(requirement, False, f"unknown requirement {kind}")


def _compare(value: float) -> SettlementResult:
    if value > 0:
        return SettlementResult.WIN
    if value < 0:
        return SettlementResult.LOSS
    return SettlementResult.PUSH


def raw_outcome(
    odds_type: OddsType,
    final_home: int,
    final_away: int,
    bet_team: Optional[str],
    line: Optional[float],
) -> Optional[SettlementResult]:
    """Outcome from the odds alone, or None if inputs are missing."""
    if odds_type in (OddsType.TOTAL_OVER, OddsType.TOTAL_UNDER):
        if line is None:
            return None
        combined = final_home + final_away
        if odds_type == OddsType.TOTAL_OVER:
            return _compare(combined - line)
        return _compare(line - combined)

    if bet_team not in ("home", "away"):
        return None
    margin = final_home - final_away if bet_team == "home" else final_away - final_home

    if odds_type == OddsType.SPREAD:
        if line is None:
            return None
        return _compare(margin + line)

    return _compare(margin)


def settle(
    signal: Signal,
    final_home: int,
    final_away: int,
    win_requirements: Optional[Sequence[WinRequirement]] = None,
) -> Settlement:
    """
    Settle a placed bet.

    Args:
        signal: Signal in bet_taken with its captured odds
        final_home: Final home score
        final_away: Final away score
        win_requirements: Overrides the requirements stored on the signal

    Returns:
        Settlement with the result and a human-readable summary
    """
    requirements = tuple(win_requirements if win_requirements is not None else signal.win_requirements)
    checks = tuple(
        check_win_requirement(r, final_home, final_away, signal.leading_team_at_trigger)
        for r in requirements
    )
    failed = [c for c in checks if not c.passed]

    if signal.odds_requirement is None:
        if not checks:
            return Settlement(SettlementResult.PUSH, "no odds or win requirements defined")
        if failed:
            return Settlement(
                SettlementResult.LOSS,
                f"{len(failed)}/{len(checks)} win requirements failed",
                checks,
            )
        return Settlement(SettlementResult.WIN, f"all {len(checks)} win requirements passed", checks)

    odds_type = signal.odds_requirement.odds_type
    outcome = raw_outcome(odds_type, final_home, final_away, signal.bet_team, signal.observed_odds)
    if outcome is None:
        outcome = SettlementResult.PUSH
        summary = f"{odds_type.value}: missing bet data, graded push"
    else:
        summary = (
            f"{odds_type.value} {signal.observed_odds} on {signal.bet_team or 'total'}: "
            f"final {final_away}-{final_home} -> {outcome.value}"
        )

    if failed:
        reasons = "; ".join(c.reason for c in failed)
        return Settlement(SettlementResult.LOSS, f"{summary}; win requirement failed ({reasons})", checks)

    return Settlement(outcome, summary, checks)
