"""
Odds requirement checks for watching signals.

Spread convention:
    GameSnapshot.spread is the home spread; the away spread is its negation.
    Both the required value and the observed value are expressed from the bet
    team's own perspective, so "-4.5 on the leading team" means the leader is
    giving 4.5 points, whichever side of the game that is.

Satisfaction direction (observed vs required):
    spread       observed >= required
    moneyline    observed >= required
    total_over   observed <= required
    total_under  observed >= required

Expiry:
    A watching signal expires once the game is in overtime, or in Q4 with
    strictly less than the cutoff remaining (default 2:20 = 140 seconds).
"""

from __future__ import annotations

from typing import Optional

from courtside.ingestion.models import GameSnapshot
from courtside.strategies.models import BetSide, OddsRequirement, OddsType

DEFAULT_EXPIRY_CUTOFF_SECONDS = 140


def is_past_expiry(game: GameSnapshot, cutoff_seconds: int = DEFAULT_EXPIRY_CUTOFF_SECONDS) -> bool:
    if game.quarter > 4:
        return True
    return game.quarter == 4 and game.clock_seconds < cutoff_seconds


def resolve_bet_team(
    side: BetSide,
    game: GameSnapshot,
    leading_at_trigger: Optional[str] = None,
) -> Optional[str]:
    """
    Resolve a bet side to 'home' or 'away'.

    Leading/trailing use the leader recorded when the signal was created.
    If the game was tied then, the current leader is used. Returns None when
    no leader can be determined.
    """
    if side == BetSide.HOME:
        return "home"
    if side == BetSide.AWAY:
        return "away"

    leader = leading_at_trigger if leading_at_trigger in ("home", "away") else None
    if leader is None:
        current = game.leading_side
        leader = current if current != "tie" else None
    if leader is None:
        return None

    if side == BetSide.LEADING_TEAM:
        return leader
    return "away" if leader == "home" else "home"


def observed_odds(odds_type: OddsType, game: GameSnapshot, team: Optional[str]) -> Optional[float]:
    """Current odds value for the requirement, from the bet team's perspective."""
    if odds_type in (OddsType.TOTAL_OVER, OddsType.TOTAL_UNDER):
        return game.total

    if team is None:
        return None

    if odds_type == OddsType.SPREAD:
        if game.spread is None:
            return None
        return game.spread if team == "home" else -game.spread

    if odds_type == OddsType.MONEYLINE:
        return game.ml_home if team == "home" else game.ml_away

    return None


def odds_satisfied(odds_type: OddsType, observed: Optional[float], required: float) -> bool:
    if observed is None:
        return False
    if odds_type == OddsType.TOTAL_OVER:
        return observed <= required
    return observed >= required


def check_odds(
    requirement: OddsRequirement,
    game: GameSnapshot,
    leading_at_trigger: Optional[str] = None,
) -> tuple[bool, Optional[str], Optional[float]]:
    """
    Evaluate an odds requirement against the current game.

    Returns:
        (satisfied, bet_team, observed_value)
    """
    team = None
    if requirement.odds_type in (OddsType.SPREAD, OddsType.MONEYLINE):
        team = resolve_bet_team(requirement.bet_side, game, leading_at_trigger)
    observed = observed_odds(requirement.odds_type, game, team)
    return odds_satisfied(requirement.odds_type, observed, requirement.value), team, observed
