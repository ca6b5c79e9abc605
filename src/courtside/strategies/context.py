"""
Evaluation context builder.

build_context() projects a GameSnapshot (plus optional per-team stats and the
snapshot captured when an earlier trigger fired) into a flat, read-only set of
named fields that Conditions are evaluated against.

Field naming:
    Condition authors refer to fields by the names in ContextField
    ("currentLead", "q3Differential", "prev_leader_still_leads"). Each name is
    mapped to an attribute of EvaluationContext. Names outside ContextField
    are unsupported and make the condition fail.

Nullable fields:
    Stats-derived fields and odds fields are None when the data is missing.
    They are never defaulted to zero, so conditions over them fail closed.

Spread convention:
    GameSnapshot.spread is the HOME spread. The away spread is -spread. The
    leading/losing team spread is whichever of the two belongs to that side,
    and is None while the score is tied.
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from courtside.ingestion.models import GameSnapshot, parse_clock


class ContextField(str, Enum):
    """Every field a Condition may reference."""
    QUARTER = "quarter"
    TIME_REMAINING = "timeRemaining"
    TIME_REMAINING_SECONDS = "timeRemainingSeconds"
    HOME_SCORE = "homeScore"
    AWAY_SCORE = "awayScore"
    TOTAL_SCORE = "totalScore"
    SCORE_DIFFERENTIAL = "scoreDifferential"
    ABS_SCORE_DIFFERENTIAL = "absScoreDifferential"
    HOME_LEADING = "homeLeading"
    AWAY_LEADING = "awayLeading"
    IS_TIED = "isTied"
    SPREAD = "spread"
    TOTAL = "total"
    STATUS = "status"
    CURRENT_LEAD = "currentLead"
    HALFTIME_LEAD = "halftimeLead"

    Q1_HOME = "q1Home"
    Q1_AWAY = "q1Away"
    Q1_TOTAL = "q1Total"
    Q1_DIFFERENTIAL = "q1Differential"
    Q2_HOME = "q2Home"
    Q2_AWAY = "q2Away"
    Q2_TOTAL = "q2Total"
    Q2_DIFFERENTIAL = "q2Differential"
    Q3_HOME = "q3Home"
    Q3_AWAY = "q3Away"
    Q3_TOTAL = "q3Total"
    Q3_DIFFERENTIAL = "q3Differential"
    Q4_HOME = "q4Home"
    Q4_AWAY = "q4Away"
    Q4_TOTAL = "q4Total"
    Q4_DIFFERENTIAL = "q4Differential"

    HALFTIME_HOME = "halftimeHome"
    HALFTIME_AWAY = "halftimeAway"
    HALFTIME_TOTAL = "halftimeTotal"
    HALFTIME_DIFFERENTIAL = "halftimeDifferential"
    FIRST_HALF_TOTAL = "firstHalfTotal"
    SECOND_HALF_TOTAL = "secondHalfTotal"

    HOME_PLAYER_WIN_PCT = "homePlayerWinPct"
    AWAY_PLAYER_WIN_PCT = "awayPlayerWinPct"
    HOME_PLAYER_PPM = "homePlayerPpm"
    AWAY_PLAYER_PPM = "awayPlayerPpm"
    HOME_PLAYER_GAMES = "homePlayerGames"
    AWAY_PLAYER_GAMES = "awayPlayerGames"
    HOME_PLAYER_FORM_WINS = "homePlayerFormWins"
    AWAY_PLAYER_FORM_WINS = "awayPlayerFormWins"
    WIN_PCT_DIFF = "winPctDiff"
    PPM_DIFF = "ppmDiff"
    EXPERIENCE_DIFF = "experienceDiff"

    LEADING_TEAM_SPREAD = "leadingTeamSpread"
    LOSING_TEAM_SPREAD = "losingTeamSpread"
    LEADING_TEAM_MONEYLINE = "leadingTeamMoneyline"
    LOSING_TEAM_MONEYLINE = "losingTeamMoneyline"
    HOME_SPREAD = "homeSpread"
    AWAY_SPREAD = "awaySpread"
    HOME_MONEYLINE = "homeMoneyline"
    AWAY_MONEYLINE = "awayMoneyline"

    PREV_LEADER_STILL_LEADS = "prev_leader_still_leads"
    PREV_LEADER_CURRENT_SCORE = "prev_leader_current_score"
    PREV_TRAILER_CURRENT_SCORE = "prev_trailer_current_score"
    PREV_LEADER_CURRENT_MARGIN = "prev_leader_current_margin"
    PREV_LEADER_WAS_HOME = "prev_leader_was_home"

    @property
    def attribute(self) -> str:
        """EvaluationContext attribute backing this field."""
        return _ATTRIBUTES[self]

    @classmethod
    def lookup(cls, name: str) -> Optional["ContextField"]:
        """Resolve an authored field name, or None if unsupported."""
        name = _FIELD_ALIASES.get(name, name)
        try:
            return cls(name)
        except ValueError:
            return None


_FIELD_ALIASES = {
    "trailingTeamSpread": "losingTeamSpread",
    "trailingTeamMoneyline": "losingTeamMoneyline",
    "scoreDiff": "scoreDifferential",
}

_ATTRIBUTES = {
    member: re.sub(r"(?<!^)(?=[A-Z])", "_", member.value).lower()
    for member in ContextField
}


@dataclass(frozen=True)
class TeamStats:
    """
    Historical per-team numbers used for head-to-head conditions.

    Attributes:
        team_id: Upstream team id
        win_rate: Win percentage, 0-100
        avg_points_for: Average points scored per game
        games_played: Number of games on record
        recent_form: Most recent results, e.g. ("W", "L", "W")
    """
    team_id: str
    name: str = ""
    win_rate: Optional[float] = None
    avg_points_for: Optional[float] = None
    games_played: Optional[int] = None
    recent_form: Optional[tuple[str, ...]] = None

    @property
    def form_wins(self) -> Optional[int]:
        if self.recent_form is None:
            return None
        return sum(1 for result in self.recent_form if result.upper() == "W")


@dataclass(frozen=True)
class MatchupStats:
    """Stats for both sides of a game. Either side may be missing."""
    home: Optional[TeamStats] = None
    away: Optional[TeamStats] = None


@dataclass(frozen=True)
class TriggerSnapshot:
    """Game state captured at the moment a trigger fired."""
    trigger_id: str
    trigger_name: str
    timestamp: float
    quarter: int
    time_remaining: str
    home_score: int
    away_score: int
    leading_team: str
    lead_amount: int
    home_spread: Optional[float] = None
    away_spread: Optional[float] = None
    total_line: Optional[float] = None
    home_moneyline: Optional[float] = None
    away_moneyline: Optional[float] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "trigger_id": self.trigger_id,
            "trigger_name": self.trigger_name,
            "timestamp": self.timestamp,
            "quarter": self.quarter,
            "time_remaining": self.time_remaining,
            "home_score": self.home_score,
            "away_score": self.away_score,
            "leading_team": self.leading_team,
            "lead_amount": self.lead_amount,
            "home_spread": self.home_spread,
            "away_spread": self.away_spread,
            "total_line": self.total_line,
            "home_moneyline": self.home_moneyline,
            "away_moneyline": self.away_moneyline,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TriggerSnapshot":
        return cls(
            trigger_id=str(data.get("trigger_id", "")),
            trigger_name=str(data.get("trigger_name", "")),
            timestamp=float(data.get("timestamp", 0.0)),
            quarter=int(data.get("quarter", 0)),
            time_remaining=str(data.get("time_remaining", "0:00")),
            home_score=int(data.get("home_score", 0)),
            away_score=int(data.get("away_score", 0)),
            leading_team=str(data.get("leading_team", "tie")),
            lead_amount=int(data.get("lead_amount", 0)),
            home_spread=data.get("home_spread"),
            away_spread=data.get("away_spread"),
            total_line=data.get("total_line"),
            home_moneyline=data.get("home_moneyline"),
            away_moneyline=data.get("away_moneyline"),
        )


def capture_trigger_snapshot(
    trigger_id: str,
    trigger_name: str,
    game: GameSnapshot,
    now: Optional[float] = None,
) -> TriggerSnapshot:
    """Capture the current game state for a trigger that just fired."""
    return TriggerSnapshot(
        trigger_id=trigger_id,
        trigger_name=trigger_name,
        timestamp=time.time() if now is None else now,
        quarter=game.quarter,
        time_remaining=game.time_remaining,
        home_score=game.home_score,
        away_score=game.away_score,
        leading_team=game.leading_side,
        lead_amount=abs(game.score_differential),
        home_spread=game.spread,
        away_spread=-game.spread if game.spread is not None else None,
        total_line=game.total,
        home_moneyline=game.ml_home,
        away_moneyline=game.ml_away,
    )


@dataclass(frozen=True)
class EvaluationContext:
    """
    Read-only projection of a game snapshot.

    Never construct directly outside build_context(). Use get() with a
    ContextField to read values by authored name.
    """
    quarter: int
    time_remaining: str
    time_remaining_seconds: int
    home_score: int
    away_score: int
    total_score: int
    score_differential: int
    abs_score_differential: int
    home_leading: bool
    away_leading: bool
    is_tied: bool
    spread: Optional[float]
    total: Optional[float]
    status: str
    current_lead: int
    halftime_lead: int

    q1_home: int
    q1_away: int
    q1_total: int
    q1_differential: int
    q2_home: int
    q2_away: int
    q2_total: int
    q2_differential: int
    q3_home: int
    q3_away: int
    q3_total: int
    q3_differential: int
    q4_home: int
    q4_away: int
    q4_total: int
    q4_differential: int

    halftime_home: int
    halftime_away: int
    halftime_total: int
    halftime_differential: int
    first_half_total: int
    second_half_total: int

    home_player_win_pct: Optional[float] = None
    away_player_win_pct: Optional[float] = None
    home_player_ppm: Optional[float] = None
    away_player_ppm: Optional[float] = None
    home_player_games: Optional[int] = None
    away_player_games: Optional[int] = None
    home_player_form_wins: Optional[int] = None
    away_player_form_wins: Optional[int] = None
    win_pct_diff: Optional[float] = None
    ppm_diff: Optional[float] = None
    experience_diff: Optional[int] = None

    leading_team_spread: Optional[float] = None
    losing_team_spread: Optional[float] = None
    leading_team_moneyline: Optional[float] = None
    losing_team_moneyline: Optional[float] = None
    home_spread: Optional[float] = None
    away_spread: Optional[float] = None
    home_moneyline: Optional[float] = None
    away_moneyline: Optional[float] = None

    prev_leader_still_leads: Optional[int] = None
    prev_leader_current_score: Optional[int] = None
    prev_trailer_current_score: Optional[int] = None
    prev_leader_current_margin: Optional[int] = None
    prev_leader_was_home: Optional[int] = None

    def get(self, context_field: ContextField) -> Any:
        return getattr(self, context_field.attribute)

    def as_dict(self) -> dict[str, Any]:
        """Values keyed by authored field name."""
        return {member.value: self.get(member) for member in ContextField}


def _diff(a: Optional[float], b: Optional[float]) -> Optional[float]:
    if a is None or b is None:
        return None
    return a - b


def _prev_leader_fields(game: GameSnapshot, prior: Optional[TriggerSnapshot]) -> dict[str, Any]:
    if prior is None or prior.leading_team not in ("home", "away"):
        return {}

    was_home = prior.leading_team == "home"
    leader_score = game.home_score if was_home else game.away_score
    trailer_score = game.away_score if was_home else game.home_score
    margin = leader_score - trailer_score
    return {
        "prev_leader_still_leads": 1 if margin > 0 else 0,
        "prev_leader_current_score": leader_score,
        "prev_trailer_current_score": trailer_score,
        "prev_leader_current_margin": margin,
        "prev_leader_was_home": 1 if was_home else 0,
    }


def build_context(
    game: GameSnapshot,
    stats: Optional[MatchupStats] = None,
    prior: Optional[TriggerSnapshot] = None,
) -> EvaluationContext:
    """
    Build the evaluation context for a game.

    Args:
        game: Current snapshot
        stats: Optional per-team history; missing sides yield None fields
        prior: Snapshot captured when the strategy's previous trigger fired
            for this game. Enables the prev_leader_* fields.

    Returns:
        A new immutable EvaluationContext
    """
    diff = game.home_score - game.away_score
    home_leading = diff > 0
    away_leading = diff < 0
    halftime_diff = game.halftime_home - game.halftime_away

    home_spread = game.spread
    away_spread = -home_spread if home_spread is not None else None

    leading_spread = losing_spread = None
    leading_ml = losing_ml = None
    if home_leading:
        leading_spread, losing_spread = home_spread, away_spread
        leading_ml, losing_ml = game.ml_home, game.ml_away
    elif away_leading:
        leading_spread, losing_spread = away_spread, home_spread
        leading_ml, losing_ml = game.ml_away, game.ml_home

    home = stats.home if stats else None
    away = stats.away if stats else None
    home_win_pct = home.win_rate if home else None
    away_win_pct = away.win_rate if away else None
    home_ppm = home.avg_points_for if home else None
    away_ppm = away.avg_points_for if away else None
    home_games = home.games_played if home else None
    away_games = away.games_played if away else None

    return EvaluationContext(
        quarter=game.quarter,
        time_remaining=game.time_remaining,
        time_remaining_seconds=parse_clock(game.time_remaining),
        home_score=game.home_score,
        away_score=game.away_score,
        total_score=game.home_score + game.away_score,
        score_differential=diff,
        abs_score_differential=abs(diff),
        home_leading=home_leading,
        away_leading=away_leading,
        is_tied=diff == 0,
        spread=game.spread,
        total=game.total,
        status=game.status.value,
        current_lead=abs(diff),
        halftime_lead=abs(halftime_diff),
        q1_home=game.q1_home,
        q1_away=game.q1_away,
        q1_total=game.q1_home + game.q1_away,
        q1_differential=game.q1_home - game.q1_away,
        q2_home=game.q2_home,
        q2_away=game.q2_away,
        q2_total=game.q2_home + game.q2_away,
        q2_differential=game.q2_home - game.q2_away,
        q3_home=game.q3_home,
        q3_away=game.q3_away,
        q3_total=game.q3_home + game.q3_away,
        q3_differential=game.q3_home - game.q3_away,
        q4_home=game.q4_home,
        q4_away=game.q4_away,
        q4_total=game.q4_home + game.q4_away,
        q4_differential=game.q4_home - game.q4_away,
        halftime_home=game.halftime_home,
        halftime_away=game.halftime_away,
        halftime_total=game.halftime_home + game.halftime_away,
        halftime_differential=halftime_diff,
        first_half_total=game.q1_home + game.q1_away + game.q2_home + game.q2_away,
        second_half_total=game.q3_home + game.q3_away + game.q4_home + game.q4_away,
        home_player_win_pct=home_win_pct,
        away_player_win_pct=away_win_pct,
        home_player_ppm=home_ppm,
        away_player_ppm=away_ppm,
        home_player_games=home_games,
        away_player_games=away_games,
        home_player_form_wins=home.form_wins if home else None,
        away_player_form_wins=away.form_wins if away else None,
        win_pct_diff=_diff(home_win_pct, away_win_pct),
        ppm_diff=_diff(home_ppm, away_ppm),
        experience_diff=_diff(home_games, away_games),
        leading_team_spread=leading_spread,
        losing_team_spread=losing_spread,
        leading_team_moneyline=leading_ml,
        losing_team_moneyline=losing_ml,
        home_spread=home_spread,
        away_spread=away_spread,
        home_moneyline=game.ml_home,
        away_moneyline=game.ml_away,
        **_prev_leader_fields(game, prior),
    )
