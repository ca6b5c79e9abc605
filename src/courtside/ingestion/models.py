"""
Data models for the ingestion layer.

These models represent:
- GameSnapshot: the authoritative current state of one game
- GameUpdate: a partial update parsed from an inbound webhook payload

Payload Gotchas:
    - The upstream automation sends human-labelled keys ("Home Score ( API )",
      "Time Minutes ( API )") and sometimes snake_case keys. Both are accepted.
    - Updates are PARTIAL. Only keys present in the payload are emitted, so
      merging never clobbers prior values with defaults.
    - Spread is stored home-centric. The away spread is always -spread.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from typing import Any, Optional


class PayloadError(ValueError):
    """Raised when an inbound payload cannot be mapped to a game update."""
    pass


class GameStatus(str, Enum):
    """Lifecycle status of a game."""
    SCHEDULED = "scheduled"
    LIVE = "live"
    HALFTIME = "halftime"
    FINAL = "final"

    @classmethod
    def parse(cls, value: Any) -> "GameStatus":
        text = str(value).strip().lower()
        if text in ("finished", "ended", "complete", "completed"):
            return cls.FINAL
        try:
            return cls(text)
        except ValueError:
            raise PayloadError(f"Unknown game status: {value!r}")


# Status sort priority for list views: closest to completion first
STATUS_PRIORITY = {
    GameStatus.FINAL: 0,
    GameStatus.LIVE: 1,
    GameStatus.HALFTIME: 2,
    GameStatus.SCHEDULED: 3,
}


def parse_clock(time_remaining: Optional[str]) -> int:
    """
    Convert an "M:SS" clock string to seconds.

    Unparseable parts count as zero, so "5:" is 300 and "" is 0.
    """
    if not time_remaining:
        return 0
    minutes, _, seconds = str(time_remaining).partition(":")
    return _int_or_zero(minutes) * 60 + _int_or_zero(seconds)


def format_clock(total_seconds: int) -> str:
    minutes, seconds = divmod(max(int(total_seconds), 0), 60)
    return f"{minutes}:{seconds:02d}"


QUARTER_SECONDS = 12 * 60
OVERTIME_SECONDS = 5 * 60


def period_length(quarter: int) -> int:
    """Full clock for a period; 5+ is overtime."""
    return OVERTIME_SECONDS if quarter >= 5 else QUARTER_SECONDS


def _int_or_zero(text: str) -> int:
    try:
        return int(text.strip())
    except ValueError:
        return 0


def derive_status(quarter: int, clock_seconds: int, home_score: int, away_score: int) -> GameStatus:
    """
    Derive game status from the clock.

    Quarter 0 means the game has not tipped off. Q2 at 0:00 is halftime.
    Q4 or later at 0:00 is final unless the score is level (overtime follows).
    """
    if quarter <= 0:
        return GameStatus.SCHEDULED
    if quarter == 2 and clock_seconds == 0:
        return GameStatus.HALFTIME
    if quarter >= 4 and clock_seconds == 0 and home_score != away_score:
        return GameStatus.FINAL
    return GameStatus.LIVE


@dataclass
class GameSnapshot:
    """
    Latest known state of one game.

    Mutated in place by LiveGameCache.update(). Consumers that need a stable
    view across an await point should take copy() first.

    Attributes:
        id: Event id
        home_score / away_score: Current score
        quarter: Current period (5+ is overtime)
        time_remaining: Game clock as "M:SS"
        spread: Home-centric point spread
        ml_home / ml_away: American moneyline odds
        total: Over/under line
        home_lead / away_lead: Derived, max(0, own - other)
        last_update: Epoch seconds of the last accepted update
    """
    id: str
    league: str = ""
    home_team: str = ""
    away_team: str = ""
    home_team_id: Optional[str] = None
    away_team_id: Optional[str] = None
    home_score: int = 0
    away_score: int = 0
    quarter: int = 0
    time_remaining: str = "0:00"
    status: GameStatus = GameStatus.SCHEDULED
    q1_home: int = 0
    q1_away: int = 0
    q2_home: int = 0
    q2_away: int = 0
    q3_home: int = 0
    q3_away: int = 0
    q4_home: int = 0
    q4_away: int = 0
    halftime_home: int = 0
    halftime_away: int = 0
    final_home: Optional[int] = None
    final_away: Optional[int] = None
    spread: Optional[float] = None
    ml_home: Optional[float] = None
    ml_away: Optional[float] = None
    total: Optional[float] = None
    home_lead: int = 0
    away_lead: int = 0
    created_at: float = 0.0
    last_update: float = 0.0

    @property
    def total_score(self) -> int:
        return self.home_score + self.away_score

    @property
    def score_differential(self) -> int:
        """Signed home-minus-away differential."""
        return self.home_score - self.away_score

    @property
    def leading_side(self) -> str:
        """'home', 'away' or 'tie'."""
        if self.home_score > self.away_score:
            return "home"
        if self.away_score > self.home_score:
            return "away"
        return "tie"

    @property
    def clock_seconds(self) -> int:
        return parse_clock(self.time_remaining)

    @property
    def is_in_play(self) -> bool:
        return self.status in (GameStatus.LIVE, GameStatus.HALFTIME)

    @property
    def matchup(self) -> str:
        return f"{self.away_team or 'Away'} @ {self.home_team or 'Home'}"

    def final_scores(self) -> tuple[int, int]:
        """Final score pair, falling back to the current score."""
        home = self.final_home if self.final_home is not None else self.home_score
        away = self.final_away if self.final_away is not None else self.away_score
        return home, away

    def recompute_leads(self) -> None:
        self.home_lead = max(0, self.home_score - self.away_score)
        self.away_lead = max(0, self.away_score - self.home_score)

    def apply(self, changes: dict[str, Any]) -> None:
        """Merge a partial update onto this snapshot."""
        for name, value in changes.items():
            if name == "id":
                continue
            setattr(self, name, value)
        self.recompute_leads()

    def copy(self) -> "GameSnapshot":
        return GameSnapshot(**{f.name: getattr(self, f.name) for f in fields(self)})

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data


@dataclass
class GameUpdate:
    """
    Partial update for one game, keyed by event id.

    Attributes:
        game_id: Event id
        changes: Snapshot attribute name -> new value, only for keys present
        clock_reported: True when the payload carried clock data
        clock_minutes / clock_secs: One half of a split clock when the other
            half was absent; merged onto the cached clock
    """
    game_id: str
    changes: dict[str, Any] = field(default_factory=dict)
    clock_reported: bool = False
    clock_minutes: Optional[int] = None
    clock_secs: Optional[int] = None

    @property
    def explicit_status(self) -> Optional[GameStatus]:
        return self.changes.get("status")


# Snapshot attribute -> accepted payload keys, first present wins
_STRING_FIELDS: dict[str, tuple[str, ...]] = {
    "league": ("League", "league"),
    "home_team": ("Home Team", "home_team"),
    "away_team": ("Away Team", "away_team"),
    "home_team_id": ("Home Team ID", "Home team ID", "home_team_id"),
    "away_team_id": ("Away Team ID", "away_team_id"),
}

_INT_FIELDS: dict[str, tuple[str, ...]] = {
    "home_score": ("Home Score ( API )", "Home Score", "home_score"),
    "away_score": ("Away Score ( API )", "Away Score", "away_score"),
    "quarter": ("Quarter", "quarter"),
    "q1_home": ("Quarter 1 Home", "q1_home"),
    "q1_away": ("Quarter 1 Away", "q1_away"),
    "q2_home": ("Quarter 2 Home", "q2_home"),
    "q2_away": ("Quarter 2 Away", "q2_away"),
    "q3_home": ("Quarter 3 Home", "q3_home"),
    "q3_away": ("Quarter 3 Away", "q3_away"),
    "q4_home": ("Quarter 4 Home", "q4_home"),
    "q4_away": ("Quarter 4 Away", "q4_away"),
    "halftime_home": ("Halftime Score Home", "halftime_home"),
    "halftime_away": ("Halftime Score Away", "halftime_away"),
    "final_home": ("Final Home", "final_home"),
    "final_away": ("Final Away", "final_away"),
}

_FLOAT_FIELDS: dict[str, tuple[str, ...]] = {
    "spread": ("Spread", "spread"),
    "ml_home": ("ML Home", "ml_home"),
    "ml_away": ("ML Away", "ml_away"),
    "total": ("Total", "total"),
}

_ID_KEYS = ("Event ID", "event_id", "id")
_MINUTES_KEYS = ("Time Minutes ( API )", "Time Minutes", "time_minutes")
_SECONDS_KEYS = ("Time Seconds ( API )", "Time Seconds", "time_seconds")


def _first_present(data: dict[str, Any], keys: tuple[str, ...]) -> tuple[bool, Any]:
    for key in keys:
        if key in data and data[key] is not None and data[key] != "":
            return True, data[key]
    return False, None


def _to_number(name: str, value: Any) -> float:
    if isinstance(value, bool):
        raise PayloadError(f"Field {name} must be numeric, got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise PayloadError(f"Field {name} must be numeric, got {value!r}")
    if math.isnan(number) or math.isinf(number):
        raise PayloadError(f"Field {name} must be finite, got {value!r}")
    return number


def parse_game_update(data: dict[str, Any]) -> GameUpdate:
    """
    Map an inbound webhook payload to a GameUpdate.

    Args:
        data: Raw JSON object from the webhook body

    Returns:
        GameUpdate containing only the fields present in the payload

    Raises:
        PayloadError: If the payload is not an object, has no event id,
            or carries a non-numeric value for a numeric field
    """
    if not isinstance(data, dict):
        raise PayloadError("Game update payload must be a JSON object")

    found, raw_id = _first_present(data, _ID_KEYS)
    if not found or not str(raw_id).strip():
        raise PayloadError("Missing event id")

    update = GameUpdate(game_id=str(raw_id).strip())
    changes = update.changes

    for name, keys in _STRING_FIELDS.items():
        found, value = _first_present(data, keys)
        if found:
            changes[name] = str(value)

    for name, keys in _INT_FIELDS.items():
        found, value = _first_present(data, keys)
        if found:
            changes[name] = int(_to_number(name, value))

    for name, keys in _FLOAT_FIELDS.items():
        found, value = _first_present(data, keys)
        if found:
            changes[name] = _to_number(name, value)

    found_clock, clock = _first_present(data, ("Time Remaining", "time_remaining"))
    found_min, minutes = _first_present(data, _MINUTES_KEYS)
    found_sec, seconds = _first_present(data, _SECONDS_KEYS)
    if found_clock:
        changes["time_remaining"] = format_clock(parse_clock(str(clock)))
    elif found_min and found_sec:
        total = int(_to_number("time_minutes", minutes)) * 60 + int(_to_number("time_seconds", seconds))
        changes["time_remaining"] = format_clock(total)
    elif found_min:
        update.clock_minutes = int(_to_number("time_minutes", minutes))
    elif found_sec:
        update.clock_secs = int(_to_number("time_seconds", seconds))

    found, status = _first_present(data, ("Status", "status"))
    if found:
        changes["status"] = GameStatus.parse(status)

    update.clock_reported = (
        "time_remaining" in changes
        or update.clock_minutes is not None
        or update.clock_secs is not None
    )
    return update
