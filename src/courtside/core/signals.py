"""
Signal records and lifecycle events.

A Signal is the record of one (strategy, game) pairing that has begun
triggering. It is owned by SignalLifecycle; everything handed to sinks is a
copy taken at the moment of the transition.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Optional

from courtside.ingestion.models import GameSnapshot
from courtside.strategies.context import TriggerSnapshot
from courtside.strategies.models import (
    Condition,
    OddsRequirement,
    Strategy,
    Trigger,
    WinRequirement,
)


class SignalStatus(str, Enum):
    """Lifecycle stage of a signal."""
    MONITORING = "monitoring"
    WATCHING = "watching"
    BET_TAKEN = "bet_taken"
    EXPIRED = "expired"
    WON = "won"
    LOST = "lost"
    PUSHED = "pushed"
    CLOSED = "closed"

    @property
    def is_tracking(self) -> bool:
        """Still evaluated on every update (ActiveSignal exists)."""
        return self in (SignalStatus.MONITORING, SignalStatus.WATCHING)

    @property
    def is_final(self) -> bool:
        return self in (
            SignalStatus.EXPIRED,
            SignalStatus.WON,
            SignalStatus.LOST,
            SignalStatus.PUSHED,
            SignalStatus.CLOSED,
        )


class SettlementResult(str, Enum):
    WIN = "win"
    LOSS = "loss"
    PUSH = "push"

    @property
    def status(self) -> SignalStatus:
        return {
            SettlementResult.WIN: SignalStatus.WON,
            SettlementResult.LOSS: SignalStatus.LOST,
            SettlementResult.PUSH: SignalStatus.PUSHED,
        }[self]


class EventKind(str, Enum):
    """Kind of lifecycle event emitted to sinks."""
    ENTRY = "entry"
    CLOSE = "close"
    BET_TAKEN = "bet_taken"
    EXPIRED = "expired"
    SETTLED = "settled"
    CLOSED = "closed"


def new_signal_id() -> str:
    return uuid.uuid4().hex


@dataclass
class Signal:
    """
    Record of one (strategy, game) signal.

    Attributes:
        id: Our own id, used as the upsert key by the persistence sink
        status: Current lifecycle stage
        entry_snapshot: Game state when the entry trigger fired
        close_snapshot: Game state when the close trigger fired
        leading_team_at_trigger: 'home' or 'away' at entry, None if tied
        odds_requirement: Requirement copied from the strategy at entry
        win_requirements: Settlement requirements copied at entry
        bet_team: Side the bet was taken on ('home'/'away'), None for totals
        observed_odds: Odds value seen when the requirement aligned
        result: Settlement result once the game is final
    """
    id: str
    strategy_id: str
    strategy_name: str
    game_id: str
    status: SignalStatus
    created_at: float
    entry_trigger_id: str = ""
    entry_trigger_name: str = ""
    entry_snapshot: Optional[TriggerSnapshot] = None
    close_trigger_id: Optional[str] = None
    close_trigger_name: Optional[str] = None
    close_snapshot: Optional[TriggerSnapshot] = None
    leading_team_at_trigger: Optional[str] = None
    odds_requirement: Optional[OddsRequirement] = None
    win_requirements: tuple[WinRequirement, ...] = ()
    bet_team: Optional[str] = None
    observed_odds: Optional[float] = None
    home_team: str = ""
    away_team: str = ""
    closed_at: Optional[float] = None
    watching_at: Optional[float] = None
    bet_taken_at: Optional[float] = None
    expired_at: Optional[float] = None
    settled_at: Optional[float] = None
    final_home: Optional[int] = None
    final_away: Optional[int] = None
    result: Optional[SettlementResult] = None
    result_summary: str = ""
    notes: str = ""

    @property
    def key(self) -> tuple[str, str]:
        return (self.strategy_id, self.game_id)

    def copy(self) -> "Signal":
        return replace(self)

    def to_dict(self) -> dict[str, Any]:
        odds = self.odds_requirement
        return {
            "id": self.id,
            "strategy_id": self.strategy_id,
            "strategy_name": self.strategy_name,
            "game_id": self.game_id,
            "status": self.status.value,
            "matchup": f"{self.away_team} @ {self.home_team}",
            "entry_trigger": self.entry_trigger_name,
            "close_trigger": self.close_trigger_name,
            "leading_team_at_trigger": self.leading_team_at_trigger,
            "odds_requirement": (
                {"type": odds.odds_type.value, "side": odds.bet_side.value, "value": odds.value}
                if odds else None
            ),
            "bet_team": self.bet_team,
            "observed_odds": self.observed_odds,
            "created_at": self.created_at,
            "result": self.result.value if self.result else None,
        }


@dataclass(frozen=True)
class SignalEvent:
    """
    Fully-resolved lifecycle event handed to downstream sinks.

    Attributes:
        kind: Which transition happened
        signal: Copy of the signal after the transition
        strategy: Strategy the signal belongs to (None after a restart if the
            strategy has since been removed)
        game: Copy of the game snapshot at the transition
        trigger: Trigger that fired, for ENTRY and CLOSE
        matched: Conditions that passed, for ENTRY and CLOSE
        failed: Conditions that failed, for ENTRY and CLOSE
        result: Settlement result, for SETTLED
    """
    kind: EventKind
    signal: Signal
    game: GameSnapshot
    strategy: Optional[Strategy] = None
    trigger: Optional[Trigger] = None
    matched: tuple[Condition, ...] = ()
    failed: tuple[Condition, ...] = ()
    result: Optional[SettlementResult] = None
    timestamp: float = field(default_factory=time.time)

    def summary(self) -> str:
        game = self.game
        return (
            f"[{self.signal.strategy_name}] {self.kind.value} "
            f"{game.matchup} Q{game.quarter} {game.time_remaining} "
            f"({game.away_score}-{game.home_score})"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "signal_id": self.signal.id,
            "strategy_id": self.signal.strategy_id,
            "game_id": self.signal.game_id,
            "status": self.signal.status.value,
            "trigger": self.trigger.name if self.trigger else None,
            "matched": [c.describe() for c in self.matched],
            "failed": [c.describe() for c in self.failed],
            "result": self.result.value if self.result else None,
            "timestamp": self.timestamp,
        }
