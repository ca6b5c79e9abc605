"""
Pydantic models matching the record store tables.

Field aliases are the column names in the hosted base. Models validate the raw
"fields" object of each record; the repositories turn them into the frozen
strategy/signal types used by the engine.

IMPORTANT: The store omits empty columns entirely, so every column has a
default here.
"""
from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from courtside.core.signals import SettlementResult, Signal, SignalStatus
from courtside.strategies.context import TriggerSnapshot
from courtside.strategies.models import (
    BetSide,
    OddsRequirement,
    OddsType,
    WinRequirement,
    WinRequirementType,
)

STRATEGIES_TABLE = "Strategies"
TRIGGERS_TABLE = "Triggers"
TEAMS_TABLE = "Teams"
SIGNALS_TABLE = "Signals"


class _RecordModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = ""

    @classmethod
    def from_record(cls, record: dict[str, Any]):
        return cls.model_validate({"id": record.get("id", ""), **record.get("fields", {})})


# =============================================================================
# STRATEGIES
# =============================================================================


class StrategyRecord(_RecordModel):
    """Row of the Strategies table."""

    name: str = Field("", alias="Name")
    description: str = Field("", alias="Description")
    trigger_mode: str = Field("sequential", alias="Trigger Mode")
    is_active: bool = Field(False, alias="Is Active")
    is_two_stage: bool = Field(False, alias="Is Two Stage")
    odds_type: Optional[str] = Field(None, alias="Odds Type")
    odds_value: Optional[float] = Field(None, alias="Odds Value")
    bet_side: Optional[str] = Field(None, alias="Bet Side")
    rules_json: Optional[str] = Field(None, alias="Rules JSON")
    win_requirements_json: Optional[str] = Field(None, alias="Win Requirements JSON")
    discord_webhooks_json: Optional[str] = Field(None, alias="Discord Webhooks JSON")
    expiry_time_q4: Optional[str] = Field(None, alias="Expiry Time Q4")


class TriggerRecord(_RecordModel):
    """Row of the Triggers table. strategy_ids is the linked-record column."""

    name: str = Field("", alias="Name")
    strategy_ids: list[str] = Field(default_factory=list, alias="Strategy")
    conditions_json: Optional[str] = Field(None, alias="Conditions JSON")
    order: int = Field(0, alias="Order")
    entry_or_close: str = Field("entry", alias="Entry Or Close")


# =============================================================================
# TEAMS
# =============================================================================


class TeamRecord(_RecordModel):
    """Row of the Teams table."""

    team_id: str = Field("", alias="Team ID")
    name: str = Field("", alias="Name")
    win_rate: Optional[float] = Field(None, alias="Win Rate")
    avg_points_for: Optional[float] = Field(None, alias="Avg Points For")
    games_played: Optional[int] = Field(None, alias="Games Played")
    recent_form: Optional[str] = Field(None, alias="Recent Form")


# =============================================================================
# SIGNALS
# =============================================================================


def _iso(ts: Optional[float]) -> Optional[str]:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


def _epoch(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp()


def _dump(value: Any) -> Optional[str]:
    return json.dumps(value) if value is not None else None


class SignalRecord(_RecordModel):
    """Row of the Signals table, keyed by our own Signal ID."""

    signal_id: str = Field(alias="Signal ID")
    strategy_id: str = Field("", alias="Strategy ID")
    strategy_name: str = Field("", alias="Strategy Name")
    game_id: str = Field("", alias="Game ID")
    status: str = Field(SignalStatus.MONITORING.value, alias="Status")
    home_team: Optional[str] = Field(None, alias="Home Team")
    away_team: Optional[str] = Field(None, alias="Away Team")
    entry_trigger_id: Optional[str] = Field(None, alias="Entry Trigger ID")
    entry_trigger_name: Optional[str] = Field(None, alias="Entry Trigger")
    entry_snapshot_json: Optional[str] = Field(None, alias="Entry Snapshot JSON")
    close_trigger_id: Optional[str] = Field(None, alias="Close Trigger ID")
    close_trigger_name: Optional[str] = Field(None, alias="Close Trigger")
    close_snapshot_json: Optional[str] = Field(None, alias="Close Snapshot JSON")
    leading_team_at_trigger: Optional[str] = Field(None, alias="Leading Team At Trigger")
    odds_requirement_json: Optional[str] = Field(None, alias="Odds Requirement JSON")
    win_requirements_json: Optional[str] = Field(None, alias="Win Requirements JSON")
    bet_team: Optional[str] = Field(None, alias="Bet Team")
    observed_odds: Optional[float] = Field(None, alias="Observed Odds")
    result: Optional[str] = Field(None, alias="Result")
    result_summary: Optional[str] = Field(None, alias="Result Summary")
    final_home: Optional[int] = Field(None, alias="Final Home Score")
    final_away: Optional[int] = Field(None, alias="Final Away Score")
    created_at: Optional[str] = Field(None, alias="Created At")
    watching_at: Optional[str] = Field(None, alias="Watching At")
    bet_taken_at: Optional[str] = Field(None, alias="Bet Taken At")
    expired_at: Optional[str] = Field(None, alias="Expired At")
    settled_at: Optional[str] = Field(None, alias="Settled At")
    closed_at: Optional[str] = Field(None, alias="Closed At")
    notes: Optional[str] = Field(None, alias="Notes")

    def to_fields(self) -> dict[str, Any]:
        """Column -> value mapping for writes, without empty columns."""
        return self.model_dump(by_alias=True, exclude_none=True, exclude={"id"})

    @classmethod
    def from_signal(cls, signal: Signal) -> "SignalRecord":
        odds = signal.odds_requirement
        return cls(
            signal_id=signal.id,
            strategy_id=signal.strategy_id,
            strategy_name=signal.strategy_name,
            game_id=signal.game_id,
            status=signal.status.value,
            home_team=signal.home_team or None,
            away_team=signal.away_team or None,
            entry_trigger_id=signal.entry_trigger_id or None,
            entry_trigger_name=signal.entry_trigger_name or None,
            entry_snapshot_json=_dump(signal.entry_snapshot.to_dict() if signal.entry_snapshot else None),
            close_trigger_id=signal.close_trigger_id,
            close_trigger_name=signal.close_trigger_name,
            close_snapshot_json=_dump(signal.close_snapshot.to_dict() if signal.close_snapshot else None),
            leading_team_at_trigger=signal.leading_team_at_trigger,
            odds_requirement_json=_dump(
                {"type": odds.odds_type.value, "side": odds.bet_side.value, "value": odds.value}
                if odds else None
            ),
            win_requirements_json=_dump(
                [
                    {"type": w.requirement_type.value, "value": w.value}
                    for w in signal.win_requirements
                ] or None
            ),
            bet_team=signal.bet_team,
            observed_odds=signal.observed_odds,
            result=signal.result.value if signal.result else None,
            result_summary=signal.result_summary or None,
            final_home=signal.final_home,
            final_away=signal.final_away,
            created_at=_iso(signal.created_at),
            watching_at=_iso(signal.watching_at),
            bet_taken_at=_iso(signal.bet_taken_at),
            expired_at=_iso(signal.expired_at),
            settled_at=_iso(signal.settled_at),
            closed_at=_iso(signal.closed_at),
            notes=signal.notes or None,
        )

    def to_signal(self) -> Signal:
        """
        Rebuild a Signal from a stored row.

        Raises:
            ValueError: If a JSON column or enum value is malformed
        """
        odds = None
        if self.odds_requirement_json:
            data = json.loads(self.odds_requirement_json)
            odds = OddsRequirement(
                odds_type=OddsType(data["type"]),
                bet_side=BetSide.parse(data["side"]),
                value=float(data["value"]),
            )

        win_requirements: tuple[WinRequirement, ...] = ()
        if self.win_requirements_json:
            win_requirements = tuple(
                WinRequirement(WinRequirementType(item["type"]), item.get("value"))
                for item in json.loads(self.win_requirements_json)
            )

        entry_snapshot = None
        if self.entry_snapshot_json:
            entry_snapshot = TriggerSnapshot.from_dict(json.loads(self.entry_snapshot_json))
        close_snapshot = None
        if self.close_snapshot_json:
            close_snapshot = TriggerSnapshot.from_dict(json.loads(self.close_snapshot_json))

        return Signal(
            id=self.signal_id,
            strategy_id=self.strategy_id,
            strategy_name=self.strategy_name,
            game_id=self.game_id,
            status=SignalStatus(self.status),
            created_at=_epoch(self.created_at) or 0.0,
            entry_trigger_id=self.entry_trigger_id or "",
            entry_trigger_name=self.entry_trigger_name or "",
            entry_snapshot=entry_snapshot,
            close_trigger_id=self.close_trigger_id,
            close_trigger_name=self.close_trigger_name,
            close_snapshot=close_snapshot,
            leading_team_at_trigger=self.leading_team_at_trigger,
            odds_requirement=odds,
            win_requirements=win_requirements,
            bet_team=self.bet_team,
            observed_odds=self.observed_odds,
            home_team=self.home_team or "",
            away_team=self.away_team or "",
            watching_at=_epoch(self.watching_at),
            bet_taken_at=_epoch(self.bet_taken_at),
            expired_at=_epoch(self.expired_at),
            settled_at=_epoch(self.settled_at),
            closed_at=_epoch(self.closed_at),
            final_home=self.final_home,
            final_away=self.final_away,
            result=SettlementResult(self.result) if self.result else None,
            result_summary=self.result_summary or "",
            notes=self.notes or "",
        )
