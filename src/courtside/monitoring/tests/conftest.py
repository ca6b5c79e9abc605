"""
Monitoring layer test fixtures.

Alerts are sent through a MagicMock HTTP client; nothing leaves the process.
"""
import pytest
from unittest.mock import MagicMock

from courtside.core.signals import EventKind, SettlementResult, Signal, SignalEvent, SignalStatus
from courtside.ingestion.models import GameSnapshot, GameStatus
from courtside.monitoring.alerting import AlertConfig, AlertManager
from courtside.strategies.models import (
    BetSide,
    Condition,
    ConditionOperator,
    OddsRequirement,
    OddsType,
    Strategy,
    Trigger,
)


# =============================================================================
# HTTP Fixtures
# =============================================================================

@pytest.fixture
def mock_http():
    """requests-like client whose post() always succeeds."""
    http = MagicMock()
    http.post.return_value = MagicMock(status_code=200)
    return http


@pytest.fixture
def alert_config():
    return AlertConfig(
        discord_webhook_url="https://discord.test/default",
        twilio_account_sid="AC123",
        twilio_auth_token="token",
        twilio_from_number="+15550000000",
        sms_recipients=("+15551111111",),
    )


@pytest.fixture
def alert_manager(alert_config, mock_http):
    return AlertManager(alert_config, _http=mock_http)


# =============================================================================
# Event Fixtures
# =============================================================================

ENTRY = Trigger(
    id="t-entry",
    name="Lead 5+",
    conditions=(Condition("currentLead", ConditionOperator.GREATER_THAN_OR_EQUAL, 5),),
)


@pytest.fixture
def strategy():
    return Strategy(
        id="s-1",
        name="Q3 leader holds",
        triggers=(ENTRY,),
        odds_requirement=OddsRequirement(OddsType.SPREAD, BetSide.LEADING_TEAM, -4.5),
    )


@pytest.fixture
def make_event(strategy):
    """Build a SignalEvent of the given kind for one signal."""
    def _make(kind, strategy=strategy, **signal_overrides):
        values = dict(
            id="sig-1",
            strategy_id="s-1",
            strategy_name="Q3 leader holds",
            game_id="evt-1",
            status=SignalStatus.WATCHING,
            created_at=1000.0,
            odds_requirement=strategy.odds_requirement if strategy else None,
            leading_team_at_trigger="home",
        )
        values.update(signal_overrides)
        game = GameSnapshot(
            id="evt-1",
            home_team="Lakers",
            away_team="Celtics",
            home_score=66,
            away_score=60,
            quarter=3,
            time_remaining="4:12",
            status=GameStatus.LIVE,
        )
        is_fire = kind in (EventKind.ENTRY, EventKind.CLOSE)
        return SignalEvent(
            kind=kind,
            signal=Signal(**values),
            game=game,
            strategy=strategy,
            trigger=ENTRY if is_fire else None,
            matched=ENTRY.conditions if is_fire else (),
            result=SettlementResult.WIN if kind == EventKind.SETTLED else None,
        )
    return _make
