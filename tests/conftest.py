"""
Shared test fixtures for cross-component tests.

This file provides fixtures that span multiple components,
unlike component-specific fixtures in src/courtside/{component}/tests/conftest.py
"""

import json
import pytest
from unittest.mock import AsyncMock, MagicMock

from courtside.core.background_tasks import BackgroundTasksManager
from courtside.core.engine import EngineConfig, SignalEngine
from courtside.monitoring.alerting import AlertConfig, AlertManager
from courtside.storage.signal_repo import SignalRepository
from courtside.storage.strategy_repo import StrategyRepository
from courtside.storage.team_stats_repo import TeamStatsRepository


# =============================================================================
# Record Store Fixtures
# =============================================================================

STRATEGY_ROWS = [
    {
        "id": "rec_two_stage",
        "fields": {
            "Name": "Q3 leader holds into Q4",
            "Trigger Mode": "sequential",
            "Is Active": True,
            "Is Two Stage": True,
            "Odds Type": "spread",
            "Odds Value": -4.5,
            "Bet Side": "leading_team",
            "Win Requirements JSON": json.dumps([{"type": "leading_team_wins"}]),
        },
    },
    {
        "id": "rec_inactive",
        "fields": {"Name": "Paused", "Is Active": False},
    },
]

TRIGGER_ROWS = [
    {
        "id": "rec_entry",
        "fields": {
            "Name": "Q3 lead 5+",
            "Strategy": ["rec_two_stage", "rec_inactive"],
            "Conditions JSON": json.dumps([
                {"field": "quarter", "operator": "=", "value": 3},
                {"field": "currentLead", "operator": ">=", "value": 5},
            ]),
            "Order": 1,
            "Entry Or Close": "entry",
        },
    },
    {
        "id": "rec_close",
        "fields": {
            "Name": "Leader still ahead in Q4",
            "Strategy": ["rec_two_stage"],
            "Conditions JSON": json.dumps([
                {"field": "quarter", "operator": "=", "value": 4},
                {"field": "prev_leader_still_leads", "operator": "=", "value": 1},
            ]),
            "Order": 2,
            "Entry Or Close": "close",
        },
    },
]

TEAM_ROWS = [
    {"id": "rec_lal", "fields": {"Team ID": "lal", "Name": "Lakers", "Win Rate": 61.0}},
]


@pytest.fixture
def mock_store():
    """Record store serving the strategy/trigger/team tables above."""
    tables = {"Strategies": STRATEGY_ROWS, "Triggers": TRIGGER_ROWS, "Teams": TEAM_ROWS, "Signals": []}
    created = []

    async def list_records(table, **kwargs):
        return tables[table]

    async def create_record(table, fields):
        created.append(fields)
        return {"id": f"rec_sig_{len(created)}", "fields": fields}

    store = MagicMock()
    store.list_records = AsyncMock(side_effect=list_records)
    store.create_record = AsyncMock(side_effect=create_record)
    store.update_record = AsyncMock(side_effect=lambda table, rid, fields: {"id": rid, "fields": fields})
    return store


@pytest.fixture
def mock_http():
    http = MagicMock()
    http.post.return_value = MagicMock(status_code=200)
    return http


# =============================================================================
# Assembled System Fixtures
# =============================================================================

@pytest.fixture
def signal_repo(mock_store):
    return SignalRepository(mock_store)


@pytest.fixture
def alert_manager(mock_http):
    return AlertManager(
        AlertConfig(
            discord_webhook_url="https://discord.test/default",
            twilio_account_sid="AC1",
            twilio_auth_token="tok",
            twilio_from_number="+15550000000",
            sms_recipients=("+15551111111",),
        ),
        _http=mock_http,
    )


@pytest.fixture
def system_engine(signal_repo, alert_manager):
    """Engine wired to the real persistence and alert sinks."""
    return SignalEngine(
        EngineConfig(debounce_max_per_window=100),
        sinks=[signal_repo, alert_manager],
    )


@pytest.fixture
def background(system_engine, mock_store):
    return BackgroundTasksManager(
        engine=system_engine,
        strategy_loader=StrategyRepository(mock_store).get_strategies,
        team_stats_loader=TeamStatsRepository(mock_store).get_all,
    )
