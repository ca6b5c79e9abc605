"""
Strategy layer test fixtures.

Tests context building, condition evaluation, rules and scheduling.
"""
import pytest

from courtside.ingestion.models import GameSnapshot, GameStatus
from courtside.strategies.context import MatchupStats, TeamStats
from courtside.strategies.models import (
    Condition,
    ConditionOperator,
    Strategy,
    Trigger,
    TriggerMode,
    TriggerRole,
)


@pytest.fixture
def make_game():
    """Factory for live game snapshots."""
    def _make(**overrides):
        values = dict(
            id="evt-1",
            home_team="Lakers",
            away_team="Celtics",
            home_score=58,
            away_score=54,
            quarter=3,
            time_remaining="7:05",
            status=GameStatus.LIVE,
        )
        values.update(overrides)
        game = GameSnapshot(**values)
        game.recompute_leads()
        return game
    return _make


@pytest.fixture
def game(make_game):
    """Q3 7:05, home leads 58-54."""
    return make_game()


@pytest.fixture
def matchup_stats():
    return MatchupStats(
        home=TeamStats(
            team_id="LAL", name="Lakers", win_rate=62.5, avg_points_for=114.2,
            games_played=40, recent_form=("W", "W", "L", "W", "L"),
        ),
        away=TeamStats(
            team_id="BOS", name="Celtics", win_rate=55.0, avg_points_for=110.0,
            games_played=32, recent_form=("L", "L", "W"),
        ),
    )


@pytest.fixture
def entry_trigger():
    """Fires when the lead is 3 or more."""
    return Trigger(
        id="t-entry",
        name="Lead 3+",
        order=1,
        role=TriggerRole.ENTRY,
        conditions=(Condition("currentLead", ConditionOperator.GREATER_THAN_OR_EQUAL, 3),),
    )


@pytest.fixture
def close_trigger():
    """Fires in Q4 while the earlier leader still leads."""
    return Trigger(
        id="t-close",
        name="Still ahead in Q4",
        order=2,
        role=TriggerRole.CLOSE,
        conditions=(
            Condition("quarter", ConditionOperator.EQUALS, 4),
            Condition("prev_leader_still_leads", ConditionOperator.EQUALS, 1),
        ),
    )


@pytest.fixture
def two_stage_strategy(entry_trigger, close_trigger):
    return Strategy(
        id="s-two",
        name="Two stage",
        triggers=(close_trigger, entry_trigger),
        mode=TriggerMode.SEQUENTIAL,
    )
