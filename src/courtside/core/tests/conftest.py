"""
Core layer test fixtures.

Core tests verify the lifecycle and orchestration, so strategies are built
in memory and sinks are recording fakes.
"""
import asyncio

import pytest

from courtside.core.engine import EngineConfig, SignalEngine
from courtside.core.lifecycle import LifecycleConfig, SignalLifecycle
from courtside.core.signals import Signal, SignalStatus
from courtside.ingestion.models import GameSnapshot, GameStatus
from courtside.strategies.context import build_context
from courtside.strategies.evaluator import evaluate_trigger
from courtside.strategies.models import (
    BetSide,
    Condition,
    ConditionOperator,
    OddsRequirement,
    OddsType,
    Strategy,
    Trigger,
    TriggerRole,
)
from courtside.strategies.scheduler import TriggerFire


# =============================================================================
# Game Fixtures
# =============================================================================

@pytest.fixture
def make_game():
    """Factory for live game snapshots (Q3 7:05, home 58-54 by default)."""
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
def make_payload():
    """Factory for snake_case webhook payloads."""
    def _make(game_id="evt-1", **overrides):
        payload = {
            "event_id": game_id,
            "home_team": "Lakers",
            "away_team": "Celtics",
            "home_score": 58,
            "away_score": 54,
            "quarter": 3,
            "time_remaining": "7:05",
        }
        payload.update(overrides)
        return payload
    return _make


# =============================================================================
# Strategy Fixtures
# =============================================================================

ENTRY = Trigger(
    id="t-entry",
    name="Lead 3+",
    order=1,
    role=TriggerRole.ENTRY,
    conditions=(Condition("currentLead", ConditionOperator.GREATER_THAN_OR_EQUAL, 3),),
)

CLOSE = Trigger(
    id="t-close",
    name="Q4 leader holds",
    order=2,
    role=TriggerRole.CLOSE,
    conditions=(
        Condition("quarter", ConditionOperator.EQUALS, 4),
        Condition("prev_leader_still_leads", ConditionOperator.EQUALS, 1),
    ),
)


@pytest.fixture
def spread_requirement():
    """Leading team at -4.5 or better."""
    return OddsRequirement(OddsType.SPREAD, BetSide.LEADING_TEAM, -4.5)


@pytest.fixture
def single_stage_strategy(spread_requirement):
    return Strategy(
        id="s-single",
        name="Single stage",
        triggers=(ENTRY,),
        odds_requirement=spread_requirement,
    )


@pytest.fixture
def two_stage_strategy(spread_requirement):
    return Strategy(
        id="s-two",
        name="Two stage",
        triggers=(ENTRY, CLOSE),
        odds_requirement=spread_requirement,
    )


@pytest.fixture
def no_odds_strategy():
    return Strategy(id="s-none", name="No odds", triggers=(ENTRY,))


@pytest.fixture
def make_fire():
    """Build a TriggerFire for a trigger regardless of its conditions."""
    def _make(strategy, trigger, game, prior=None):
        context = build_context(game, prior=prior)
        return TriggerFire(
            strategy=strategy,
            trigger=trigger,
            evaluation=evaluate_trigger(trigger, context),
            context=context,
        )
    return _make


@pytest.fixture
def make_signal():
    """Factory for bet_taken signals."""
    def _make(**overrides):
        values = dict(
            id="sig-1",
            strategy_id="s-single",
            strategy_name="Single stage",
            game_id="evt-1",
            status=SignalStatus.BET_TAKEN,
            created_at=1.0,
            entry_trigger_id="t-entry",
            leading_team_at_trigger="home",
            odds_requirement=OddsRequirement(OddsType.SPREAD, BetSide.LEADING_TEAM, -4.5),
            bet_team="home",
            observed_odds=-3.5,
        )
        values.update(overrides)
        return Signal(**values)
    return _make


# =============================================================================
# Component Fixtures
# =============================================================================

class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def lifecycle(clock):
    return SignalLifecycle(LifecycleConfig(expiry_cutoff_seconds=140), clock=clock)


class RecordingSink:
    """Sink that records every event it receives."""

    def __init__(self, name: str = "recorder", delay: float = 0.0):
        self.name = name
        self.delay = delay
        self.events = []

    async def handle(self, event):
        if self.delay:
            await asyncio.sleep(self.delay)
        self.events.append(event)

    @property
    def kinds(self):
        return [e.kind.value for e in self.events]


class FailingSink:
    """Sink that always raises."""

    name = "failing"

    def __init__(self):
        self.calls = 0

    async def handle(self, event):
        self.calls += 1
        raise RuntimeError("store unavailable")


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def engine(sink):
    """Engine with one recording sink and a generous debounce limit."""
    return SignalEngine(
        EngineConfig(debounce_max_per_window=1000),
        sinks=[sink],
    )


@pytest.fixture
def failing_sink():
    return FailingSink()


@pytest.fixture
def slow_sink():
    """Recording sink that yields to the loop before recording."""
    return RecordingSink("slow", delay=0.01)
