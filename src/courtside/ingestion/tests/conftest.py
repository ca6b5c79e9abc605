"""
Ingestion layer test fixtures.

Tests payload mapping, the live cache, debouncing and the webhook server.
"""
import asyncio
import threading

import pytest

from courtside.core.engine import EngineConfig, SignalEngine
from courtside.ingestion.debounce import DebounceConfig, DebounceGuard
from courtside.ingestion.live_cache import CacheConfig, LiveGameCache
from courtside.ingestion.webhook import WebhookServer


# =============================================================================
# Payload Fixtures
# =============================================================================

@pytest.fixture
def n8n_payload():
    """Payload using the upstream automation's column labels."""
    return {
        "Event ID": "evt-100",
        "League": "NBA",
        "Home Team": "Lakers",
        "Away Team": "Celtics",
        "Home Team ID": "LAL",
        "Away Team ID": "BOS",
        "Home Score ( API )": "58",
        "Away Score ( API )": 54,
        "Quarter": 3,
        "Time Minutes ( API )": 7,
        "Time Seconds ( API )": 5,
        "Spread": -3.5,
        "ML Home": -160,
        "ML Away": 140,
        "Total": 221.5,
    }


@pytest.fixture
def make_payload():
    """Factory for snake_case payloads."""
    def _make(game_id="evt-1", **overrides):
        payload = {
            "event_id": game_id,
            "home_team": "Lakers",
            "away_team": "Celtics",
            "home_score": 50,
            "away_score": 48,
            "quarter": 3,
            "time_remaining": "6:00",
        }
        payload.update(overrides)
        return payload
    return _make


# =============================================================================
# Component Fixtures
# =============================================================================

@pytest.fixture
def cache():
    """Live cache with a 20s staleness window."""
    return LiveGameCache(CacheConfig(stale_after_seconds=20, finished_retention_seconds=600))


@pytest.fixture
def guard():
    """Debounce guard: 2 updates per 5s window."""
    return DebounceGuard(DebounceConfig(window_seconds=5.0, max_per_window=2))


@pytest.fixture
def engine():
    """Engine with no strategies and no sinks."""
    return SignalEngine(EngineConfig())


@pytest.fixture
def webhook_app(engine):
    """Flask test app without an API key."""
    server = WebhookServer(engine, api_key="")
    return server.create_app(testing=True)


@pytest.fixture
def client(webhook_app):
    return webhook_app.test_client()


@pytest.fixture
def secured_client(engine):
    """Flask test client for a server that requires an API key."""
    server = WebhookServer(engine, api_key="s3cret")
    return server.create_app(testing=True).test_client()


@pytest.fixture
def loop_thread():
    """Event loop running in its own thread, like the bot's main loop."""
    loop = asyncio.new_event_loop()
    thread = threading.Thread(target=loop.run_forever, daemon=True)
    thread.start()
    yield loop, thread
    loop.call_soon_threadsafe(loop.stop)
    thread.join(timeout=5)
    loop.close()


@pytest.fixture
def loop_app(engine, loop_thread):
    """Flask test app dispatching engine calls to the running loop."""
    loop, _ = loop_thread
    server = WebhookServer(engine, event_loop=loop, api_key="")
    return server.create_app(testing=True)
