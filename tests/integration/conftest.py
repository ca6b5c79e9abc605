"""
Integration test fixtures.

Integration tests drive payloads through the engine with the real sinks,
repositories and parsers. Only the record store and HTTP are mocked.
"""

import pytest

from courtside.ingestion.webhook import WebhookServer

# Mark all tests in this directory as integration tests
pytestmark = pytest.mark.integration


@pytest.fixture
def game_payload():
    """Factory for n8n-style payloads for one game."""
    def _make(**overrides):
        payload = {
            "Event ID": "evt-100",
            "League": "NBA",
            "Home Team": "Lakers",
            "Away Team": "Celtics",
            "Home Team ID": "lal",
            "Away Team ID": "bos",
            "Home Score": 70,
            "Away Score": 62,
            "Quarter": 3,
            "Time Remaining": "6:40",
        }
        payload.update(overrides)
        return payload
    return _make


@pytest.fixture
def webhook_client(system_engine):
    app = WebhookServer(system_engine, api_key="").create_app(testing=True)
    return app.test_client()
