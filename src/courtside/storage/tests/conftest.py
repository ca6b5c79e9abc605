"""
Storage layer test fixtures.

The record store is never contacted. Repositories get a MagicMock store
whose async methods are AsyncMocks; the client itself is exercised against
a fake aiohttp session.
"""
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from courtside.storage.record_store import RecordStoreClient, RecordStoreConfig


# =============================================================================
# MOCK STORE
# =============================================================================


@pytest.fixture
def mock_store():
    """Record store with async methods returning empty results."""
    store = MagicMock()
    store.list_records = AsyncMock(return_value=[])
    store.create_record = AsyncMock(return_value={"id": "rec_new", "fields": {}})
    store.update_record = AsyncMock(return_value={"id": "rec_new", "fields": {}})
    return store


@pytest.fixture
def strategy_rows():
    """One two-stage strategy row and its two trigger rows."""
    strategies = [
        {
            "id": "rec_strat",
            "fields": {
                "Name": "Q3 leader holds",
                "Trigger Mode": "Sequential",
                "Is Active": True,
                "Is Two Stage": True,
                "Odds Type": "spread",
                "Odds Value": -4.5,
                "Bet Side": "leading",
                "Rules JSON": json.dumps([{"type": "second_half_only"}, {"type": "bogus"}]),
                "Win Requirements JSON": json.dumps([{"type": "final_lead_gte", "value": "3"}]),
                "Discord Webhooks JSON": json.dumps(["https://discord.test/hook"]),
                "Expiry Time Q4": "3:00",
            },
        }
    ]
    triggers = [
        {
            "id": "rec_close",
            "fields": {
                "Name": "Q4 leader holds",
                "Strategy": ["rec_strat"],
                "Conditions JSON": json.dumps([
                    {"field": "quarter", "operator": "=", "value": 4},
                    {"field": "prev_leader_still_leads", "operator": "equals", "value": 1},
                ]),
                "Order": 2,
                "Entry Or Close": "close",
            },
        },
        {
            "id": "rec_entry",
            "fields": {
                "Name": "Lead 5+",
                "Strategy": ["rec_strat"],
                "Conditions JSON": json.dumps([
                    {"field": "currentLead", "operator": ">=", "value": 5},
                    {"field": "quarter", "operator": "unknown_op", "value": 3},
                ]),
                "Order": 1,
                "Entry Or Close": "entry",
            },
        },
    ]
    return strategies, triggers


# =============================================================================
# FAKE HTTP SESSION
# =============================================================================


class FakeResponse:
    def __init__(self, status: int = 200, payload=None):
        self.status = status
        self._payload = payload if payload is not None else {}

    async def json(self):
        return self._payload

    async def text(self):
        return json.dumps(self._payload)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    """Returns queued responses in order and records every request."""

    def __init__(self, responses):
        self._responses = list(responses)
        self.requests = []
        self.closed = False

    def request(self, method, url, **kwargs):
        self.requests.append((method, url, kwargs))
        return self._responses.pop(0)

    async def close(self):
        self.closed = True


@pytest.fixture
def store_config():
    return RecordStoreConfig(
        api_key="key_test",
        base_id="app_test",
        base_url="https://store.test/v0",
        retry_delay=0.0,
        rate_limit=1000,
    )


@pytest.fixture
def make_client(store_config):
    """Build a client over a FakeSession with the given responses."""
    def _make(*responses):
        session = FakeSession(responses)
        return RecordStoreClient(store_config, session=session), session
    return _make


@pytest.fixture
def response():
    return FakeResponse
