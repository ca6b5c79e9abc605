"""
Integration tests for a signal's full path through the system.

Payloads enter through the webhook, strategies come from the record store
rows in tests/conftest.py, and every lifecycle event is written to the
Signals table and alerted.

The webhook tests are synchronous: without a main loop the server runs each
request on a temporary loop and drains sink deliveries before returning.
"""

import asyncio

import pytest

from courtside.core.engine import EngineConfig, SignalEngine
from courtside.core.signals import EventKind, SignalStatus
from courtside.storage.models import SignalRecord
from courtside.storage.signal_repo import SignalRepository

pytestmark = pytest.mark.integration


def _post(client, payload):
    response = client.post("/webhook/game-update", json=payload)
    assert response.status_code == 200
    return response.get_json()


def _kinds(body):
    return [e["kind"] for e in body["events"]]


class TestWebhookToSinks:
    """Payload -> engine -> persistence and alerts."""

    @pytest.fixture(autouse=True)
    def load_reference_data(self, background):
        assert asyncio.run(background.refresh_strategies()) == 2
        assert asyncio.run(background.refresh_team_stats()) == 1

    def test_two_stage_signal_lifecycle(self, webhook_client, game_payload, mock_store, mock_http):
        entry = _post(webhook_client, game_payload())
        close = _post(webhook_client, game_payload(**{"Quarter": 4, "Time Remaining": "9:00", "Home Score": 78, "Away Score": 70}))
        bet = _post(webhook_client, game_payload(**{"Quarter": 4, "Time Remaining": "8:30", "Home Score": 78, "Away Score": 70, "Spread": -4.0}))
        final = _post(webhook_client, game_payload(**{"Quarter": 4, "Time Remaining": "0:00", "Home Score": 100, "Away Score": 90}))

        assert _kinds(entry) == ["entry"]
        assert _kinds(close) == ["close"]
        assert _kinds(bet) == ["bet_taken"]
        assert _kinds(final) == ["settled"]
        assert final["events"][0]["result"] == "win"

        # One row created at entry, then patched by each later event
        assert mock_store.create_record.await_count == 1
        assert mock_store.update_record.await_count == 3
        _, record_id, fields = mock_store.update_record.call_args[0]
        assert record_id == "rec_sig_1"
        assert fields["Status"] == "won"
        assert fields["Result"] == "win"
        assert fields["Bet Team"] == "home"
        assert fields["Observed Odds"] == -4.0
        assert fields["Final Home Score"] == 100

        # Discord for every event, SMS for bet_taken and settled
        assert mock_http.post.call_count == 6

    def test_active_signals_view(self, webhook_client, game_payload):
        _post(webhook_client, game_payload(**{"Spread": -6.0}))
        _post(webhook_client, game_payload(**{"Quarter": 4, "Time Remaining": "9:00", "Spread": -6.0}))

        body = webhook_client.get("/api/signals/active").get_json()

        assert body["count"] == 1
        signal = body["signals"][0]
        assert signal["status"] == "watching"
        assert signal["matchup"] == "Celtics @ Lakers"
        assert signal["odds_requirement"] == {"type": "spread", "side": "leading_team", "value": -4.5}

    def test_inactive_strategy_never_fires(self, webhook_client, game_payload, system_engine):
        _post(webhook_client, game_payload())

        assert {a.signal.strategy_id for a in system_engine.lifecycle.active_signals()} == {"rec_two_stage"}

    def test_signal_expires_in_late_q4(self, webhook_client, game_payload, mock_store):
        _post(webhook_client, game_payload())
        _post(webhook_client, game_payload(**{"Quarter": 4, "Time Remaining": "5:00", "Spread": -7.5}))
        expired = _post(webhook_client, game_payload(**{"Quarter": 4, "Time Remaining": "2:19", "Spread": -7.5}))

        assert _kinds(expired) == ["expired"]
        assert mock_store.update_record.call_args[0][2]["Status"] == "expired"

    def test_manual_close(self, webhook_client, game_payload, mock_store):
        _post(webhook_client, game_payload())

        response = webhook_client.post(
            "/api/signals/close",
            json={"strategy_id": "rec_two_stage", "game_id": "evt-100", "reason": "injury news"},
        )

        assert response.status_code == 200
        assert response.get_json()["closed"]["status"] == "closed"
        assert mock_store.update_record.call_args[0][2]["Notes"] == "injury news"

    def test_health_reports_components(self, webhook_client, game_payload):
        _post(webhook_client, game_payload())

        body = webhook_client.get("/health").get_json()

        assert body["status"] == "ok"
        assert body["strategies"] == 2
        assert body["signals"]["monitoring"] == 1
        assert body["games"]["total"] == 1


class TestRestart:
    """Open signals survive a process restart through the Signals table."""

    async def test_restored_signal_settles(self, system_engine, background, mock_store, mock_http, alert_manager):
        await background.refresh_strategies()
        base = {
            "event_id": "evt-200",
            "home_team": "Knicks",
            "away_team": "Heat",
            "home_score": 61,
            "away_score": 70,
            "quarter": 3,
            "time_remaining": "3:00",
        }
        await system_engine.process_payload(base)
        await system_engine.process_payload(
            {**base, "quarter": 4, "time_remaining": "9:00", "home_score": 66, "away_score": 74, "spread": 3.5}
        )
        await system_engine.drain()

        stored = mock_store.update_record.call_args[0][2]
        assert stored["Status"] == "bet_taken"
        assert stored["Bet Team"] == "away"

        # New process: fresh engine, same store
        mock_store.list_records.side_effect = None
        mock_store.list_records.return_value = [{"id": "rec_sig_1", "fields": stored}]
        repo = SignalRepository(mock_store)
        engine = SignalEngine(EngineConfig(), sinks=[repo, alert_manager])
        assert engine.restore(await repo.list_open()) == 1

        outcome = await engine.process_payload(
            {**base, "quarter": 4, "time_remaining": "0:00", "home_score": 95, "away_score": 101}
        )
        await engine.drain()

        assert [e.kind for e in outcome.events] == [EventKind.SETTLED]
        assert outcome.events[0].signal.status == SignalStatus.WON
        restored_row = SignalRecord.from_record(
            {"id": "rec_sig_1", "fields": mock_store.update_record.call_args[0][2]}
        ).to_signal()
        assert restored_row.status == SignalStatus.WON
        assert mock_store.update_record.call_args[0][1] == "rec_sig_1"
