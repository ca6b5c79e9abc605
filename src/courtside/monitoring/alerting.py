"""
Alert Manager for Discord and SMS notifications (notification sink).

Turns lifecycle events into human-readable alerts with deduplication to
prevent spam. Discord gets every event; SMS only the actionable ones.
"""
from __future__ import annotations

import asyncio
import logging
import threading
import time
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional

import requests

from courtside.core.signals import EventKind, SignalEvent

logger = logging.getLogger(__name__)

TWILIO_API = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"

_TITLES = {
    EventKind.ENTRY: "🎯 Entry Trigger",
    EventKind.CLOSE: "👀 Watching Odds",
    EventKind.BET_TAKEN: "✅ Bet Available",
    EventKind.EXPIRED: "⌛ Signal Expired",
    EventKind.SETTLED: "🏁 Signal Settled",
    EventKind.CLOSED: "🛑 Signal Closed",
}

_COLORS = {
    EventKind.ENTRY: 0x3498DB,
    EventKind.CLOSE: 0xF1C40F,
    EventKind.BET_TAKEN: 0x2ECC71,
    EventKind.EXPIRED: 0x95A5A6,
    EventKind.SETTLED: 0x9B59B6,
    EventKind.CLOSED: 0xE74C3C,
}


@dataclass
class AlertConfig:
    """Configuration for alert delivery."""
    discord_webhook_url: Optional[str] = None
    twilio_account_sid: Optional[str] = None
    twilio_auth_token: Optional[str] = None
    twilio_from_number: Optional[str] = None
    sms_recipients: tuple[str, ...] = ()
    sms_kinds: tuple[EventKind, ...] = (EventKind.BET_TAKEN, EventKind.SETTLED)
    default_cooldown: int = 300
    dry_run: bool = False
    timeout: float = 10.0


@dataclass
class AlertRecord:
    """Tracks when an alert was last sent."""

    key: str
    last_sent: float  # Unix timestamp
    count: int = 1


@dataclass
class AlertMessage:
    """Rendered alert, shared by both channels."""
    title: str
    lines: list[str] = field(default_factory=list)
    color: int = 0

    @property
    def text(self) -> str:
        return "\n".join([self.title, *self.lines])


class AlertManager:
    """
    Manages alerts with deduplication.

    Usage:
        manager = AlertManager(AlertConfig(discord_webhook_url="..."))
        engine = SignalEngine(sinks=[signal_repo, manager])

        # Direct use
        manager.send_alert(AlertMessage("Test", ["hello"]), dedup_key="test")
    """

    name = "alerts"

    def __init__(
        self,
        config: Optional[AlertConfig] = None,
        _http: Optional[Any] = None,  # For testing
    ) -> None:
        """
        Initialize the alert manager.

        Args:
            config: Delivery configuration
            _http: Injected HTTP client exposing post(); defaults to requests
        """
        self.config = config or AlertConfig()
        self._http = _http or requests

        # Alert deduplication tracking
        self._sent_alerts: Dict[str, AlertRecord] = {}
        self._longest_cooldown = self.config.default_cooldown
        self._lock = threading.Lock()

    async def handle(self, event: SignalEvent) -> None:
        """Sink entry point. Delivery runs in a worker thread."""
        await asyncio.to_thread(self.notify, event)

    def notify(self, event: SignalEvent) -> bool:
        """
        Send the alert for a lifecycle event.

        Returns:
            True if at least one channel delivered, False if deduplicated
            or every channel failed
        """
        message = self.format_event(event)
        webhooks = list(event.strategy.discord_webhooks) if event.strategy else []
        sms = event.kind in self.config.sms_kinds
        return self.send_alert(
            message,
            dedup_key=f"{event.signal.id}:{event.kind.value}",
            webhooks=webhooks,
            sms=sms,
        )

    def send_alert(
        self,
        message: AlertMessage,
        dedup_key: Optional[str] = None,
        cooldown_seconds: Optional[int] = None,
        webhooks: Optional[list[str]] = None,
        sms: bool = False,
    ) -> bool:
        """
        Send an alert to Discord (and SMS when requested).

        Args:
            message: Rendered alert
            dedup_key: Key for deduplication (None to skip dedup)
            cooldown_seconds: Cooldown for this specific alert
            webhooks: Strategy-specific webhook URLs; default URL if empty
            sms: Also send to the SMS recipients

        Returns:
            True if sent, False if deduplicated or undeliverable
        """
        if dedup_key:
            cooldown = cooldown_seconds or self.config.default_cooldown
            # Check and reserve atomically; deliveries run in worker threads
            with self._lock:
                if not self._should_send(dedup_key, cooldown):
                    logger.debug(f"Deduplicated alert: {dedup_key}")
                    return False
                previous = self._sent_alerts.get(dedup_key)
                if previous is not None:
                    previous = replace(previous)
                self._record_sent(dedup_key, cooldown)

        if self.config.dry_run:
            logger.info(f"[DRY RUN] Alert: {message.text}")
            return True

        targets = webhooks or ([self.config.discord_webhook_url] if self.config.discord_webhook_url else [])
        success = False
        for url in targets:
            success = self._send_discord(url, message) or success

        if sms:
            for recipient in self.config.sms_recipients:
                success = self._send_sms(recipient, message.text) or success

        if dedup_key and not success:
            with self._lock:
                if previous is None:
                    self._sent_alerts.pop(dedup_key, None)
                else:
                    self._sent_alerts[dedup_key] = previous

        return success

    def format_event(self, event: SignalEvent) -> AlertMessage:
        """Render an event as a title plus detail lines."""
        signal = event.signal
        game = event.game
        title = f"{_TITLES[event.kind]}: {signal.strategy_name}"
        lines = [
            f"Game: {game.matchup}",
            f"Score: {game.away_score}-{game.home_score} (Q{game.quarter} {game.time_remaining})",
        ]

        if event.trigger is not None:
            lines.append(f"Trigger: {event.trigger.name}")
        if event.matched:
            lines.append("Matched: " + "; ".join(c.describe() for c in event.matched))

        requirement = signal.odds_requirement
        if requirement is not None and event.kind in (EventKind.ENTRY, EventKind.CLOSE):
            lines.append(
                f"Waiting for: {requirement.odds_type.value} {requirement.value} "
                f"({requirement.bet_side.value})"
            )
        if event.kind == EventKind.BET_TAKEN:
            side = signal.bet_team or "total"
            lines.append(f"Bet: {side} at {signal.observed_odds}")
        if event.kind == EventKind.SETTLED and event.result is not None:
            lines.append(f"Result: {event.result.value.upper()} - {signal.result_summary}")
        if event.kind == EventKind.CLOSED and signal.notes:
            lines.append(f"Reason: {signal.notes}")

        return AlertMessage(title=title, lines=lines, color=_COLORS[event.kind])

    def _should_send(self, key: str, cooldown: int) -> bool:
        """Check if alert should be sent based on cooldown."""
        if key not in self._sent_alerts:
            return True

        record = self._sent_alerts[key]
        return (time.time() - record.last_sent) >= cooldown

    def _record_sent(self, key: str, cooldown: Optional[int] = None) -> None:
        """Record that an alert was sent. Caller holds the lock."""
        now = time.time()
        self._longest_cooldown = max(self._longest_cooldown, cooldown or 0)

        if key in self._sent_alerts:
            self._sent_alerts[key].last_sent = now
            self._sent_alerts[key].count += 1
        else:
            self._sent_alerts[key] = AlertRecord(key=key, last_sent=now)

        # Records past every cooldown in use can no longer suppress anything
        horizon = now - self._longest_cooldown
        expired = [k for k, r in self._sent_alerts.items() if r.last_sent < horizon]
        for k in expired:
            del self._sent_alerts[k]

    def _send_discord(self, url: str, message: AlertMessage) -> bool:
        """Post an embed to a Discord webhook."""
        payload = {
            "embeds": [
                {
                    "title": message.title,
                    "description": "\n".join(message.lines),
                    "color": message.color,
                }
            ]
        }
        try:
            response = self._http.post(url, json=payload, timeout=self.config.timeout)
            response.raise_for_status()
            logger.info(f"Sent Discord alert: {message.title}")
            return True
        except Exception as e:
            logger.error(f"Failed to send Discord alert: {e}")
            return False

    def _send_sms(self, to_number: str, text: str) -> bool:
        """Send an SMS through the Twilio REST API."""
        config = self.config
        if not (config.twilio_account_sid and config.twilio_auth_token and config.twilio_from_number):
            logger.warning("Twilio credentials not configured")
            return False

        try:
            response = self._http.post(
                TWILIO_API.format(sid=config.twilio_account_sid),
                data={"From": config.twilio_from_number, "To": to_number, "Body": text[:1600]},
                auth=(config.twilio_account_sid, config.twilio_auth_token),
                timeout=config.timeout,
            )
            response.raise_for_status()
            logger.info(f"Sent SMS alert to {to_number}")
            return True
        except Exception as e:
            logger.error(f"Failed to send SMS to {to_number}: {e}")
            return False

    def clear_dedup_cache(self) -> None:
        """Clear the deduplication cache."""
        with self._lock:
            self._sent_alerts.clear()

    def get_alert_stats(self) -> Dict[str, int]:
        """Get statistics about sent alerts."""
        with self._lock:
            return {
                "unique_alerts": len(self._sent_alerts),
                "total_sent": sum(r.count for r in self._sent_alerts.values()),
            }
