"""
Webhook debounce guard.

The upstream feed redelivers the same game several times a second during busy
stretches. DebounceGuard throttles admissions per game id so repeated
deliveries never reach the cache or the evaluator.

Admission rule (per game id):
    - no record: accept, open a window
    - more than window_seconds since the last acceptance: reset, accept
    - otherwise accept while count < max_per_window, else reject

The in-flight set is advisory: try_enter()/exit() let the engine detect that
an evaluation pass for a game is already running.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class DebounceConfig:
    """Configuration for the debounce guard."""
    window_seconds: float = 5.0
    max_per_window: int = 2


@dataclass
class _WindowRecord:
    timestamp: float
    count: int


@dataclass(frozen=True)
class AdmitResult:
    """Outcome of an admission check."""
    accepted: bool
    reason: str

    def __bool__(self) -> bool:
        return self.accepted


class DebounceGuard:
    """
    Per-game admission throttle plus an in-flight set.

    All methods are synchronous and never await, so on a single event loop
    each call is atomic.
    """

    def __init__(self, config: Optional[DebounceConfig] = None) -> None:
        self._config = config or DebounceConfig()
        self._records: dict[str, _WindowRecord] = {}
        self._in_flight: set[str] = set()

    @property
    def config(self) -> DebounceConfig:
        return self._config

    def admit(self, game_id: str, now: Optional[float] = None) -> AdmitResult:
        """
        Decide whether an update for game_id should be processed.

        Args:
            game_id: Event id
            now: Epoch seconds (defaults to time.time())

        Returns:
            AdmitResult; reason is one of new_event, window_expired,
            within_limit, debounced
        """
        now = time.time() if now is None else now
        record = self._records.get(game_id)

        if record is None:
            self._records[game_id] = _WindowRecord(timestamp=now, count=1)
            return AdmitResult(True, "new_event")

        elapsed = now - record.timestamp
        if elapsed > self._config.window_seconds:
            self._records[game_id] = _WindowRecord(timestamp=now, count=1)
            return AdmitResult(True, "window_expired")

        if record.count >= self._config.max_per_window:
            logger.debug(
                f"Debounced {game_id}: {record.count} updates in {elapsed:.2f}s"
            )
            return AdmitResult(False, "debounced")

        record.count += 1
        record.timestamp = now
        return AdmitResult(True, "within_limit")

    def try_enter(self, game_id: str) -> bool:
        """Mark game_id in flight. False if a pass is already running."""
        if game_id in self._in_flight:
            return False
        self._in_flight.add(game_id)
        return True

    def exit(self, game_id: str) -> None:
        self._in_flight.discard(game_id)

    def is_in_flight(self, game_id: str) -> bool:
        return game_id in self._in_flight

    def cleanup(self, now: Optional[float] = None) -> int:
        """
        Drop window records older than twice the window.

        Returns:
            Number of records removed
        """
        now = time.time() if now is None else now
        horizon = self._config.window_seconds * 2
        stale = [k for k, r in self._records.items() if now - r.timestamp > horizon]
        for key in stale:
            del self._records[key]
        if stale:
            logger.debug(f"Debounce cleanup removed {len(stale)} stale entries")
        return len(stale)

    def reset(self) -> None:
        self._records.clear()
        self._in_flight.clear()

    def stats(self, now: Optional[float] = None) -> dict:
        now = time.time() if now is None else now
        oldest = max((now - r.timestamp for r in self._records.values()), default=None)
        return {
            "tracked_events": len(self._records),
            "in_flight": len(self._in_flight),
            "oldest_entry_seconds": oldest,
        }
