"""
Live game cache.

Holds the latest known GameSnapshot per game id. The engine is the only
writer and calls update() while holding the per-game lock, so each merge is
atomic with respect to other updates for the same game.

Eviction policy:
    - live/halftime snapshots not updated within stale_after_seconds are
      dropped by evict_stale() (the feed for that game has gone quiet)
    - scheduled and final snapshots are never evicted as stale; final games
      are kept until clear_finished() removes them
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Collection, Optional

from .models import (
    STATUS_PRIORITY,
    GameSnapshot,
    GameStatus,
    GameUpdate,
    derive_status,
    format_clock,
    period_length,
)

logger = logging.getLogger(__name__)


@dataclass
class CacheConfig:
    """Configuration for the live game cache."""
    stale_after_seconds: float = 20.0
    finished_retention_seconds: float = 3600.0


class LiveGameCache:
    """
    In-memory store of live game state keyed by game id.

    Usage:
        cache = LiveGameCache()
        snapshot = cache.update("evt-1", parse_game_update(payload))
        evicted = cache.evict_stale()
    """

    def __init__(self, config: Optional[CacheConfig] = None) -> None:
        self._config = config or CacheConfig()
        self._games: dict[str, GameSnapshot] = {}

    @property
    def config(self) -> CacheConfig:
        return self._config

    def __len__(self) -> int:
        return len(self._games)

    def __contains__(self, game_id: str) -> bool:
        return game_id in self._games

    def get(self, game_id: str) -> Optional[GameSnapshot]:
        return self._games.get(game_id)

    def update(
        self,
        game_id: str,
        update: GameUpdate,
        now: Optional[float] = None,
    ) -> GameSnapshot:
        """
        Merge a partial update onto the cached snapshot.

        Fields absent from the update keep their prior values. Leads are
        recomputed and the update timestamp recorded. A split clock update
        keeps the absent half from the cached clock. When the update carried
        clock data but no explicit status, status is derived from the merged
        clock and score. A quarter-only update starts the new period on a full
        clock rather than deriving status from the previous period's 0:00.

        Args:
            game_id: Event id
            update: Parsed partial update
            now: Epoch seconds (defaults to time.time())

        Returns:
            The cached snapshot after the merge
        """
        now = time.time() if now is None else now
        snapshot = self._games.get(game_id)
        if snapshot is None:
            snapshot = GameSnapshot(id=game_id, created_at=now)
            self._games[game_id] = snapshot
            logger.debug(f"Tracking new game {game_id}")

        previous_status = snapshot.status
        previous_quarter = snapshot.quarter
        snapshot.apply(update.changes)

        if update.clock_minutes is not None or update.clock_secs is not None:
            minutes, seconds = divmod(snapshot.clock_seconds, 60)
            if update.clock_minutes is not None:
                minutes = update.clock_minutes
            if update.clock_secs is not None:
                seconds = update.clock_secs
            snapshot.time_remaining = format_clock(minutes * 60 + seconds)

        period_started = not update.clock_reported and snapshot.quarter > previous_quarter
        if period_started:
            # The cached clock belongs to the previous period
            snapshot.time_remaining = format_clock(period_length(snapshot.quarter))

        if update.explicit_status is None and (update.clock_reported or period_started):
            snapshot.status = derive_status(
                snapshot.quarter,
                snapshot.clock_seconds,
                snapshot.home_score,
                snapshot.away_score,
            )

        if snapshot.status == GameStatus.FINAL:
            if snapshot.final_home is None:
                snapshot.final_home = snapshot.home_score
            if snapshot.final_away is None:
                snapshot.final_away = snapshot.away_score

        if snapshot.status != previous_status:
            logger.info(
                f"Game {game_id} status {previous_status.value} -> {snapshot.status.value}"
            )

        snapshot.last_update = now
        return snapshot

    def evict_stale(
        self,
        now: Optional[float] = None,
        exclude: Collection[str] = (),
    ) -> list[str]:
        """
        Remove live/halftime snapshots older than the staleness window.

        Args:
            now: Epoch seconds (defaults to time.time())
            exclude: Game ids to keep regardless (e.g. mid-update)

        Returns:
            Ids of evicted games
        """
        now = time.time() if now is None else now
        cutoff = now - self._config.stale_after_seconds
        evicted = [
            game_id
            for game_id, snapshot in self._games.items()
            if snapshot.is_in_play
            and snapshot.last_update < cutoff
            and game_id not in exclude
        ]
        for game_id in evicted:
            del self._games[game_id]

        if evicted:
            logger.info(f"Evicted {len(evicted)} stale game(s): {', '.join(evicted)}")
        return evicted

    def list_sorted(self) -> list[GameSnapshot]:
        """
        All snapshots, closest to completion first.

        Order: status priority (final, live, halftime, scheduled), then
        quarter descending, then time remaining ascending, then creation time.
        """
        return sorted(
            self._games.values(),
            key=lambda g: (
                STATUS_PRIORITY[g.status],
                -g.quarter,
                g.clock_seconds,
                g.created_at,
            ),
        )

    def remove(self, game_id: str) -> bool:
        return self._games.pop(game_id, None) is not None

    def clear_finished(self, now: Optional[float] = None, older_than: Optional[float] = None) -> list[str]:
        """
        Remove final snapshots.

        Args:
            now: Epoch seconds (defaults to time.time())
            older_than: Only remove games whose last update is at least this
                many seconds old. None removes every final game.

        Returns:
            Ids of removed games
        """
        now = time.time() if now is None else now
        removed = [
            game_id
            for game_id, snapshot in self._games.items()
            if snapshot.status == GameStatus.FINAL
            and (older_than is None or now - snapshot.last_update >= older_than)
        ]
        for game_id in removed:
            del self._games[game_id]
        return removed

    def counts(self) -> dict[str, int]:
        """Number of cached games per status."""
        result = {status.value: 0 for status in GameStatus}
        for snapshot in self._games.values():
            result[snapshot.status.value] += 1
        result["total"] = len(self._games)
        return result
