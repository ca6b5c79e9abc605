"""
Signal Engine - Main orchestrator for trigger evaluation.

The engine coordinates all components for every inbound game update:
1. Debounce guard rejects throttled duplicates
2. Live cache merges the partial update (under the per-game lock)
3. Scheduler evaluates every loaded strategy against the new state
4. Lifecycle advances signals and runs expiry/odds checks
5. Resulting events are handed to the sinks in detached tasks

Critical Gotchas:
    - Updates for the same game are serialized with KeyedLock; different
      games run in parallel.
    - Nothing on the evaluation path awaits network I/O. Strategies and team
      stats are served from in-memory copies refreshed by background tasks.
    - Sink failures are logged and counted. They never revert a transition,
      because the transition reflects what happened in the game.
    - Events for one signal reach each sink in the order they were emitted.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Protocol, Sequence

from courtside.ingestion.debounce import DebounceConfig, DebounceGuard
from courtside.ingestion.live_cache import CacheConfig, LiveGameCache
from courtside.ingestion.models import GameSnapshot, GameStatus, GameUpdate, parse_game_update
from courtside.strategies.context import MatchupStats, TeamStats
from courtside.strategies.models import Strategy
from courtside.strategies.scheduler import schedule

from .lifecycle import LifecycleConfig, SignalLifecycle
from .locks import KeyedLock
from .odds import DEFAULT_EXPIRY_CUTOFF_SECONDS
from .signals import Signal, SignalEvent

logger = logging.getLogger(__name__)


class EventSink(Protocol):
    """Downstream collaborator receiving lifecycle events."""

    name: str

    async def handle(self, event: SignalEvent) -> None:
        ...


@dataclass
class EngineConfig:
    """Configuration for the signal engine."""

    # Live cache
    stale_after_seconds: float = 20.0
    finished_retention_seconds: float = 3600.0
    # Evicted games whose feed stays quiet this long have their signals expired
    abandoned_after_seconds: float = 1800.0

    # Debounce
    debounce_window_seconds: float = 5.0
    debounce_max_per_window: int = 2

    # Lifecycle
    expiry_cutoff_seconds: int = DEFAULT_EXPIRY_CUTOFF_SECONDS


@dataclass
class EngineStats:
    """Runtime statistics for the engine."""

    updates_received: int = 0
    updates_debounced: int = 0
    updates_processed: int = 0
    strategies_evaluated: int = 0
    triggers_fired: int = 0
    events_emitted: int = 0
    sink_errors: int = 0
    games_evicted: int = 0
    games_abandoned: int = 0

    def to_dict(self) -> dict[str, int]:
        return dict(self.__dict__)


@dataclass
class UpdateOutcome:
    """What happened to one inbound update."""
    game_id: str
    accepted: bool
    reason: str
    events: list[SignalEvent] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "game_id": self.game_id,
            "accepted": self.accepted,
            "reason": self.reason,
            "events": [e.to_dict() for e in self.events],
        }


class SignalEngine:
    """
    Main signal engine orchestrator.

    Usage:
        engine = SignalEngine(EngineConfig(), sinks=[signal_repo, alert_manager])
        engine.set_strategies(strategies)

        outcome = await engine.process_payload(webhook_json)

        await engine.drain()
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        sinks: Sequence[EventSink] = (),
        cache: Optional[LiveGameCache] = None,
        debounce: Optional[DebounceGuard] = None,
        lifecycle: Optional[SignalLifecycle] = None,
    ) -> None:
        """
        Initialize the signal engine.

        Args:
            config: Engine configuration
            sinks: Persistence/notification collaborators
            cache: Live cache (built from config if omitted)
            debounce: Debounce guard (built from config if omitted)
            lifecycle: Lifecycle state machine (built from config if omitted)
        """
        self.config = config or EngineConfig()
        self._sinks = list(sinks)
        self._cache = cache or LiveGameCache(
            CacheConfig(
                stale_after_seconds=self.config.stale_after_seconds,
                finished_retention_seconds=self.config.finished_retention_seconds,
            )
        )
        self._debounce = debounce or DebounceGuard(
            DebounceConfig(
                window_seconds=self.config.debounce_window_seconds,
                max_per_window=self.config.debounce_max_per_window,
            )
        )
        self._lifecycle = lifecycle or SignalLifecycle(
            LifecycleConfig(expiry_cutoff_seconds=self.config.expiry_cutoff_seconds)
        )
        self._game_locks = KeyedLock()
        self._dispatch_locks = KeyedLock()
        self._pending: set[asyncio.Task] = set()
        self._evicted: dict[str, float] = {}

        self._strategies: dict[str, Strategy] = {}
        self._team_stats: dict[str, TeamStats] = {}
        self._stats = EngineStats()

    @property
    def stats(self) -> EngineStats:
        return self._stats

    @property
    def cache(self) -> LiveGameCache:
        return self._cache

    @property
    def debounce(self) -> DebounceGuard:
        return self._debounce

    @property
    def lifecycle(self) -> SignalLifecycle:
        return self._lifecycle

    @property
    def strategies(self) -> dict[str, Strategy]:
        return self._strategies

    def add_sink(self, sink: EventSink) -> None:
        self._sinks.append(sink)

    # -------------------------------------------------------------------------
    # Reference data
    # -------------------------------------------------------------------------

    def set_strategies(self, strategies: Iterable[Strategy]) -> None:
        """Replace the loaded strategies (called by the refresh task)."""
        self._strategies = {s.id: s for s in strategies}
        self._lifecycle.apply_strategy_overrides(self._strategies)
        active = sum(1 for s in self._strategies.values() if s.is_active)
        logger.info(f"Loaded {len(self._strategies)} strategies ({active} active)")

    def set_team_stats(self, stats: Iterable[TeamStats]) -> None:
        self._team_stats = {s.team_id: s for s in stats}

    def _matchup_stats(self, game: GameSnapshot) -> Optional[MatchupStats]:
        home = self._team_stats.get(game.home_team_id) if game.home_team_id else None
        away = self._team_stats.get(game.away_team_id) if game.away_team_id else None
        if home is None and away is None:
            return None
        return MatchupStats(home=home, away=away)

    # -------------------------------------------------------------------------
    # Update pipeline
    # -------------------------------------------------------------------------

    async def process_payload(self, data: dict[str, Any], now: Optional[float] = None) -> UpdateOutcome:
        """
        Parse and process one webhook payload.

        Raises:
            PayloadError: If the payload cannot be mapped
        """
        return await self.process_update(parse_game_update(data), now=now)

    async def process_update(self, update: GameUpdate, now: Optional[float] = None) -> UpdateOutcome:
        """
        Process one game update through the full pipeline.

        Args:
            update: Parsed partial update
            now: Epoch seconds (defaults to time.time())

        Returns:
            UpdateOutcome with the admission decision and emitted events
        """
        now = time.time() if now is None else now
        game_id = update.game_id
        self._stats.updates_received += 1

        admission = self._debounce.admit(game_id, now)
        if not admission.accepted:
            self._stats.updates_debounced += 1
            return UpdateOutcome(game_id=game_id, accepted=False, reason=admission.reason)

        async with self._game_locks.hold(game_id):
            self._debounce.try_enter(game_id)
            try:
                self._evicted.pop(game_id, None)
                game = self._cache.update(game_id, update, now)
                events = self._evaluate(game)
            finally:
                self._debounce.exit(game_id)

        self._stats.updates_processed += 1
        self._dispatch(events)
        return UpdateOutcome(game_id=game_id, accepted=True, reason=admission.reason, events=events)

    def _evaluate(self, game: GameSnapshot) -> list[SignalEvent]:
        if game.status == GameStatus.FINAL:
            if self._lifecycle.has_open_signals(game.id):
                return self._lifecycle.on_game_final(game, self._strategies)
            return []

        if not game.is_in_play:
            return []

        events: list[SignalEvent] = []
        stats = self._matchup_stats(game)

        for strategy in self._strategies.values():
            progress = self._lifecycle.progress(strategy.id, game.id)
            result = schedule(strategy, game, progress, stats)
            if result.skipped:
                continue
            self._stats.strategies_evaluated += 1

            for fire in result.fires:
                self._stats.triggers_fired += 1
                event = self._lifecycle.on_fire(fire, game)
                if event is not None:
                    events.append(event)

        events.extend(self._lifecycle.check_watching(game, self._strategies))
        return events

    # -------------------------------------------------------------------------
    # Manual operations
    # -------------------------------------------------------------------------

    async def close_signal(self, strategy_id: str, game_id: str, reason: str = "") -> Optional[SignalEvent]:
        """Manually close the open signal for (strategy, game)."""
        async with self._game_locks.hold(game_id):
            event = self._lifecycle.close_signal(
                strategy_id, game_id, self._cache.get(game_id), reason
            )
        if event is not None:
            self._dispatch([event])
        return event

    def restore(self, signals: Iterable[Signal]) -> int:
        return self._lifecycle.restore(signals)

    def evict_stale(self, now: Optional[float] = None) -> list[str]:
        """
        Evict stale live games that are not mid-update.

        The same sweep expires the signals of games evicted more than
        abandoned_after_seconds ago whose feed never came back, and drops
        their lifecycle keys.
        """
        now = time.time() if now is None else now
        busy = {
            g.id for g in self._cache.list_sorted()
            if self._game_locks.locked(g.id) or self._debounce.is_in_flight(g.id)
        }
        evicted = self._cache.evict_stale(now, exclude=busy)
        for game_id in evicted:
            self._evicted[game_id] = now
        self._stats.games_evicted += len(evicted)

        self.expire_abandoned(now)
        return evicted

    def expire_abandoned(self, now: Optional[float] = None) -> list[str]:
        """
        Expire tracking signals of evicted games whose feed stayed quiet.

        Returns:
            Ids of abandoned games
        """
        now = time.time() if now is None else now
        grace = self.config.abandoned_after_seconds
        abandoned = [
            game_id for game_id, evicted_at in self._evicted.items()
            if now - evicted_at >= grace
            and game_id not in self._cache
            and not self._game_locks.locked(game_id)
        ]

        events: list[SignalEvent] = []
        for game_id in abandoned:
            del self._evicted[game_id]
            events.extend(self._lifecycle.abandon_game(game_id, self._strategies))

        if abandoned:
            self._stats.games_abandoned += len(abandoned)
            logger.info(
                f"Abandoned {len(abandoned)} quiet game(s), expired {len(events)} signal(s)"
            )
        self._dispatch(events)
        return abandoned

    def cleanup_finished(self, now: Optional[float] = None) -> list[str]:
        """Remove finished games past retention that have no open signals."""
        now = time.time() if now is None else now
        retention = self.config.finished_retention_seconds
        removable = [
            g.id for g in self._cache.list_sorted()
            if g.status == GameStatus.FINAL
            and now - g.last_update >= retention
            and not self._lifecycle.has_open_signals(g.id)
            and not self._game_locks.locked(g.id)
        ]
        for game_id in removable:
            self._cache.remove(game_id)
            self._lifecycle.forget_game(game_id)
        if removable:
            logger.info(f"Cleaned up {len(removable)} finished game(s)")
        return removable

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    def _dispatch(self, events: list[SignalEvent]) -> None:
        for event in events:
            self._stats.events_emitted += 1
            task = asyncio.create_task(self._deliver(event))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _deliver(self, event: SignalEvent) -> None:
        async with self._dispatch_locks.hold(event.signal.id):
            for sink in self._sinks:
                try:
                    await sink.handle(event)
                except Exception as e:
                    self._stats.sink_errors += 1
                    logger.error(
                        f"Sink {getattr(sink, 'name', type(sink).__name__)} failed for "
                        f"{event.kind.value} {event.signal.id}: {e}",
                        exc_info=True,
                    )

    async def drain(self) -> None:
        """Wait for all in-flight sink deliveries."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def health(self) -> dict[str, Any]:
        return {
            "games": self._cache.counts(),
            "signals": self._lifecycle.count(),
            "strategies": len(self._strategies),
            "debounce": self._debounce.stats(),
            "stats": self._stats.to_dict(),
            "pending_deliveries": len(self._pending),
        }

    # -------------------------------------------------------------------------
    # Read views (run on the loop that owns the state)
    # -------------------------------------------------------------------------

    async def list_games(self) -> list[dict[str, Any]]:
        """Serialized live cache, closest to completion first."""
        return [g.to_dict() for g in self._cache.list_sorted()]

    async def list_open_signals(self, game_id: Optional[str] = None) -> list[dict[str, Any]]:
        """Serialized tracking and placed signals, optionally for one game."""
        signals = [a.signal.to_dict() for a in self._lifecycle.active_signals(game_id)]
        signals.extend(s.to_dict() for s in self._lifecycle.placed_signals(game_id))
        return signals

    async def health_snapshot(self) -> dict[str, Any]:
        return self.health()
