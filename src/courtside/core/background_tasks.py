"""
BackgroundTasksManager - Manages async background tasks.

Handles periodic tasks like:
- Stale game eviction
- Debounce table cleanup
- Strategy refresh from the record store
- Team stats refresh
- Finished game cleanup

None of these run on the update path, so the engine never waits on them.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Iterable, List, Optional

from courtside.strategies.context import TeamStats
from courtside.strategies.models import Strategy

if TYPE_CHECKING:
    from courtside.core.engine import SignalEngine

logger = logging.getLogger(__name__)

StrategyLoader = Callable[[], Awaitable[Iterable[Strategy]]]
TeamStatsLoader = Callable[[], Awaitable[Iterable[TeamStats]]]


@dataclass
class BackgroundTaskConfig:
    """Configuration for background tasks."""

    # Stale game eviction
    eviction_interval_seconds: float = 5
    eviction_enabled: bool = True

    # Debounce table cleanup
    debounce_cleanup_interval_seconds: float = 60
    debounce_cleanup_enabled: bool = True

    # Strategy refresh
    strategy_refresh_interval_seconds: float = 60
    strategy_refresh_enabled: bool = True

    # Team stats refresh
    team_stats_refresh_interval_seconds: float = 300
    team_stats_refresh_enabled: bool = True

    # Finished game cleanup
    finished_cleanup_interval_seconds: float = 300
    finished_cleanup_enabled: bool = True


class BackgroundTasksManager:
    """
    Manages background async tasks for the signal engine.

    A failing iteration is logged and the loop carries on after a short
    pause. The manager handles graceful shutdown.

    Usage:
        manager = BackgroundTasksManager(
            engine=engine,
            strategy_loader=strategy_repo.get_strategies,
            config=BackgroundTaskConfig(),
        )
        await manager.start()
        # ... bot runs ...
        await manager.stop()
    """

    def __init__(
        self,
        engine: "SignalEngine",
        config: Optional[BackgroundTaskConfig] = None,
        strategy_loader: Optional[StrategyLoader] = None,
        team_stats_loader: Optional[TeamStatsLoader] = None,
    ) -> None:
        """
        Initialize the background tasks manager.

        Args:
            engine: SignalEngine whose state is maintained
            config: Task configuration
            strategy_loader: Async callable returning the current strategies
            team_stats_loader: Async callable returning per-team stats
        """
        self._engine = engine
        self._config = config or BackgroundTaskConfig()
        self._strategy_loader = strategy_loader
        self._team_stats_loader = team_stats_loader

        self._running = False
        self._tasks: List[asyncio.Task] = []
        self._stop_event = asyncio.Event()

    @property
    def is_running(self) -> bool:
        """Whether the manager is running."""
        return self._running

    async def start(self) -> None:
        """Start all background tasks."""
        if self._running:
            logger.warning("BackgroundTasksManager already running")
            return

        logger.info("Starting background tasks...")
        self._running = True
        self._stop_event.clear()

        config = self._config
        if config.eviction_enabled:
            self._spawn("stale_eviction", config.eviction_interval_seconds, self.evict_stale)

        if config.debounce_cleanup_enabled:
            self._spawn(
                "debounce_cleanup",
                config.debounce_cleanup_interval_seconds,
                self.cleanup_debounce,
            )

        if config.strategy_refresh_enabled and self._strategy_loader:
            self._spawn(
                "strategy_refresh",
                config.strategy_refresh_interval_seconds,
                self.refresh_strategies,
            )

        if config.team_stats_refresh_enabled and self._team_stats_loader:
            self._spawn(
                "team_stats_refresh",
                config.team_stats_refresh_interval_seconds,
                self.refresh_team_stats,
            )

        if config.finished_cleanup_enabled:
            self._spawn(
                "finished_cleanup",
                config.finished_cleanup_interval_seconds,
                self.cleanup_finished,
            )

        logger.info(f"Background tasks started: {len(self._tasks)} tasks")

    async def stop(self) -> None:
        """Stop all background tasks gracefully."""
        if not self._running:
            return

        logger.info("Stopping background tasks...")
        self._running = False
        self._stop_event.set()

        for task in self._tasks:
            if not task.done():
                task.cancel()

        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

        self._tasks.clear()
        logger.info("Background tasks stopped")

    def _spawn(self, name: str, interval: float, job: Callable[[], Any]) -> None:
        task = asyncio.create_task(self._periodic(name, interval, job), name=name)
        self._tasks.append(task)
        logger.info(f"Started {name} task (interval={interval}s)")

    async def _periodic(self, name: str, interval: float, job: Callable[[], Any]) -> None:
        while self._running:
            try:
                # Wait for interval or stop
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
                    break  # Stop requested
                except asyncio.TimeoutError:
                    pass

                if not self._running:
                    break

                result = job()
                if inspect.isawaitable(result):
                    await result

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in {name}: {e}")
                await asyncio.sleep(1)

    # -------------------------------------------------------------------------
    # Jobs (public so they can be run once at startup and from tests)
    # -------------------------------------------------------------------------

    def evict_stale(self) -> int:
        evicted = self._engine.evict_stale()
        return len(evicted)

    def cleanup_debounce(self) -> int:
        return self._engine.debounce.cleanup()

    def cleanup_finished(self) -> int:
        return len(self._engine.cleanup_finished())

    async def refresh_strategies(self) -> int:
        """Reload strategies into the engine. Keeps the old set on failure."""
        if not self._strategy_loader:
            return 0
        strategies = list(await self._strategy_loader())
        self._engine.set_strategies(strategies)
        return len(strategies)

    async def refresh_team_stats(self) -> int:
        if not self._team_stats_loader:
            return 0
        stats = list(await self._team_stats_loader())
        self._engine.set_team_stats(stats)
        logger.debug(f"Refreshed stats for {len(stats)} teams")
        return len(stats)
