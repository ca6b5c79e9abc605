"""
Tests for BackgroundTasksManager.

The BackgroundTasksManager runs periodic async tasks for:
- Stale game eviction and finished game cleanup
- Debounce table cleanup
- Strategy and team stats refresh
"""
import asyncio
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from courtside.core.background_tasks import (
    BackgroundTaskConfig,
    BackgroundTasksManager,
)
from courtside.strategies.context import TeamStats
from courtside.strategies.models import Strategy


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def mock_engine():
    """Mock SignalEngine."""
    engine = MagicMock()
    engine.evict_stale = MagicMock(return_value=["evt-1"])
    engine.cleanup_finished = MagicMock(return_value=[])
    engine.debounce.cleanup = MagicMock(return_value=3)
    return engine


@pytest.fixture
def strategy_loader():
    return AsyncMock(return_value=[Strategy(id="s-1", name="One"), Strategy(id="s-2", name="Two")])


@pytest.fixture
def team_stats_loader():
    return AsyncMock(return_value=[TeamStats(team_id="lal", win_rate=60.0)])


@pytest.fixture
def fast_config():
    """Task configuration with short intervals for testing."""
    return BackgroundTaskConfig(
        eviction_interval_seconds=0.05,
        debounce_cleanup_interval_seconds=0.05,
        strategy_refresh_interval_seconds=0.05,
        team_stats_refresh_interval_seconds=0.05,
        finished_cleanup_interval_seconds=0.05,
    )


@pytest.fixture
def disabled_config():
    """Configuration with all tasks disabled."""
    return BackgroundTaskConfig(
        eviction_enabled=False,
        debounce_cleanup_enabled=False,
        strategy_refresh_enabled=False,
        team_stats_refresh_enabled=False,
        finished_cleanup_enabled=False,
    )


# =============================================================================
# Idempotent Start/Stop Tests
# =============================================================================


class TestIdempotentStartStop:
    """Tests for idempotent start and stop behavior."""

    async def test_start_twice_warns_and_returns(self, mock_engine, fast_config):
        """Starting twice should log warning and return early."""
        manager = BackgroundTasksManager(engine=mock_engine, config=fast_config)

        await manager.start()
        task_count = len(manager._tasks)

        with patch("courtside.core.background_tasks.logger") as mock_logger:
            await manager.start()
            mock_logger.warning.assert_called_once()

        assert manager.is_running
        assert len(manager._tasks) == task_count

        await manager.stop()

    async def test_stop_twice_is_safe(self, mock_engine, fast_config):
        manager = BackgroundTasksManager(engine=mock_engine, config=fast_config)

        await manager.start()
        await manager.stop()
        assert not manager.is_running

        await manager.stop()
        assert not manager.is_running

    async def test_stop_without_start_is_safe(self, mock_engine, fast_config):
        manager = BackgroundTasksManager(engine=mock_engine, config=fast_config)

        await manager.stop()
        assert not manager.is_running


# =============================================================================
# Task Creation Gating Tests
# =============================================================================


class TestTaskCreationGating:
    """Tests for task creation based on config and loaders."""

    async def test_refresh_tasks_require_loaders(self, mock_engine, fast_config):
        manager = BackgroundTasksManager(engine=mock_engine, config=fast_config)

        await manager.start()

        task_names = {t.get_name() for t in manager._tasks}
        assert task_names == {"stale_eviction", "debounce_cleanup", "finished_cleanup"}

        await manager.stop()

    async def test_all_tasks_with_loaders(self, mock_engine, fast_config, strategy_loader, team_stats_loader):
        manager = BackgroundTasksManager(
            engine=mock_engine,
            config=fast_config,
            strategy_loader=strategy_loader,
            team_stats_loader=team_stats_loader,
        )

        await manager.start()

        assert len(manager._tasks) == 5

        await manager.stop()

    async def test_disabled_config_starts_nothing(self, mock_engine, disabled_config, strategy_loader):
        manager = BackgroundTasksManager(
            engine=mock_engine, config=disabled_config, strategy_loader=strategy_loader
        )

        await manager.start()

        assert manager._tasks == []

        await manager.stop()


# =============================================================================
# Job Tests
# =============================================================================


class TestJobs:
    """Tests for the individual jobs."""

    def test_evict_stale(self, mock_engine):
        manager = BackgroundTasksManager(engine=mock_engine)

        assert manager.evict_stale() == 1
        mock_engine.evict_stale.assert_called_once()

    def test_cleanup_debounce(self, mock_engine):
        manager = BackgroundTasksManager(engine=mock_engine)

        assert manager.cleanup_debounce() == 3

    def test_cleanup_finished(self, mock_engine):
        mock_engine.cleanup_finished.return_value = ["evt-1", "evt-2"]
        manager = BackgroundTasksManager(engine=mock_engine)

        assert manager.cleanup_finished() == 2

    async def test_refresh_strategies(self, mock_engine, strategy_loader):
        manager = BackgroundTasksManager(engine=mock_engine, strategy_loader=strategy_loader)

        assert await manager.refresh_strategies() == 2
        loaded = mock_engine.set_strategies.call_args[0][0]
        assert [s.id for s in loaded] == ["s-1", "s-2"]

    async def test_refresh_strategies_failure_keeps_old_set(self, mock_engine):
        loader = AsyncMock(side_effect=RuntimeError("store down"))
        manager = BackgroundTasksManager(engine=mock_engine, strategy_loader=loader)

        with pytest.raises(RuntimeError):
            await manager.refresh_strategies()

        mock_engine.set_strategies.assert_not_called()

    async def test_refresh_without_loader(self, mock_engine):
        manager = BackgroundTasksManager(engine=mock_engine)

        assert await manager.refresh_strategies() == 0
        assert await manager.refresh_team_stats() == 0

    async def test_refresh_team_stats(self, mock_engine, team_stats_loader):
        manager = BackgroundTasksManager(engine=mock_engine, team_stats_loader=team_stats_loader)

        assert await manager.refresh_team_stats() == 1
        mock_engine.set_team_stats.assert_called_once()


# =============================================================================
# Periodic Loop Tests
# =============================================================================


class TestPeriodicLoop:
    """Tests for the periodic task loop."""

    async def test_jobs_run_periodically(self, mock_engine, fast_config, strategy_loader):
        manager = BackgroundTasksManager(
            engine=mock_engine, config=fast_config, strategy_loader=strategy_loader
        )

        await manager.start()
        await asyncio.sleep(0.2)
        await manager.stop()

        assert mock_engine.evict_stale.call_count >= 2
        assert strategy_loader.await_count >= 2

    async def test_failing_job_keeps_loop_alive(self, mock_engine):
        """An exception is logged and the loop retries after a pause."""
        config = BackgroundTaskConfig(
            eviction_interval_seconds=0.01,
            debounce_cleanup_enabled=False,
            strategy_refresh_enabled=False,
            team_stats_refresh_enabled=False,
            finished_cleanup_enabled=False,
        )
        calls = []

        def flaky_evict():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("boom")
            return []

        mock_engine.evict_stale.side_effect = flaky_evict
        manager = BackgroundTasksManager(engine=mock_engine, config=config)

        with patch("courtside.core.background_tasks.logger") as mock_logger:
            await manager.start()
            await asyncio.sleep(1.3)
            await manager.stop()

        assert len(calls) >= 2
        mock_logger.error.assert_called_once()
