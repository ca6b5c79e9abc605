"""
Storage Layer - Record store access.

This module provides:
    - RecordStoreClient: Async REST client with rate limiting and retries
    - StrategyRepository: Strategies + triggers, parsed and cached
    - SignalRepository: Signal upserts (persistence sink) and restore
    - TeamStatsRepository: Per-team historical stats
"""

from .record_store import RateLimitError, RecordStoreClient, RecordStoreConfig, RecordStoreError
from .signal_repo import SignalRepository
from .strategy_repo import StrategyRepository
from .team_stats_repo import TeamStatsRepository

__all__ = [
    "RecordStoreClient",
    "RecordStoreConfig",
    "RecordStoreError",
    "RateLimitError",
    "SignalRepository",
    "StrategyRepository",
    "TeamStatsRepository",
]
