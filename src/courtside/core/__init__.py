"""
Core Layer - Signal lifecycle and orchestration.

This module provides:
    - SignalEngine: Main orchestrator (update -> cache -> strategies -> lifecycle -> sinks)
    - EngineConfig / EngineStats: Configuration and runtime counters
    - SignalLifecycle: monitoring -> watching -> bet_taken -> settled state machine
    - Signal / SignalEvent: Signal record and the events handed to sinks
    - check_odds / is_past_expiry: Odds alignment and Q4 expiry
    - settle: Deterministic settlement from final scores
    - KeyedLock: Per-key asyncio lock
    - BackgroundTasksManager: Periodic eviction, refresh and cleanup

Data Flow:
    1. Webhook payload becomes a GameUpdate
    2. DebounceGuard admits or rejects it
    3. LiveGameCache merges it under the game lock
    4. Scheduler evaluates each strategy; fires go to SignalLifecycle
    5. Events are delivered to sinks in detached tasks
"""

from .background_tasks import BackgroundTaskConfig, BackgroundTasksManager
from .engine import EngineConfig, EngineStats, EventSink, SignalEngine, UpdateOutcome
from .lifecycle import ActiveSignal, LifecycleConfig, SignalLifecycle
from .locks import KeyedLock
from .odds import DEFAULT_EXPIRY_CUTOFF_SECONDS, check_odds, is_past_expiry, resolve_bet_team
from .settlement import Settlement, settle
from .signals import EventKind, SettlementResult, Signal, SignalEvent, SignalStatus

__all__ = [
    # Engine
    "SignalEngine",
    "EngineConfig",
    "EngineStats",
    "EventSink",
    "UpdateOutcome",
    # Lifecycle
    "SignalLifecycle",
    "LifecycleConfig",
    "ActiveSignal",
    "Signal",
    "SignalEvent",
    "SignalStatus",
    "EventKind",
    "SettlementResult",
    # Odds / settlement
    "DEFAULT_EXPIRY_CUTOFF_SECONDS",
    "check_odds",
    "is_past_expiry",
    "resolve_bet_team",
    "Settlement",
    "settle",
    # Infra
    "KeyedLock",
    "BackgroundTasksManager",
    "BackgroundTaskConfig",
]
