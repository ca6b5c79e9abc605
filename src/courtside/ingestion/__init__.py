"""
Ingestion Layer - Inbound game updates and live state.

This module provides:
    - GameSnapshot / GameUpdate: Live game state and partial updates
    - parse_game_update: Webhook payload mapping (raises PayloadError)
    - LiveGameCache: Per-game snapshot store with stale eviction
    - DebounceGuard: Per-game throttle plus in-flight flag
    - WebhookServer: Flask intake and read API

Critical Gotchas Handled:
    - Partial updates never overwrite fields the payload did not carry
    - Final games are never evicted as stale
"""

from .debounce import AdmitResult, DebounceConfig, DebounceGuard
from .live_cache import CacheConfig, LiveGameCache
from .models import (
    GameSnapshot,
    GameStatus,
    GameUpdate,
    PayloadError,
    derive_status,
    format_clock,
    parse_clock,
    parse_game_update,
)
from .webhook import WebhookServer

__all__ = [
    # Models
    "GameSnapshot",
    "GameStatus",
    "GameUpdate",
    "PayloadError",
    "derive_status",
    "format_clock",
    "parse_clock",
    "parse_game_update",
    # Cache / debounce
    "CacheConfig",
    "LiveGameCache",
    "AdmitResult",
    "DebounceConfig",
    "DebounceGuard",
    # HTTP
    "WebhookServer",
]
