"""
Monitoring Layer - Alerting.

This module provides:
    - AlertManager: Discord and SMS notifications with deduplication
    - AlertConfig: Delivery configuration

Alert Deduplication:
    - The same (signal, event kind) alert won't fire twice within the cooldown
"""

from .alerting import AlertConfig, AlertManager

__all__ = [
    "AlertManager",
    "AlertConfig",
]
