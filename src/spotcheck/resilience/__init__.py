"""Spotcheck resilience — offline cache and queue, degradation, ErrorHandler facade."""

from spotcheck.resilience.cache import OfflineCache
from spotcheck.resilience.degradation import (
    DegradationManager,
    DegradationRequest,
    DegradationResult,
    DegradationStrategy,
    FallbackUnavailable,
    Operation,
)
from spotcheck.resilience.handler import ErrorHandler, RecoveryAction, RecoveryKind
from spotcheck.resilience.offline_queue import (
    OfflineQueue,
    OfflineQueueItem,
    QueueItemKind,
    ReplayReport,
    SyncStatus,
)

__all__ = [
    "DegradationManager",
    "DegradationRequest",
    "DegradationResult",
    "DegradationStrategy",
    "ErrorHandler",
    "FallbackUnavailable",
    "OfflineCache",
    "OfflineQueue",
    "OfflineQueueItem",
    "Operation",
    "QueueItemKind",
    "RecoveryAction",
    "RecoveryKind",
    "ReplayReport",
    "SyncStatus",
]
