"""Spotcheck execution — circuit breakers and retry scheduling."""

from spotcheck.execution.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerRegistry,
    CircuitState,
    CircuitStats,
)
from spotcheck.execution.retry import (
    API_POLICY,
    DEFAULT_RETRY_POLICY,
    GPS_POLICY,
    STORAGE_POLICY,
    BatchOutcome,
    RetryPolicy,
    RetryScheduler,
    compute_delay,
)

__all__ = [
    "API_POLICY",
    "BatchOutcome",
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "CircuitState",
    "CircuitStats",
    "DEFAULT_RETRY_POLICY",
    "GPS_POLICY",
    "RetryPolicy",
    "RetryScheduler",
    "STORAGE_POLICY",
    "compute_delay",
]
