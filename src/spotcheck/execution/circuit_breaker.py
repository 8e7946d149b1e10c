"""Circuit breaker pattern for fault tolerance.

Prevents cascading failures by failing fast when a remote dependency
(challenge API, leaderboard service, proof upload) keeps failing.

States:
    CLOSED: Normal operation, requests pass through
    OPEN: Failing fast, requests rejected without invoking the operation
    HALF_OPEN: Probing whether the dependency recovered

Transitions:
    CLOSED    --failure_count >= failure_threshold-->  OPEN
    OPEN      --reset_timeout elapsed, next call-->    HALF_OPEN
    HALF_OPEN --required_successes in a row-->         CLOSED
    HALF_OPEN --any failure-->                         OPEN

Reading ``state`` never transitions; the OPEN → HALF_OPEN move happens in
``before_call`` when the next request arrives.

Example:
    >>> from spotcheck.execution.circuit_breaker import CircuitBreaker
    >>>
    >>> breaker = CircuitBreaker(name="challenges", failure_threshold=5)
    >>> challenges = await breaker.call(api.fetch_challenges)
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, TypeVar

from spotcheck.core.errors import CircuitOpenError, utcnow
from spotcheck.core.logging import get_logger

T = TypeVar("T")

logger = get_logger(__name__)


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Rejecting requests
    HALF_OPEN = "half_open"  # Testing recovery


@dataclass
class CircuitStats:
    """Statistics for circuit breaker monitoring."""

    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    rejected_requests: int = 0
    state_changes: int = 0
    last_failure_time: datetime | None = None
    last_success_time: datetime | None = None
    last_state_change: datetime | None = None

    @property
    def failure_rate(self) -> float:
        """Calculate failure rate as percentage."""
        total = self.successful_requests + self.failed_requests
        if total == 0:
            return 0.0
        return (self.failed_requests / total) * 100


@dataclass
class CircuitBreaker:
    """Per-operation circuit breaker.

    Attributes:
        name: Identifier for this circuit (the operation key)
        failure_threshold: Failures in CLOSED before opening
        reset_timeout: Seconds in OPEN before a probe is allowed
        required_successes: Consecutive HALF_OPEN successes needed to close
        clock: Monotonic time source, injectable for tests
    """

    name: str = "default"
    failure_threshold: int = 5
    reset_timeout: float = 60.0
    required_successes: int = 3
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)

    _state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    _failure_count: int = field(default=0, init=False)
    _success_count: int = field(default=0, init=False)
    _opened_at: float | None = field(default=None, init=False)
    _stats: CircuitStats = field(default_factory=CircuitStats, init=False)

    def __post_init__(self) -> None:
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        if self.required_successes < 1:
            raise ValueError("required_successes must be >= 1")
        if self.reset_timeout < 0:
            raise ValueError("reset_timeout must be >= 0")

    @property
    def state(self) -> CircuitState:
        """Current state. Pure read."""
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def success_count(self) -> int:
        return self._success_count

    @property
    def opened_at(self) -> float | None:
        return self._opened_at

    @property
    def stats(self) -> CircuitStats:
        """Get circuit statistics."""
        return self._stats

    def _transition_to(self, new_state: CircuitState) -> None:
        old_state = self._state
        self._state = new_state
        self._stats.state_changes += 1
        self._stats.last_state_change = utcnow()

        if new_state == CircuitState.CLOSED:
            self._failure_count = 0
            self._success_count = 0
            self._opened_at = None
        elif new_state == CircuitState.OPEN:
            self._success_count = 0
            self._opened_at = self.clock()
        elif new_state == CircuitState.HALF_OPEN:
            self._success_count = 0

        logger.info(
            "circuit_state_changed",
            circuit=self.name,
            from_state=old_state.value,
            to_state=new_state.value,
        )

    def before_call(self) -> None:
        """Gate a request.

        Raises:
            CircuitOpenError: If the circuit is OPEN and the reset timeout
                has not elapsed yet.
        """
        self._stats.total_requests += 1
        if self._state == CircuitState.OPEN:
            opened_at = self._opened_at if self._opened_at is not None else self.clock()
            if self.clock() - opened_at < self.reset_timeout:
                self._stats.rejected_requests += 1
                raise CircuitOpenError(self.name, context={"failure_count": self._failure_count})
            self._transition_to(CircuitState.HALF_OPEN)

    def record_success(self) -> None:
        """Record a successful request."""
        self._stats.successful_requests += 1
        self._stats.last_success_time = utcnow()

        if self._state == CircuitState.HALF_OPEN:
            self._success_count += 1
            if self._success_count >= self.required_successes:
                self._transition_to(CircuitState.CLOSED)
        else:
            self._failure_count = 0

    def record_failure(self, error: BaseException | None = None) -> None:
        """Record a failed request."""
        self._failure_count += 1
        self._stats.failed_requests += 1
        self._stats.last_failure_time = utcnow()

        if self._state == CircuitState.CLOSED:
            if self._failure_count >= self.failure_threshold:
                self._transition_to(CircuitState.OPEN)
        elif self._state == CircuitState.HALF_OPEN:
            # Any failure in half-open reopens the circuit
            self._transition_to(CircuitState.OPEN)

    def reset(self) -> None:
        """Reset circuit to closed state."""
        if self._state != CircuitState.CLOSED:
            self._transition_to(CircuitState.CLOSED)
        self._failure_count = 0
        self._success_count = 0
        self._opened_at = None

    def force_open(self) -> None:
        """Force circuit to open state (for testing/maintenance)."""
        self._transition_to(CircuitState.OPEN)

    async def call(
        self, operation: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any
    ) -> T:
        """Execute an async operation through the circuit breaker.

        Raises:
            CircuitOpenError: If the circuit is open; ``operation`` is not invoked.
        """
        self.before_call()
        try:
            result = await operation(*args, **kwargs)
        except Exception as e:
            self.record_failure(e)
            raise
        self.record_success()
        return result


class CircuitBreakerRegistry:
    """Registry of named circuit breakers.

    Each key maps to a single breaker instance for the registry's lifetime.
    Defaults given at construction apply to breakers created lazily.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        reset_timeout: float = 60.0,
        required_successes: int = 3,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._breakers: dict[str, CircuitBreaker] = {}
        self._defaults: dict[str, Any] = {
            "failure_threshold": failure_threshold,
            "reset_timeout": reset_timeout,
            "required_successes": required_successes,
            "clock": clock,
        }

    def get(self, name: str) -> CircuitBreaker | None:
        """Get a circuit breaker by name, returns None if not found."""
        return self._breakers.get(name)

    def get_or_create(self, name: str, **overrides: Any) -> CircuitBreaker:
        """Get or create a circuit breaker by name.

        ``overrides`` only apply when the breaker is first created.
        """
        if name not in self._breakers:
            self._breakers[name] = CircuitBreaker(name=name, **{**self._defaults, **overrides})
        return self._breakers[name]

    def names(self) -> list[str]:
        """List all registered circuit breaker names."""
        return list(self._breakers.keys())

    def snapshot(self) -> dict[str, CircuitState]:
        """Current state of every breaker."""
        return {name: breaker.state for name, breaker in self._breakers.items()}

    def clear(self) -> None:
        """Remove all circuit breakers."""
        self._breakers.clear()

    def reset_all(self) -> None:
        """Reset all circuit breakers."""
        for breaker in self._breakers.values():
            breaker.reset()

    def __len__(self) -> int:
        return len(self._breakers)

    def __contains__(self, name: object) -> bool:
        return name in self._breakers


__all__ = [
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "CircuitState",
    "CircuitStats",
]
