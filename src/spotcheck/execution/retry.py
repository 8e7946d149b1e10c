"""Retry scheduling with exponential backoff, jitter, and circuit breakers.

``RetryScheduler`` runs an async operation up to ``policy.max_attempts``
times. Every failure is classified into a ``TypedError``; only kinds listed
in ``policy.retryable_kinds`` whose taxonomy marks them retryable are tried
again. Non-retryable failures and the last attempt raise immediately, with
no sleep.

Delay for attempt ``n`` (1-based)::

    raw   = min(base_delay * backoff_multiplier ** (n - 1), max_delay)
    delay = min(raw + uniform(0, jitter_ratio * raw), max_delay)

Example:
    >>> from spotcheck.execution.retry import RetryScheduler, DEFAULT_RETRY_POLICY
    >>>
    >>> scheduler = RetryScheduler(ErrorClassifier())
    >>> challenges = await scheduler.execute_with_retry(api.fetch_challenges)
    >>> profile = await scheduler.execute_with_circuit_breaker(
    ...     api.fetch_profile, "fetch_profile"
    ... )
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from spotcheck.core.classifier import ErrorClassifier
from spotcheck.core.errors import CircuitOpenError, ErrorKind, TypedError
from spotcheck.core.logging import get_logger
from spotcheck.execution.circuit_breaker import CircuitBreaker, CircuitBreakerRegistry

if TYPE_CHECKING:
    from spotcheck.core.settings import SpotcheckSettings

T = TypeVar("T")

logger = get_logger(__name__)

Operation = Callable[[], Awaitable[T]]
RetryCallback = Callable[[int, TypedError, float], None]
FailureHook = Callable[[TypedError, int], None]

_TRANSIENT_KINDS = frozenset(
    {
        ErrorKind.NETWORK_ERROR,
        ErrorKind.API_ERROR,
        ErrorKind.TIMEOUT_ERROR,
        ErrorKind.RATE_LIMITED,
    }
)


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff parameters for one call site.

    Attributes:
        max_attempts: Total attempts including the first one
        base_delay: Delay before the second attempt, in seconds
        max_delay: Upper bound on any single delay, in seconds
        backoff_multiplier: Growth factor between attempts (> 1)
        retryable_kinds: Error kinds worth retrying under this policy
        jitter_ratio: Max jitter as a fraction of the raw delay
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    backoff_multiplier: float = 2.0
    retryable_kinds: frozenset[ErrorKind] = field(default=_TRANSIENT_KINDS)
    jitter_ratio: float = 0.10

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be >= 0")
        if self.backoff_multiplier <= 1:
            raise ValueError("backoff_multiplier must be > 1")
        if not 0 <= self.jitter_ratio <= 1:
            raise ValueError("jitter_ratio must be within [0, 1]")
        object.__setattr__(
            self, "retryable_kinds", frozenset(ErrorKind(k) for k in self.retryable_kinds)
        )

    @classmethod
    def from_settings(cls, settings: SpotcheckSettings) -> RetryPolicy:
        return cls(
            max_attempts=settings.retry_max_attempts,
            base_delay=settings.retry_base_delay,
            max_delay=settings.retry_max_delay,
            backoff_multiplier=settings.retry_backoff_multiplier,
        )

    def with_overrides(self, **changes: Any) -> RetryPolicy:
        """Copy of this policy with ``changes`` applied."""
        return replace(self, **changes)

    def allows(self, error: TypedError) -> bool:
        """Whether ``error`` is worth another attempt under this policy.

        ``retryable_kinds`` is authoritative, so a preset may opt in to a
        kind the taxonomy marks non-retryable (``STORAGE_POLICY`` does).
        """
        return error.kind in self.retryable_kinds


DEFAULT_RETRY_POLICY = RetryPolicy()

# Presets for the game client's main call sites
API_POLICY = DEFAULT_RETRY_POLICY
GPS_POLICY = RetryPolicy(
    max_attempts=2,
    base_delay=2.0,
    max_delay=10.0,
    retryable_kinds=frozenset({ErrorKind.TIMEOUT_ERROR}),
)
STORAGE_POLICY = RetryPolicy(
    max_attempts=2,
    base_delay=0.5,
    max_delay=2.0,
    retryable_kinds=frozenset({ErrorKind.STORAGE_ERROR}),
)


def compute_delay(
    attempt: int,
    policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    rng: Callable[[], float] = random.random,
) -> float:
    """Delay in seconds after failed attempt ``attempt`` (1-based).

    Never exceeds ``policy.max_delay``.
    """
    if attempt < 1:
        raise ValueError("attempt is 1-based")
    raw = min(policy.base_delay * policy.backoff_multiplier ** (attempt - 1), policy.max_delay)
    jitter = rng() * policy.jitter_ratio * raw
    return min(raw + jitter, policy.max_delay)


@dataclass(frozen=True)
class BatchOutcome(Generic[T]):
    """Result of one operation in ``RetryScheduler.retry_batch``."""

    success: bool
    result: T | None = None
    error: TypedError | None = None


class RetryScheduler:
    """Async retry executor.

    Args:
        classifier: Turns raw exceptions into ``TypedError`` records
        breakers: Registry used by :meth:`execute_with_circuit_breaker`
        sleep: Awaitable sleep, replaced by a recorder in tests
        rng: Source of jitter in ``[0, 1)``
    """

    def __init__(
        self,
        classifier: ErrorClassifier,
        breakers: CircuitBreakerRegistry | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ):
        self._classifier = classifier
        self._breakers = breakers if breakers is not None else CircuitBreakerRegistry()
        self._sleep = sleep
        self._rng = rng

    @property
    def classifier(self) -> ErrorClassifier:
        return self._classifier

    @property
    def breakers(self) -> CircuitBreakerRegistry:
        return self._breakers

    async def execute_with_retry(
        self,
        operation: Operation[T],
        policy: RetryPolicy | None = None,
        *,
        should_retry: Callable[[BaseException], bool] | None = None,
        on_retry: RetryCallback | None = None,
        on_failure: FailureHook | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> T:
        """Run ``operation`` with backoff.

        Args:
            operation: Zero-argument coroutine function
            policy: Backoff parameters (default ``DEFAULT_RETRY_POLICY``)
            should_retry: Predicate on the raw exception, replaces the
                kind-based decision
            on_retry: Called as ``(attempt, error, delay)`` before sleeping
            on_failure: Called as ``(error, attempt)`` for every failed attempt
            context: Extra classification context

        Returns:
            Result of the first successful attempt

        Raises:
            TypedError: The classified failure of the last attempt made
        """
        return await self._run(
            operation,
            policy or DEFAULT_RETRY_POLICY,
            breaker=None,
            should_retry=should_retry,
            on_retry=on_retry,
            on_failure=on_failure,
            context=context,
        )

    async def execute_with_circuit_breaker(
        self,
        operation: Operation[T],
        circuit_key: str,
        policy: RetryPolicy | None = None,
        *,
        should_retry: Callable[[BaseException], bool] | None = None,
        on_retry: RetryCallback | None = None,
        on_failure: FailureHook | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> T:
        """Like :meth:`execute_with_retry`, with each attempt gated by the
        breaker registered under ``circuit_key``.

        A ``CircuitOpenError`` is terminal and never retried.
        """
        breaker = self._breakers.get_or_create(circuit_key)
        ctx = {"circuit": circuit_key, **(context or {})}
        return await self._run(
            operation,
            policy or DEFAULT_RETRY_POLICY,
            breaker=breaker,
            should_retry=should_retry,
            on_retry=on_retry,
            on_failure=on_failure,
            context=ctx,
        )

    async def retry_batch(
        self,
        operations: Iterable[Operation[T]],
        policy: RetryPolicy | None = None,
    ) -> list[BatchOutcome[T]]:
        """Run independent operations concurrently, each with its own retries.

        Outcomes are returned in input order; one failure never cancels
        the others.
        """

        async def _one(op: Operation[T]) -> BatchOutcome[T]:
            try:
                return BatchOutcome(success=True, result=await self.execute_with_retry(op, policy))
            except TypedError as error:
                return BatchOutcome(success=False, error=error)

        return list(await asyncio.gather(*(_one(op) for op in operations)))

    async def _run(
        self,
        operation: Operation[T],
        policy: RetryPolicy,
        *,
        breaker: CircuitBreaker | None,
        should_retry: Callable[[BaseException], bool] | None,
        on_retry: RetryCallback | None,
        on_failure: FailureHook | None,
        context: Mapping[str, Any] | None,
    ) -> T:
        attempt = 0
        while True:
            attempt += 1
            try:
                if breaker is not None:
                    return await breaker.call(operation)
                return await operation()
            except Exception as exc:
                error = self._classifier.classify(exc, {**(context or {}), "attempt": attempt})
                if on_failure is not None:
                    on_failure(error, attempt)

                if isinstance(error, CircuitOpenError):
                    retry = False
                elif should_retry is not None:
                    retry = should_retry(exc)
                else:
                    retry = policy.allows(error)

                if not retry or attempt >= policy.max_attempts:
                    if error is exc:
                        raise
                    raise error from exc

                delay = compute_delay(attempt, policy, self._rng)
                logger.info(
                    "retry_scheduled",
                    attempt=attempt,
                    max_attempts=policy.max_attempts,
                    kind=error.kind.value,
                    delay=round(delay, 3),
                    correlation_id=error.correlation_id,
                )
                if on_retry is not None:
                    on_retry(attempt, error, delay)
                await self._sleep(delay)


__all__ = [
    "API_POLICY",
    "BatchOutcome",
    "DEFAULT_RETRY_POLICY",
    "GPS_POLICY",
    "RetryPolicy",
    "RetryScheduler",
    "STORAGE_POLICY",
    "compute_delay",
]
