"""
ErrorHandler: the facade call sites go through.

Flow for ``execute_resilient``::

    operation ──► RetryScheduler (+ CircuitBreaker per key)
                    │ every failed attempt ─► handle (log by severity, sink if critical)
                    ▼ exhausted / not retryable
                  DegradationManager.apply_degradation
                    │ degraded ─► DegradationResult
                    ▼ not degraded
                  original TypedError re-raised

The UI collaborator receives ``present(error)``: the user message, the
correlation id and an ordered list of ``RecoveryAction`` values. Actions are
plain tagged records; the UI decides what "redirect to login" means.

Tags:
    error-handling, retry, degradation, facade, spotcheck

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TypeVar

from spotcheck.core.classifier import ErrorClassifier
from spotcheck.core.errors import ErrorKind, Severity, TypedError
from spotcheck.core.logging import get_logger
from spotcheck.execution.retry import DEFAULT_RETRY_POLICY, RetryPolicy, RetryScheduler
from spotcheck.resilience.degradation import DegradationManager, DegradationResult, Operation

T = TypeVar("T")

logger = get_logger(__name__)

MonitoringSink = Callable[[TypedError], Awaitable[None] | None]

_LOG_LEVELS: dict[Severity, int] = {
    Severity.LOW: logging.INFO,
    Severity.MEDIUM: logging.WARNING,
    Severity.HIGH: logging.ERROR,
    Severity.CRITICAL: logging.CRITICAL,
}


class RecoveryKind(str, Enum):
    RETRY = "retry"
    FALLBACK = "fallback"
    REDIRECT = "redirect"
    MANUAL = "manual"


@dataclass(frozen=True)
class RecoveryAction:
    """Something the player can do about an error."""

    kind: RecoveryKind
    label: str
    payload: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "label": self.label, "payload": dict(self.payload)}


class ErrorHandler:
    """Classify, log, retry, degrade.

    Args:
        classifier: Shared classifier (owns the diagnostics buffer)
        scheduler: Retry executor with its breaker registry
        degradation: Fallback strategies
        monitoring_sink: Receives critical errors; sync or async, best effort
        default_policy: Policy used when a call does not pass one
    """

    def __init__(
        self,
        classifier: ErrorClassifier,
        scheduler: RetryScheduler,
        degradation: DegradationManager,
        *,
        monitoring_sink: MonitoringSink | None = None,
        default_policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    ):
        self._classifier = classifier
        self._scheduler = scheduler
        self._degradation = degradation
        self._sink = monitoring_sink
        self._default_policy = default_policy
        self._pending_alerts: set[asyncio.Task[Any]] = set()

    @property
    def classifier(self) -> ErrorClassifier:
        return self._classifier

    @property
    def scheduler(self) -> RetryScheduler:
        return self._scheduler

    @property
    def degradation(self) -> DegradationManager:
        return self._degradation

    # ------------------------------------------------------------------ #
    # Classification and reporting
    # ------------------------------------------------------------------ #

    def handle_error(
        self, error: BaseException, context: Mapping[str, Any] | None = None
    ) -> TypedError:
        """Classify ``error``, log it and alert monitoring if critical."""
        typed = self._classifier.classify(error, context)
        self._report(typed)
        return typed

    def create_error(
        self,
        kind: ErrorKind | str,
        cause: BaseException | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> TypedError:
        """Build a ``TypedError`` directly and record it."""
        typed = TypedError(
            ErrorKind(kind),
            str(cause) if cause is not None else None,
            context=context,
            cause=cause,
        )
        self._classifier.record(typed)
        self._report(typed)
        return typed

    def _report(self, error: TypedError, attempt: int | None = None) -> None:
        fields: dict[str, Any] = {
            "kind": error.kind.value,
            "severity": error.severity.value,
            "message": error.message,
            "correlation_id": error.correlation_id,
            "retryable": error.retryable,
        }
        if attempt is not None:
            fields["attempt"] = attempt
        logger.log(_LOG_LEVELS[error.severity], "error_handled", **fields)
        if error.severity is Severity.CRITICAL:
            self._alert(error)

    def _alert(self, error: TypedError) -> None:
        if self._sink is None:
            return
        try:
            result = self._sink(error)
        except Exception as e:
            logger.warning("monitoring_alert_failed", correlation_id=error.correlation_id, error=str(e))
            return
        if not inspect.isawaitable(result):
            return

        async def _guarded() -> None:
            try:
                await result
            except Exception as e:
                logger.warning(
                    "monitoring_alert_failed", correlation_id=error.correlation_id, error=str(e)
                )

        try:
            task = asyncio.get_running_loop().create_task(_guarded())
        except RuntimeError:
            # No running loop to deliver an async alert on.
            if inspect.iscoroutine(result):
                result.close()
            logger.warning("monitoring_alert_dropped", correlation_id=error.correlation_id)
            return
        self._pending_alerts.add(task)
        task.add_done_callback(self._pending_alerts.discard)

    # ------------------------------------------------------------------ #
    # Execution
    # ------------------------------------------------------------------ #

    async def execute_with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        policy: RetryPolicy | None = None,
        circuit_key: str | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> T:
        """Run ``operation`` with retries, through a breaker if ``circuit_key`` is set.

        Raises:
            TypedError: The classified failure once retries are exhausted
        """
        policy = policy or self._default_policy
        if circuit_key is not None:
            return await self._scheduler.execute_with_circuit_breaker(
                operation, circuit_key, policy, on_failure=self._report, context=context
            )
        return await self._scheduler.execute_with_retry(
            operation, policy, on_failure=self._report, context=context
        )

    async def execute_resilient(
        self,
        operation: Callable[[], Awaitable[T]],
        operation_name: str | Operation,
        *,
        payload: Mapping[str, Any] | None = None,
        policy: RetryPolicy | None = None,
        circuit_key: str | None = None,
        cache_key: str | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> DegradationResult:
        """Retry first, then degrade.

        On success the result is returned undegraded (and written to the
        offline cache under ``cache_key`` if given). If no strategy can
        degrade the failure, the original ``TypedError`` is raised.
        """
        name = operation_name.value if isinstance(operation_name, Operation) else operation_name
        ctx = {"operation": name, **(context or {})}
        try:
            data = await self.execute_with_retry(
                operation, policy=policy, circuit_key=circuit_key, context=ctx
            )
        except TypedError as error:
            result = await self._degradation.apply_degradation(error, name, payload=payload)
            if result.degraded:
                return result
            raise

        if cache_key is not None:
            self._degradation.cache_data(cache_key, data)
        return DegradationResult(data=data, degraded=False)

    # ------------------------------------------------------------------ #
    # UI payloads
    # ------------------------------------------------------------------ #

    def recovery_actions(self, error: TypedError) -> list[RecoveryAction]:
        """Ordered actions to offer for ``error``."""
        kind = error.kind
        actions: list[RecoveryAction] = []

        if kind in (ErrorKind.GPS_UNAVAILABLE, ErrorKind.GPS_PERMISSION_DENIED):
            actions.append(
                RecoveryAction(RecoveryKind.MANUAL, "Enter Location Manually", {"target": "manual_location"})
            )
        elif kind in (ErrorKind.NETWORK_ERROR, ErrorKind.TIMEOUT_ERROR):
            if error.retryable:
                actions.append(RecoveryAction(RecoveryKind.RETRY, "Try Again"))
            actions.append(RecoveryAction(RecoveryKind.FALLBACK, "Work Offline", {"target": "offline_mode"}))
        elif kind is ErrorKind.AUTHENTICATION_ERROR:
            actions.append(RecoveryAction(RecoveryKind.REDIRECT, "Log In Again", {"target": "login"}))
        elif kind is ErrorKind.CHALLENGE_EXPIRED:
            actions.append(
                RecoveryAction(RecoveryKind.REDIRECT, "Browse Active Challenges", {"target": "challenges"})
            )
        elif kind is ErrorKind.LOCATION_TOO_FAR:
            actions.append(RecoveryAction(RecoveryKind.MANUAL, "Get Directions", {"target": "directions"}))
        elif kind is ErrorKind.RATE_LIMITED:
            retry_after = error.context.get("retry_after")
            payload = {"after": retry_after} if retry_after is not None else {}
            actions.append(RecoveryAction(RecoveryKind.RETRY, "Try Again", payload))
        elif error.retryable:
            actions.append(RecoveryAction(RecoveryKind.RETRY, "Try Again"))

        return actions

    def present(self, error: TypedError) -> dict[str, Any]:
        """Display payload for the UI collaborator. Never includes the internal message."""
        return {
            **error.for_user(),
            "severity": error.severity.value,
            "actions": [action.to_dict() for action in self.recovery_actions(error)],
        }

    def recent_errors(self, limit: int = 10) -> list[TypedError]:
        return self._classifier.recent(limit)

    def clear_error_log(self) -> None:
        self._classifier.clear()


__all__ = [
    "ErrorHandler",
    "MonitoringSink",
    "RecoveryAction",
    "RecoveryKind",
]
