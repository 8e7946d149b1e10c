"""
Graceful degradation: substitute offline behavior for failed operations.

Once retries are exhausted (or never allowed), the handler offers the
classified error to ``DegradationManager.apply_degradation``. The manager
walks its strategies in a fixed order and runs the first one whose
``condition`` holds for the error and whose ``operations`` include the
failed operation. Whatever happens inside a fallback, the caller gets a
``DegradationResult`` back; a secondary failure is logged and reported as
``degraded=False``.

Built-in strategies (first match wins):

==========================  ==========================  =============================
strategy                    kinds                       operations
==========================  ==========================  =============================
cached_challenges           connectivity                fetch_challenges
cached_profile              connectivity                fetch_profile
cached_leaderboard          connectivity                fetch_leaderboard
manual_location             gps_*                       any
local_submission_queue      connectivity                submit_proof, update_profile,
                                                        track_event
==========================  ==========================  =============================

"connectivity" means network_error, timeout_error, api_error, circuit_open.

Tags:
    degradation, offline, fallback, cache, spotcheck

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from spotcheck.core.errors import ErrorKind, TypedError
from spotcheck.core.logging import get_logger
from spotcheck.resilience.cache import (
    CHALLENGES_KEY,
    LEADERBOARD_KEY,
    USER_PROFILE_KEY,
    OfflineCache,
)
from spotcheck.resilience.offline_queue import OfflineQueue, QueueItemKind

if TYPE_CHECKING:
    from spotcheck.core.connectivity import ConnectivityChange, ConnectivityMonitor

logger = get_logger(__name__)


class Operation(str, Enum):
    """Well-known operation names used to scope strategies."""

    FETCH_CHALLENGES = "fetch_challenges"
    FETCH_PROFILE = "fetch_profile"
    FETCH_LEADERBOARD = "fetch_leaderboard"
    SUBMIT_PROOF = "submit_proof"
    UPDATE_PROFILE = "update_profile"
    TRACK_EVENT = "track_event"
    LOCATE_USER = "locate_user"


CONNECTIVITY_KINDS = frozenset(
    {
        ErrorKind.NETWORK_ERROR,
        ErrorKind.TIMEOUT_ERROR,
        ErrorKind.API_ERROR,
        ErrorKind.CIRCUIT_OPEN,
    }
)
GPS_KINDS = frozenset({ErrorKind.GPS_UNAVAILABLE, ErrorKind.GPS_PERMISSION_DENIED})

_QUEUE_KINDS: dict[str, QueueItemKind] = {
    Operation.SUBMIT_PROOF.value: QueueItemKind.SUBMISSION,
    Operation.UPDATE_PROFILE.value: QueueItemKind.PROFILE_UPDATE,
    Operation.TRACK_EVENT.value: QueueItemKind.ANALYTICS_EVENT,
}


class FallbackUnavailable(LookupError):
    """A fallback has nothing to serve (e.g. cache miss)."""


@dataclass(frozen=True)
class DegradationRequest:
    """Everything a fallback may look at."""

    error: TypedError
    operation: str
    payload: Mapping[str, Any] | None = None
    original_data: Any = None


Fallback = Callable[[DegradationRequest], Any | Awaitable[Any]]


@dataclass(frozen=True)
class DegradationStrategy:
    """One way of degrading.

    Attributes:
        name: Identifier reported in ``DegradationResult.strategy``
        condition: Predicate on the classified error
        fallback: Produces substitute data (sync or async); raises
            ``FallbackUnavailable`` when it has nothing to offer
        user_message: Shown to the player when this strategy is used
        operations: Operation names this applies to; empty means any
    """

    name: str
    condition: Callable[[TypedError], bool]
    fallback: Fallback
    user_message: str
    operations: frozenset[str] = field(default_factory=frozenset)

    def applies_to(self, error: TypedError, operation: str) -> bool:
        if self.operations and operation not in self.operations:
            return False
        return bool(self.condition(error))


@dataclass(frozen=True)
class DegradationResult:
    """What ``apply_degradation`` hands back to the caller."""

    data: Any = None
    degraded: bool = False
    strategy: DegradationStrategy | None = None

    @property
    def strategy_name(self) -> str | None:
        return self.strategy.name if self.strategy else None

    @property
    def user_message(self) -> str | None:
        return self.strategy.user_message if self.strategy else None


def _kinds(kinds: frozenset[ErrorKind]) -> Callable[[TypedError], bool]:
    def condition(error: TypedError) -> bool:
        return error.kind in kinds

    return condition


def _ops(*operations: Operation) -> frozenset[str]:
    return frozenset(op.value for op in operations)


class DegradationManager:
    """Chooses and runs fallback strategies.

    Args:
        cache: Last-known-good cache for read operations
        queue: Offline queue for failed writes
        strategies: Replaces the built-in list when given
    """

    def __init__(
        self,
        cache: OfflineCache,
        queue: OfflineQueue,
        strategies: Iterable[DegradationStrategy] | None = None,
    ):
        self._cache = cache
        self._queue = queue
        self._offline = False
        self._strategies: list[DegradationStrategy] = (
            list(strategies) if strategies is not None else self._default_strategies()
        )

    def _default_strategies(self) -> list[DegradationStrategy]:
        return [
            DegradationStrategy(
                name="cached_challenges",
                condition=_kinds(CONNECTIVITY_KINDS),
                fallback=lambda request: self._from_cache(CHALLENGES_KEY),
                user_message="Showing cached challenges. Some information may be outdated.",
                operations=_ops(Operation.FETCH_CHALLENGES),
            ),
            DegradationStrategy(
                name="cached_profile",
                condition=_kinds(CONNECTIVITY_KINDS),
                fallback=lambda request: self._from_cache(USER_PROFILE_KEY),
                user_message="Showing cached profile data. Recent changes may not be visible.",
                operations=_ops(Operation.FETCH_PROFILE),
            ),
            DegradationStrategy(
                name="cached_leaderboard",
                condition=_kinds(CONNECTIVITY_KINDS),
                fallback=lambda request: self._from_cache(LEADERBOARD_KEY),
                user_message="Showing cached leaderboard. Rankings may not be current.",
                operations=_ops(Operation.FETCH_LEADERBOARD),
            ),
            DegradationStrategy(
                name="manual_location",
                condition=_kinds(GPS_KINDS),
                fallback=lambda request: {"manual_location": True},
                user_message="GPS unavailable. You can enter your location manually.",
            ),
            DegradationStrategy(
                name="local_submission_queue",
                condition=_kinds(CONNECTIVITY_KINDS),
                fallback=self._enqueue,
                user_message="Saved on this device. It will be sent when the connection is restored.",
                operations=_ops(
                    Operation.SUBMIT_PROOF, Operation.UPDATE_PROFILE, Operation.TRACK_EVENT
                ),
            ),
        ]

    # ------------------------------------------------------------------ #
    # Fallbacks
    # ------------------------------------------------------------------ #

    def _from_cache(self, key: str) -> Any:
        data = self._cache.get(key)
        if data is None:
            raise FallbackUnavailable(f"no cached data for '{key}'")
        return data

    def _enqueue(self, request: DegradationRequest) -> dict[str, Any]:
        if request.payload is None:
            raise FallbackUnavailable(f"nothing to queue for '{request.operation}'")
        item = self._queue.enqueue(_QUEUE_KINDS[request.operation], request.payload)
        return {"queued": True, "item_id": item.id}

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    @property
    def strategies(self) -> tuple[DegradationStrategy, ...]:
        return tuple(self._strategies)

    def add_strategy(self, strategy: DegradationStrategy, index: int | None = None) -> None:
        """Register a strategy, appended unless ``index`` is given."""
        if index is None:
            self._strategies.append(strategy)
        else:
            self._strategies.insert(index, strategy)

    def find_strategy(self, error: TypedError, operation: str | Operation) -> DegradationStrategy | None:
        op = Operation(operation).value if isinstance(operation, Operation) else operation
        return next((s for s in self._strategies if s.applies_to(error, op)), None)

    async def apply_degradation(
        self,
        error: TypedError,
        operation: str | Operation,
        *,
        payload: Mapping[str, Any] | None = None,
        original_data: Any = None,
    ) -> DegradationResult:
        """Run the first matching strategy for ``error`` on ``operation``.

        Never raises: no strategy, nothing to serve, or a failing fallback
        all give ``DegradationResult(data=original_data, degraded=False)``.
        """
        op = operation.value if isinstance(operation, Operation) else operation
        strategy = self.find_strategy(error, op)
        if strategy is None:
            return DegradationResult(data=original_data)

        request = DegradationRequest(
            error=error, operation=op, payload=payload, original_data=original_data
        )
        try:
            data = strategy.fallback(request)
            if inspect.isawaitable(data):
                data = await data
        except FallbackUnavailable as e:
            logger.info(
                "degradation_unavailable",
                strategy=strategy.name,
                operation=op,
                reason=str(e),
                correlation_id=error.correlation_id,
            )
            return DegradationResult(data=original_data)
        except Exception as e:
            logger.error(
                "degradation_fallback_failed",
                strategy=strategy.name,
                operation=op,
                error=str(e),
                correlation_id=error.correlation_id,
            )
            return DegradationResult(data=original_data)

        logger.info(
            "degradation_applied",
            strategy=strategy.name,
            operation=op,
            kind=error.kind.value,
            correlation_id=error.correlation_id,
        )
        return DegradationResult(data=data, degraded=True, strategy=strategy)

    def cache_data(self, key: str, data: Any, ttl: float | None = None) -> None:
        """Write-through helper for successful reads."""
        self._cache.put(key, data, ttl)

    @property
    def cache(self) -> OfflineCache:
        return self._cache

    @property
    def queue(self) -> OfflineQueue:
        return self._queue

    @property
    def is_offline(self) -> bool:
        return self._offline

    def set_offline_mode(self, offline: bool) -> None:
        if offline != self._offline:
            logger.info("offline_mode_changed", offline=offline)
        self._offline = offline

    def attach(self, monitor: ConnectivityMonitor) -> str:
        """Follow ``monitor`` for the offline flag. Returns the token."""
        self._offline = not monitor.is_online

        def _on_change(change: ConnectivityChange) -> None:
            self.set_offline_mode(not change.online)

        return monitor.subscribe(_on_change)


__all__ = [
    "CONNECTIVITY_KINDS",
    "DegradationManager",
    "DegradationRequest",
    "DegradationResult",
    "DegradationStrategy",
    "FallbackUnavailable",
    "GPS_KINDS",
    "Operation",
]
