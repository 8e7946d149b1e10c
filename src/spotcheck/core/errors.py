"""
Typed error taxonomy for the spotcheck resilience layer.

Every failure the game client can run into (a dropped connection, a 5xx from
the challenge API, a denied location permission, a full storage quota) is
reduced to one ``TypedError`` whose ``kind`` belongs to a closed enum. The
kind alone decides severity, recoverability and retry eligibility, so retry
loops, degradation strategies and the UI never have to inspect raw
exceptions.

Manifesto:
    - **Closed taxonomy:** ``ErrorKind`` is exhaustive; ``TAXONOMY`` must
      carry an entry for every member (checked at import time)
    - **Immutable records:** a TypedError never changes after creation
    - **Two messages:** ``message`` is internal, ``user_message`` is the only
      text allowed in front of a player
    - **Correlation:** every error gets a unique ``correlation_id`` for
      support requests and log search

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────┐
        │                         TypedError                            │
        │  kind ─► TAXONOMY[kind] ─► (severity, recoverable, retryable) │
        │  message | user_message | context | timestamp | correlation_id│
        ├──────────────────────────────────────────────────────────────┤
        │  CircuitOpenError   (kind=circuit_open, never retried)        │
        └──────────────────────────────────────────────────────────────┘

Examples:
    >>> err = TypedError(ErrorKind.NETWORK_ERROR)
    >>> err.retryable, err.severity
    (True, <Severity.MEDIUM: 'medium'>)
    >>> err.for_user()["message"]
    'Connection problem. Check your internet and try again.'

Tags:
    error-handling, taxonomy, retry-logic, spotcheck

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from types import MappingProxyType
from typing import Any


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


def new_correlation_id() -> str:
    """Opaque unique id used to correlate logs and support requests."""
    return f"err_{uuid.uuid4().hex[:16]}"


class Severity(str, Enum):
    """How loudly an error should be reported."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorKind(str, Enum):
    """Closed set of failure kinds known to the game client."""

    # Location
    GPS_UNAVAILABLE = "gps_unavailable"
    GPS_PERMISSION_DENIED = "gps_permission_denied"
    LOCATION_TOO_FAR = "location_too_far"
    INVALID_PROOF = "invalid_proof"
    FRAUD_DETECTED = "fraud_detected"

    # Transport
    NETWORK_ERROR = "network_error"
    API_ERROR = "api_error"
    TIMEOUT_ERROR = "timeout_error"
    RATE_LIMITED = "rate_limited"
    CIRCUIT_OPEN = "circuit_open"

    # Access
    AUTHENTICATION_ERROR = "authentication_error"
    AUTHORIZATION_ERROR = "authorization_error"

    # Game rules
    CHALLENGE_EXPIRED = "challenge_expired"
    ALREADY_COMPLETED = "already_completed"

    # Local data
    STORAGE_ERROR = "storage_error"
    DATA_CORRUPTION = "data_corruption"
    VALIDATION_ERROR = "validation_error"
    CONFIGURATION_ERROR = "configuration_error"

    UNKNOWN_ERROR = "unknown_error"


@dataclass(frozen=True)
class KindTraits:
    """Fixed metadata attached to one ``ErrorKind``."""

    severity: Severity
    recoverable: bool
    retryable: bool
    message: str
    user_message: str


def _traits(
    severity: Severity, recoverable: bool, retryable: bool, message: str, user_message: str
) -> KindTraits:
    return KindTraits(severity, recoverable, retryable, message, user_message)


_S = Severity

TAXONOMY: Mapping[ErrorKind, KindTraits] = MappingProxyType(
    {
        ErrorKind.GPS_UNAVAILABLE: _traits(
            _S.MEDIUM, True, False,
            "Position unavailable",
            "We couldn't get your location. Move to an open area or enter it manually.",
        ),
        ErrorKind.GPS_PERMISSION_DENIED: _traits(
            _S.HIGH, True, False,
            "Location permission denied",
            "Location access is turned off. Enable it in your settings to check in.",
        ),
        ErrorKind.LOCATION_TOO_FAR: _traits(
            _S.MEDIUM, True, False,
            "User outside challenge radius",
            "You're not close enough to this spot yet.",
        ),
        ErrorKind.INVALID_PROOF: _traits(
            _S.MEDIUM, True, False,
            "Submitted proof failed validation",
            "Your proof couldn't be accepted. Please try submitting it again.",
        ),
        ErrorKind.FRAUD_DETECTED: _traits(
            _S.HIGH, False, False,
            "Submission flagged by fraud checks",
            "This check-in needs review before points can be awarded.",
        ),
        ErrorKind.NETWORK_ERROR: _traits(
            _S.MEDIUM, True, True,
            "Network request failed",
            "Connection problem. Check your internet and try again.",
        ),
        ErrorKind.API_ERROR: _traits(
            _S.HIGH, True, True,
            "Remote service returned an error",
            "Our servers are having trouble. Please try again shortly.",
        ),
        ErrorKind.TIMEOUT_ERROR: _traits(
            _S.MEDIUM, True, True,
            "Operation timed out",
            "That took too long. Please try again.",
        ),
        ErrorKind.RATE_LIMITED: _traits(
            _S.MEDIUM, True, True,
            "Rate limit exceeded",
            "You're going a bit fast. Wait a moment and try again.",
        ),
        ErrorKind.CIRCUIT_OPEN: _traits(
            _S.HIGH, True, False,
            "Circuit breaker is open",
            "This feature is temporarily unavailable. Please try again later.",
        ),
        ErrorKind.AUTHENTICATION_ERROR: _traits(
            _S.HIGH, True, False,
            "Authentication failed",
            "Your session has expired. Please log in again.",
        ),
        ErrorKind.AUTHORIZATION_ERROR: _traits(
            _S.HIGH, False, False,
            "Not authorized",
            "You don't have permission to do that.",
        ),
        ErrorKind.CHALLENGE_EXPIRED: _traits(
            _S.LOW, False, False,
            "Challenge has expired",
            "This challenge has ended. Check out the active ones instead.",
        ),
        ErrorKind.ALREADY_COMPLETED: _traits(
            _S.LOW, False, False,
            "Challenge already completed",
            "You've already completed this challenge.",
        ),
        ErrorKind.STORAGE_ERROR: _traits(
            _S.HIGH, True, False,
            "Local storage failure",
            "We couldn't save data on this device. Free up some space and try again.",
        ),
        ErrorKind.DATA_CORRUPTION: _traits(
            _S.CRITICAL, False, False,
            "Stored data is corrupted",
            "Something went wrong with saved data. Please restart the app.",
        ),
        ErrorKind.VALIDATION_ERROR: _traits(
            _S.MEDIUM, True, False,
            "Input failed validation",
            "Some information looks incorrect. Please check it and try again.",
        ),
        ErrorKind.CONFIGURATION_ERROR: _traits(
            _S.CRITICAL, False, False,
            "Invalid configuration",
            "The app isn't set up correctly. Please contact support.",
        ),
        ErrorKind.UNKNOWN_ERROR: _traits(
            _S.HIGH, True, False,
            "Unexpected error",
            "Something unexpected happened. Please try again.",
        ),
    }
)

_missing = set(ErrorKind) - set(TAXONOMY)
if _missing:  # pragma: no cover
    raise RuntimeError(f"TAXONOMY missing entries for: {sorted(k.value for k in _missing)}")


def traits_for(kind: ErrorKind) -> KindTraits:
    """Return the fixed traits for ``kind``."""
    return TAXONOMY[ErrorKind(kind)]


_FROZEN_FIELDS = frozenset(
    {
        "kind",
        "message",
        "user_message",
        "severity",
        "recoverable",
        "retryable",
        "context",
        "timestamp",
        "correlation_id",
        "cause",
    }
)


class TypedError(Exception):
    """
    Classified, immutable failure record that can also be raised.

    ``severity``, ``recoverable`` and ``retryable`` come from ``TAXONOMY``
    unless given explicitly. ``context`` is copied into a read-only mapping.
    Reassigning any public field raises ``AttributeError``.

    Attributes:
        kind: Member of ``ErrorKind``
        message: Internal description (logs only)
        user_message: Display-safe text
        severity: ``Severity`` used for log level and monitoring
        recoverable: Whether local recovery makes sense
        retryable: Whether an automatic retry may succeed
        context: Opaque key-value details
        timestamp: Creation time (UTC)
        correlation_id: Unique id for log/support correlation
        cause: Original exception, also chained as ``__cause__``
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str | None = None,
        *,
        user_message: str | None = None,
        severity: Severity | None = None,
        recoverable: bool | None = None,
        retryable: bool | None = None,
        context: Mapping[str, Any] | None = None,
        cause: BaseException | None = None,
    ):
        kind = ErrorKind(kind)
        traits = TAXONOMY[kind]
        text = message or traits.message
        super().__init__(text)
        values = {
            "kind": kind,
            "message": text,
            "user_message": user_message or traits.user_message,
            "severity": severity or traits.severity,
            "recoverable": traits.recoverable if recoverable is None else recoverable,
            "retryable": traits.retryable if retryable is None else retryable,
            "context": MappingProxyType(dict(context or {})),
            "timestamp": utcnow(),
            "correlation_id": new_correlation_id(),
            "cause": cause,
        }
        for name, value in values.items():
            object.__setattr__(self, name, value)
        if cause is not None:
            self.__cause__ = cause

    def __setattr__(self, name: str, value: Any) -> None:
        if name in _FROZEN_FIELDS:
            raise AttributeError(f"TypedError.{name} is read-only")
        super().__setattr__(name, value)

    def __delattr__(self, name: str) -> None:
        if name in _FROZEN_FIELDS:
            raise AttributeError(f"TypedError.{name} is read-only")
        super().__delattr__(name)

    def for_user(self) -> dict[str, str]:
        """Payload safe to show a player; never includes ``message``."""
        return {"message": self.user_message, "correlation_id": self.correlation_id}

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/persistence."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "kind": self.kind.value,
            "message": self.message,
            "user_message": self.user_message,
            "severity": self.severity.value,
            "recoverable": self.recoverable,
            "retryable": self.retryable,
            "timestamp": self.timestamp.isoformat(),
            "correlation_id": self.correlation_id,
        }
        if self.context:
            result["context"] = {k: _json_safe(v) for k, v in self.context.items()}
        if self.cause is not None:
            result["cause"] = f"{type(self.cause).__name__}: {self.cause}"
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.kind.value}, {self.message!r})"


class CircuitOpenError(TypedError):
    """Raised, without calling the operation, while a circuit is open."""

    def __init__(self, circuit: str, *, context: Mapping[str, Any] | None = None):
        ctx = {"circuit": circuit, **(context or {})}
        super().__init__(
            ErrorKind.CIRCUIT_OPEN,
            f"Circuit '{circuit}' is open, rejecting request",
            context=ctx,
        )

    @property
    def circuit(self) -> str:
        return self.context["circuit"]


def _json_safe(value: Any) -> Any:
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Mapping):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_json_safe(v) for v in value]
    return repr(value)


def is_retryable(error: BaseException) -> bool:
    """Check if an error is retryable."""
    return isinstance(error, TypedError) and error.retryable


__all__ = [
    "CircuitOpenError",
    "ErrorKind",
    "KindTraits",
    "Severity",
    "TAXONOMY",
    "TypedError",
    "is_retryable",
    "new_correlation_id",
    "traits_for",
    "utcnow",
]
