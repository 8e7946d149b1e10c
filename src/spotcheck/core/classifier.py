"""
Map arbitrary failures onto the closed ``ErrorKind`` taxonomy.

Callers hand over whatever they caught: an ``httpx`` or ``requests`` error
carrying a response, a geolocation failure with a platform code, an
``OSError`` from a full disk, a ``TimeoutError`` from ``asyncio.wait_for``.
``ErrorClassifier.classify`` turns it into a ``TypedError``.

Precedence (first hit wins):

1. already-typed passthrough
2. HTTP status (``status`` / ``status_code`` / ``response.status_code``)
3. geolocation platform code (1 denied, 2 unavailable, 3 timeout)
4. storage-quota signatures
5. exception class-name, string ``code`` and message patterns
6. ``unknown_error``

Classification has no side effects beyond appending to the diagnostic ring
buffer and a best-effort write of the record to the key-value store. A store
failure is logged and swallowed.

Tags:
    error-classification, diagnostics, ring-buffer, spotcheck

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

import errno
import json
from collections import deque
from collections.abc import Iterator, Mapping
from typing import Any

from spotcheck.core.errors import ErrorKind, TypedError
from spotcheck.core.logging import get_logger
from spotcheck.core.storage import KeyValueStore

logger = get_logger(__name__)

ERROR_LOG_PREFIX = "error_log:"

_HTTP_STATUS_KINDS: dict[int, ErrorKind] = {
    400: ErrorKind.VALIDATION_ERROR,
    401: ErrorKind.AUTHENTICATION_ERROR,
    403: ErrorKind.AUTHORIZATION_ERROR,
    408: ErrorKind.TIMEOUT_ERROR,
    429: ErrorKind.RATE_LIMITED,
}


class GeolocationError(Exception):
    """Failure reported by the device positioning API.

    ``code`` follows the W3C ``GeolocationPositionError`` numbering.
    """

    PERMISSION_DENIED = 1
    POSITION_UNAVAILABLE = 2
    TIMEOUT = 3

    def __init__(self, code: int, message: str = ""):
        self.code = code
        super().__init__(message or f"Geolocation error (code {code})")


_GEO_CODE_KINDS: dict[int, ErrorKind] = {
    GeolocationError.PERMISSION_DENIED: ErrorKind.GPS_PERMISSION_DENIED,
    GeolocationError.POSITION_UNAVAILABLE: ErrorKind.GPS_UNAVAILABLE,
    GeolocationError.TIMEOUT: ErrorKind.TIMEOUT_ERROR,
}

# Substring of an exception class name (any class in its MRO) → kind.
_NAME_PATTERNS: tuple[tuple[str, ErrorKind], ...] = (
    ("timeout", ErrorKind.TIMEOUT_ERROR),
    ("network", ErrorKind.NETWORK_ERROR),
    ("connect", ErrorKind.NETWORK_ERROR),
    ("jsondecode", ErrorKind.DATA_CORRUPTION),
    ("corrupt", ErrorKind.DATA_CORRUPTION),
    ("validation", ErrorKind.VALIDATION_ERROR),
    ("config", ErrorKind.CONFIGURATION_ERROR),
)

_CODE_KINDS: dict[str, ErrorKind] = {
    "TIMEOUT": ErrorKind.TIMEOUT_ERROR,
    "ETIMEDOUT": ErrorKind.TIMEOUT_ERROR,
    "NETWORK_ERROR": ErrorKind.NETWORK_ERROR,
    "ECONNRESET": ErrorKind.NETWORK_ERROR,
    "ECONNREFUSED": ErrorKind.NETWORK_ERROR,
    "ENOTFOUND": ErrorKind.NETWORK_ERROR,
}

_MESSAGE_PATTERNS: tuple[tuple[str, ErrorKind], ...] = (
    ("timed out", ErrorKind.TIMEOUT_ERROR),
    ("timeout", ErrorKind.TIMEOUT_ERROR),
    ("network", ErrorKind.NETWORK_ERROR),
    ("connection", ErrorKind.NETWORK_ERROR),
    ("corrupt", ErrorKind.DATA_CORRUPTION),
    ("configuration", ErrorKind.CONFIGURATION_ERROR),
)


def http_status_of(error: BaseException) -> int | None:
    """Extract an HTTP-like status code from ``error`` if it carries one."""
    for candidate in (
        getattr(error, "status", None),
        getattr(error, "status_code", None),
        getattr(getattr(error, "response", None), "status_code", None),
    ):
        if isinstance(candidate, int) and not isinstance(candidate, bool):
            return candidate
    return None


def _kind_from_status(status: int) -> ErrorKind | None:
    if status >= 500:
        return ErrorKind.API_ERROR
    return _HTTP_STATUS_KINDS.get(status)


def _kind_from_geo_code(error: BaseException) -> ErrorKind | None:
    code = getattr(error, "code", None)
    if isinstance(error, GeolocationError) or (isinstance(code, int) and not isinstance(code, bool)):
        return _GEO_CODE_KINDS.get(code)
    return None


def _is_storage_quota(error: BaseException) -> bool:
    if any(cls.__name__ == "QuotaExceededError" for cls in type(error).__mro__):
        return True
    if isinstance(error, OSError) and error.errno in (errno.ENOSPC, getattr(errno, "EDQUOT", -1)):
        return True
    return "quota" in str(error).lower()


def _kind_from_patterns(error: BaseException) -> ErrorKind | None:
    names = [cls.__name__.lower() for cls in type(error).__mro__ if cls not in (BaseException, Exception, object)]
    for fragment, kind in _NAME_PATTERNS:
        if any(fragment in name for name in names):
            return kind

    code = getattr(error, "code", None)
    if isinstance(code, str) and code.upper() in _CODE_KINDS:
        return _CODE_KINDS[code.upper()]

    text = str(error).lower()
    for fragment, kind in _MESSAGE_PATTERNS:
        if fragment in text:
            return kind
    return None


def resolve_kind(error: BaseException) -> ErrorKind:
    """Pure precedence walk; returns the kind ``classify`` would assign."""
    if isinstance(error, TypedError):
        return error.kind

    status = http_status_of(error)
    if status is not None:
        kind = _kind_from_status(status)
        if kind is not None:
            return kind

    kind = _kind_from_geo_code(error)
    if kind is not None:
        return kind

    if _is_storage_quota(error):
        return ErrorKind.STORAGE_ERROR

    return _kind_from_patterns(error) or ErrorKind.UNKNOWN_ERROR


class DiagnosticLog:
    """Bounded ring buffer of recent ``TypedError`` records.

    Oldest entries are evicted first once ``capacity`` is reached. An error
    whose ``correlation_id`` is already held is not appended again.
    """

    def __init__(self, capacity: int = 100):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._entries: deque[TypedError] = deque(maxlen=capacity)
        self._ids: set[str] = set()

    @property
    def capacity(self) -> int:
        return self._entries.maxlen or 0

    def __contains__(self, error: object) -> bool:
        return isinstance(error, TypedError) and error.correlation_id in self._ids

    def append(self, error: TypedError) -> bool:
        """Append ``error``; returns False when it is already held."""
        if error.correlation_id in self._ids:
            return False
        if len(self._entries) == self._entries.maxlen:
            self._ids.discard(self._entries[0].correlation_id)
        self._entries.append(error)
        self._ids.add(error.correlation_id)
        return True

    def recent(self, limit: int = 10) -> list[TypedError]:
        if limit <= 0:
            return []
        return list(self._entries)[-limit:]

    def clear(self) -> None:
        self._entries.clear()
        self._ids.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[TypedError]:
        return iter(list(self._entries))


class ErrorClassifier:
    """Turn raw failures into ``TypedError`` records and keep diagnostics.

    Args:
        store: Optional key-value store; each record is written under
            ``error_log:<correlation_id>`` on a best-effort basis.
        capacity: Ring buffer size for :meth:`recent`.
    """

    def __init__(self, store: KeyValueStore | None = None, capacity: int = 100):
        self._store = store
        self._log = DiagnosticLog(capacity)

    @property
    def diagnostics(self) -> DiagnosticLog:
        return self._log

    def classify(
        self,
        raw_error: BaseException,
        context: Mapping[str, Any] | None = None,
    ) -> TypedError:
        """Classify ``raw_error``; already-typed errors pass through unchanged.

        Passthrough errors are still recorded, once per ``correlation_id``.
        """
        if isinstance(raw_error, TypedError):
            self.record(raw_error)
            return raw_error

        kind = resolve_kind(raw_error)
        ctx: dict[str, Any] = {"error_type": type(raw_error).__name__}
        status = http_status_of(raw_error)
        if status is not None:
            ctx["http_status"] = status
        retry_after = getattr(raw_error, "retry_after", None)
        if isinstance(retry_after, (int, float)) and not isinstance(retry_after, bool):
            ctx["retry_after"] = retry_after
        if context:
            ctx.update(context)

        error = TypedError(kind, str(raw_error) or None, context=ctx, cause=raw_error)
        self.record(error)
        return error

    def record(self, error: TypedError) -> None:
        """Append to diagnostics and persist (fire-and-forget)."""
        if not self._log.append(error) or self._store is None:
            return
        try:
            self._store.put(f"{ERROR_LOG_PREFIX}{error.correlation_id}", json.dumps(error.to_dict()))
        except Exception as exc:
            logger.warning(
                "error_log_persist_failed",
                correlation_id=error.correlation_id,
                error=str(exc),
            )

    def recent(self, limit: int = 10) -> list[TypedError]:
        """Most recent records, oldest first."""
        return self._log.recent(limit)

    def clear(self) -> None:
        self._log.clear()


__all__ = [
    "DiagnosticLog",
    "ERROR_LOG_PREFIX",
    "ErrorClassifier",
    "GeolocationError",
    "http_status_of",
    "resolve_kind",
]
