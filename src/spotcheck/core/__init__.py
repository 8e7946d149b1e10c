"""Spotcheck core — error taxonomy, classification, persistence and ambient plumbing.

::

    errors        ErrorKind / Severity / TypedError / TAXONOMY
    classifier    ErrorClassifier + DiagnosticLog ring buffer
    storage       KeyValueStore protocol, in-memory and SQLite stores
    connectivity  ConnectivityMonitor (online/offline transitions)
    logging       structlog configuration
    settings      SpotcheckSettings (pydantic-settings)
    container     SpotcheckContainer (lazy composition root)
"""

from spotcheck.core.classifier import DiagnosticLog, ErrorClassifier, GeolocationError
from spotcheck.core.connectivity import ConnectivityChange, ConnectivityMonitor
from spotcheck.core.errors import (
    TAXONOMY,
    CircuitOpenError,
    ErrorKind,
    KindTraits,
    Severity,
    TypedError,
    is_retryable,
    traits_for,
)
from spotcheck.core.storage import InMemoryKeyValueStore, KeyValueStore, SqliteKeyValueStore

__all__ = [
    "CircuitOpenError",
    "ConnectivityChange",
    "ConnectivityMonitor",
    "DiagnosticLog",
    "ErrorClassifier",
    "ErrorKind",
    "GeolocationError",
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "KindTraits",
    "Severity",
    "SqliteKeyValueStore",
    "TAXONOMY",
    "TypedError",
    "is_retryable",
    "traits_for",
]
