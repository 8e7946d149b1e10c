"""
Lazy-initialised composition root.

:class:`SpotcheckContainer` builds each component of the resilience layer
on first access and hands out the same instance afterwards. Create one at
startup and pass it (or the pieces you need) to call sites.

Usage::

    from spotcheck.core.container import SpotcheckContainer

    with SpotcheckContainer() as c:
        result = await c.handler.execute_resilient(api.fetch_challenges, "fetch_challenges")

    # Tests: in-memory store, explicit settings
    container = SpotcheckContainer(settings, store=InMemoryKeyValueStore())
"""

from __future__ import annotations

from typing import Any

from spotcheck.core.classifier import ErrorClassifier
from spotcheck.core.connectivity import ConnectivityMonitor
from spotcheck.core.logging import configure_logging
from spotcheck.core.settings import SpotcheckSettings, get_settings
from spotcheck.core.storage import KeyValueStore, SqliteKeyValueStore
from spotcheck.execution.circuit_breaker import CircuitBreakerRegistry
from spotcheck.execution.retry import RetryPolicy, RetryScheduler
from spotcheck.geo.fraud import FraudDetector
from spotcheck.geo.verification import LocationVerifier
from spotcheck.resilience.cache import OfflineCache
from spotcheck.resilience.degradation import DegradationManager
from spotcheck.resilience.handler import ErrorHandler, MonitoringSink
from spotcheck.resilience.offline_queue import OfflineQueue


class SpotcheckContainer:
    """Lazy dependency container.

    Components are created on first property access; :meth:`close` (or the
    context-manager protocol) releases the store if the container opened it.
    """

    def __init__(
        self,
        settings: SpotcheckSettings | None = None,
        store: KeyValueStore | None = None,
        monitoring_sink: MonitoringSink | None = None,
    ) -> None:
        self._settings = settings
        self._store = store
        self._owns_store = store is None
        self._monitoring_sink = monitoring_sink
        self._classifier: ErrorClassifier | None = None
        self._breakers: CircuitBreakerRegistry | None = None
        self._scheduler: RetryScheduler | None = None
        self._cache: OfflineCache | None = None
        self._queue: OfflineQueue | None = None
        self._monitor: ConnectivityMonitor | None = None
        self._degradation: DegradationManager | None = None
        self._handler: ErrorHandler | None = None
        self._verifier: LocationVerifier | None = None
        self._fraud: FraudDetector | None = None

    # ── Properties (lazy) ────────────────────────────────────────

    @property
    def settings(self) -> SpotcheckSettings:
        if self._settings is None:
            self._settings = get_settings()
        return self._settings

    @property
    def store(self) -> KeyValueStore:
        """SQLite store under ``settings.data_dir`` unless one was injected."""
        if self._store is None:
            self._store = SqliteKeyValueStore(self.settings.store_path)
        return self._store

    @property
    def classifier(self) -> ErrorClassifier:
        if self._classifier is None:
            self._classifier = ErrorClassifier(self.store, capacity=self.settings.diagnostics_capacity)
        return self._classifier

    @property
    def breakers(self) -> CircuitBreakerRegistry:
        if self._breakers is None:
            self._breakers = CircuitBreakerRegistry(
                failure_threshold=self.settings.breaker_failure_threshold,
                reset_timeout=self.settings.breaker_reset_timeout,
            )
        return self._breakers

    @property
    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy.from_settings(self.settings)

    @property
    def scheduler(self) -> RetryScheduler:
        if self._scheduler is None:
            self._scheduler = RetryScheduler(self.classifier, self.breakers)
        return self._scheduler

    @property
    def cache(self) -> OfflineCache:
        if self._cache is None:
            self._cache = OfflineCache(self.store, default_ttl=self.settings.cache_ttl_seconds)
        return self._cache

    @property
    def queue(self) -> OfflineQueue:
        if self._queue is None:
            self._queue = OfflineQueue(self.store)
        return self._queue

    @property
    def connectivity(self) -> ConnectivityMonitor:
        if self._monitor is None:
            self._monitor = ConnectivityMonitor()
        return self._monitor

    @property
    def degradation(self) -> DegradationManager:
        if self._degradation is None:
            self._degradation = DegradationManager(self.cache, self.queue)
            self._degradation.attach(self.connectivity)
        return self._degradation

    @property
    def handler(self) -> ErrorHandler:
        if self._handler is None:
            self._handler = ErrorHandler(
                self.classifier,
                self.scheduler,
                self.degradation,
                monitoring_sink=self._monitoring_sink,
                default_policy=self.retry_policy,
            )
        return self._handler

    @property
    def verifier(self) -> LocationVerifier:
        if self._verifier is None:
            self._verifier = LocationVerifier(self.settings.verification_radius_meters)
        return self._verifier

    @property
    def fraud_detector(self) -> FraudDetector:
        if self._fraud is None:
            self._fraud = FraudDetector()
        return self._fraud

    # ── Lifecycle ────────────────────────────────────────────────

    def configure_logging(self) -> None:
        """Apply ``log_level`` and ``log_format`` from settings to structlog."""
        configure_logging(
            level=self.settings.log_level,
            json_format=self.settings.log_format == "json",
        )

    def close(self) -> None:
        """Close the store if this container created it."""
        if self._owns_store and self._store is not None:
            close: Any = getattr(self._store, "close", None)
            if callable(close):
                close()
            self._store = None

    def __enter__(self) -> SpotcheckContainer:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
