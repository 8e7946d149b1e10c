"""Tests for SpotcheckContainer — lazy construction and wiring."""

from __future__ import annotations

from spotcheck.core.container import SpotcheckContainer
from spotcheck.core.settings import SpotcheckSettings
from spotcheck.core.storage import SqliteKeyValueStore


class TestLazyComponents:
    def test_same_instance_each_access(self, container):
        assert container.handler is container.handler
        assert container.breakers is container.breakers
        assert container.queue is container.queue
        assert container.classifier is container.classifier

    def test_handler_shares_components(self, container):
        handler = container.handler
        assert handler.classifier is container.classifier
        assert handler.scheduler is container.scheduler
        assert handler.degradation is container.degradation
        assert container.scheduler.breakers is container.breakers
        assert container.degradation.queue is container.queue

    def test_settings_flow_into_components(self, tmp_path, memory_store):
        settings = SpotcheckSettings(
            data_dir=tmp_path,
            breaker_failure_threshold=2,
            diagnostics_capacity=3,
            verification_radius_meters=250,
            retry_max_attempts=4,
        )
        c = SpotcheckContainer(settings, store=memory_store)
        assert c.breakers.get_or_create("x").failure_threshold == 2
        assert c.classifier.diagnostics.capacity == 3
        assert c.verifier.default_radius == 250
        assert c.retry_policy.max_attempts == 4


class TestStoreLifecycle:
    def test_default_store_is_sqlite_under_data_dir(self, tmp_path):
        settings = SpotcheckSettings(data_dir=tmp_path / "state")
        with SpotcheckContainer(settings) as c:
            assert isinstance(c.store, SqliteKeyValueStore)
            c.store.put("k", "v")
        assert (tmp_path / "state" / "spotcheck.db").exists()

    def test_injected_store_not_closed(self, settings, memory_store):
        with SpotcheckContainer(settings, store=memory_store) as c:
            c.store.put("k", "v")
        assert memory_store.get("k") == "v"


class TestLogging:
    def test_configure_logging_uses_settings(self, tmp_path, memory_store, monkeypatch):
        calls = []
        monkeypatch.setattr(
            "spotcheck.core.container.configure_logging",
            lambda **kw: calls.append(kw),
        )
        settings = SpotcheckSettings(data_dir=tmp_path, log_level="debug", log_format="console")
        SpotcheckContainer(settings, store=memory_store).configure_logging()
        assert calls == [{"level": "DEBUG", "json_format": False}]
