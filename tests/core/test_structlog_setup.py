"""Tests for structlog configuration helpers."""

from __future__ import annotations

import structlog

from spotcheck.core.logging import (
    LogContext,
    _add_service_metadata,
    _ecs_compatible,
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
)


class TestProcessors:
    def test_service_metadata(self):
        event = _add_service_metadata(None, "info", {"event": "x"})
        assert "service.name" in event

    def test_ecs_renames(self):
        event = _ecs_compatible(None, "info", {"timestamp": "t", "level": "info", "event": "x"})
        assert event == {"@timestamp": "t", "log.level": "info", "event": "x"}


class TestConfigure:
    def test_console_and_json_modes(self):
        configure_logging(level="DEBUG", json_format=False)
        get_logger("spotcheck.test").debug("console_mode")
        configure_logging(level="INFO", json_format=True, service="spotcheck-test")
        get_logger("spotcheck.test").info("json_mode", attempt=1)


class TestContext:
    def test_log_context_binds_and_unbinds(self):
        clear_context()
        with LogContext(sync_pass="sp_1"):
            assert structlog.contextvars.get_contextvars()["sync_pass"] == "sp_1"
        assert "sync_pass" not in structlog.contextvars.get_contextvars()

    def test_bind_and_clear(self):
        bind_context(player="p1")
        assert structlog.contextvars.get_contextvars()["player"] == "p1"
        clear_context()
        assert structlog.contextvars.get_contextvars() == {}
