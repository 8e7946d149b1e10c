"""Tests for ConnectivityMonitor."""

from __future__ import annotations

import pytest

from spotcheck.core.connectivity import ConnectivityChange, ConnectivityMonitor


class TestTransitions:
    @pytest.mark.asyncio
    async def test_publishes_only_real_changes(self):
        monitor = ConnectivityMonitor(online=True)
        seen: list[ConnectivityChange] = []
        monitor.subscribe(seen.append)

        assert await monitor.set_online(True) is False
        assert await monitor.set_online(False) is True
        assert await monitor.set_online(False) is False
        assert await monitor.set_online(True) is True

        assert [c.online for c in seen] == [False, True]
        assert monitor.is_online is True

    @pytest.mark.asyncio
    async def test_async_listener_awaited(self):
        monitor = ConnectivityMonitor(online=False)
        seen: list[bool] = []

        async def listener(change: ConnectivityChange) -> None:
            seen.append(change.online)

        monitor.subscribe(listener)
        await monitor.set_online(True)
        assert seen == [True]

    @pytest.mark.asyncio
    async def test_failing_listener_isolated(self):
        monitor = ConnectivityMonitor(online=False)
        seen: list[bool] = []

        def broken(change: ConnectivityChange) -> None:
            raise RuntimeError("listener bug")

        monitor.subscribe(broken)
        monitor.subscribe(lambda change: seen.append(change.online))
        await monitor.set_online(True)
        assert seen == [True]

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        monitor = ConnectivityMonitor()
        seen: list[bool] = []
        token = monitor.subscribe(lambda change: seen.append(change.online))
        monitor.unsubscribe(token)
        monitor.unsubscribe("unknown")
        await monitor.set_online(False)
        assert seen == []
        assert monitor.listener_count == 0
