"""
Online/offline signal for the game client.

Manifesto:
    Components that react to connectivity (the offline queue replaying
    writes, the degradation manager switching to cached data) should not
    poll. They subscribe to one monitor and get a ``ConnectivityChange`` on
    every real transition.

Whoever owns the platform signal calls ``await monitor.set_online(...)``.
Setting the current value again publishes nothing.

Tags:
    spotcheck, connectivity, events, asyncio

Doc-Types:
    api-reference
"""

from __future__ import annotations

import asyncio
import inspect
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime

from spotcheck.core.errors import utcnow
from spotcheck.core.logging import get_logger

__all__ = ["ConnectivityChange", "ConnectivityListener", "ConnectivityMonitor"]

logger = get_logger(__name__)


@dataclass(frozen=True)
class ConnectivityChange:
    """One online/offline transition."""

    online: bool
    changed_at: datetime = field(default_factory=utcnow)


ConnectivityListener = Callable[[ConnectivityChange], Awaitable[None] | None]


class ConnectivityMonitor:
    """Publishes connectivity transitions to subscribers.

    Example::

        monitor = ConnectivityMonitor(online=False)

        async def on_change(change: ConnectivityChange):
            if change.online:
                await queue.replay(send)

        monitor.subscribe(on_change)
        await monitor.set_online(True)
    """

    def __init__(self, online: bool = True) -> None:
        self._online = online
        self._listeners: dict[str, ConnectivityListener] = {}

    @property
    def is_online(self) -> bool:
        return self._online

    def subscribe(self, listener: ConnectivityListener) -> str:
        """Register ``listener`` (sync or async). Returns a token for unsubscribe."""
        token = f"conn_{uuid.uuid4().hex[:12]}"
        self._listeners[token] = listener
        return token

    def unsubscribe(self, token: str) -> None:
        """Remove a listener. Unknown tokens are ignored."""
        self._listeners.pop(token, None)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    async def set_online(self, online: bool) -> bool:
        """Update the state; returns True if it actually changed."""
        if online == self._online:
            return False
        self._online = online
        change = ConnectivityChange(online=online)
        logger.info("connectivity_changed", online=online)
        await self._publish(change)
        return True

    async def _publish(self, change: ConnectivityChange) -> None:
        async def safe_call(token: str, listener: ConnectivityListener) -> None:
            try:
                result = listener(change)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.warning(
                    "connectivity_listener_error",
                    subscription_id=token,
                    online=change.online,
                    error=str(e),
                )

        await asyncio.gather(
            *[safe_call(token, listener) for token, listener in list(self._listeners.items())]
        )
