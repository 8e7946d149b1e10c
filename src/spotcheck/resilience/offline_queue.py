"""
Durable queue of writes waiting for connectivity.

When a proof submission, profile update or analytics event cannot reach the
server, the degradation layer parks it here. On the next offline → online
transition the queue is replayed once, strictly in enqueue order.

Manifesto:
    - **Durable:** the whole queue lives under one key of a ``KeyValueStore``
      and is rewritten after every change
    - **All-or-nothing per item:** an item leaves the queue only after
      ``send`` returned successfully for it
    - **One pass per reconnect:** a failed item waits for the next
      reconnect; replay never loops
    - **Non-fatal persistence:** load/save failures are logged, the
      in-memory list stays authoritative for the process

Architecture:
    ::

        DegradationManager ──enqueue──► OfflineQueue ──JSON list──► store["offline_queue"]
                                           ▲
        ConnectivityMonitor ──online──► replay(send) ──► send(item) for item in snapshot

Examples:
    >>> queue = OfflineQueue(InMemoryKeyValueStore())
    >>> item = queue.enqueue(QueueItemKind.SUBMISSION, {"challenge_id": "c1"})
    >>> report = await queue.replay(api.send_queued)
    >>> report.succeeded
    [item.id]

Tags:
    offline, sync, queue, durability, spotcheck

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import inspect
import json
import uuid
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from spotcheck.core.errors import utcnow
from spotcheck.core.logging import LogContext, get_logger
from spotcheck.core.storage import KeyValueStore

if TYPE_CHECKING:
    from spotcheck.core.connectivity import ConnectivityChange, ConnectivityMonitor

logger = get_logger(__name__)

DEFAULT_QUEUE_KEY = "offline_queue"
CORRUPT_SUFFIX = ":corrupt"


class QueueItemKind(str, Enum):
    """What a queued write is."""

    SUBMISSION = "submission"
    PROFILE_UPDATE = "profile_update"
    ANALYTICS_EVENT = "analytics_event"


def new_item_id() -> str:
    return f"sync_{uuid.uuid4().hex[:16]}"


@dataclass(frozen=True)
class OfflineQueueItem:
    """One pending write."""

    id: str
    kind: QueueItemKind
    payload: Mapping[str, Any]
    enqueued_at: datetime
    attempts: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "payload": dict(self.payload),
            "enqueued_at": self.enqueued_at.isoformat(),
            "attempts": self.attempts,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> OfflineQueueItem:
        return cls(
            id=str(data["id"]),
            kind=QueueItemKind(data["kind"]),
            payload=dict(data.get("payload") or {}),
            enqueued_at=datetime.fromisoformat(data["enqueued_at"]),
            attempts=int(data.get("attempts", 0)),
        )


@dataclass
class ReplayReport:
    """Outcome of one replay pass."""

    succeeded: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)
    skipped: bool = False

    @property
    def attempted(self) -> int:
        return len(self.succeeded) + len(self.failed)


@dataclass(frozen=True)
class SyncStatus:
    """Snapshot for UI sync indicators."""

    is_online: bool
    is_syncing: bool
    pending_items: int
    last_sync_at: datetime | None = None
    last_errors: tuple[str, ...] = ()


SendFn = Callable[[OfflineQueueItem], Awaitable[Any]]
StatusListener = Callable[[SyncStatus], Any]


class OfflineQueue:
    """Durable FIFO of ``OfflineQueueItem`` records.

    Args:
        store: Backing key-value store
        key: Store key holding the JSON list
    """

    def __init__(self, store: KeyValueStore, key: str = DEFAULT_QUEUE_KEY):
        self._store = store
        self._key = key
        self._items: list[OfflineQueueItem] | None = None
        self._syncing = False
        self._online = True
        self._last_sync_at: datetime | None = None
        self._last_errors: tuple[str, ...] = ()
        self._listeners: list[StatusListener] = []

    # ------------------------------------------------------------------ #
    # Persistence
    # ------------------------------------------------------------------ #

    @property
    def quarantine_key(self) -> str:
        """Where an unreadable queue blob is copied before being replaced."""
        return f"{self._key}{CORRUPT_SUFFIX}"

    def _loaded(self) -> list[OfflineQueueItem]:
        if self._items is None:
            self._items = self._load()
        return self._items

    def _load(self) -> list[OfflineQueueItem]:
        try:
            raw = self._store.get(self._key)
        except Exception as e:
            logger.warning("offline_queue_load_failed", key=self._key, error=str(e))
            return []
        if not raw:
            return []
        try:
            return [OfflineQueueItem.from_dict(entry) for entry in json.loads(raw)]
        except (ValueError, TypeError, KeyError) as e:
            logger.error("offline_queue_corrupt", key=self._key, kind="data_corruption", error=str(e))
            self._quarantine(raw)
            return []

    def _quarantine(self, raw: str) -> None:
        # Keep the unreadable blob; the next save overwrites the queue key.
        try:
            self._store.put(self.quarantine_key, raw)
        except Exception as e:
            logger.warning("offline_queue_quarantine_failed", key=self.quarantine_key, error=str(e))

    def _save(self) -> None:
        try:
            self._store.put(self._key, json.dumps([item.to_dict() for item in self._loaded()]))
        except Exception as e:
            logger.warning("offline_queue_save_failed", key=self._key, error=str(e))

    # ------------------------------------------------------------------ #
    # Queue operations
    # ------------------------------------------------------------------ #

    def enqueue(self, kind: QueueItemKind | str, payload: Mapping[str, Any]) -> OfflineQueueItem:
        """Append a write and persist immediately."""
        item = OfflineQueueItem(
            id=new_item_id(),
            kind=QueueItemKind(kind),
            payload=dict(payload),
            enqueued_at=utcnow(),
        )
        self._loaded().append(item)
        self._save()
        logger.info("offline_item_enqueued", item_id=item.id, item_kind=item.kind.value)
        self._notify()
        return item

    def items(self) -> list[OfflineQueueItem]:
        """Copy of pending items in enqueue order."""
        return list(self._loaded())

    def get(self, item_id: str) -> OfflineQueueItem | None:
        return next((item for item in self._loaded() if item.id == item_id), None)

    def remove(self, item_id: str) -> bool:
        """Drop an item; returns False (and changes nothing) if it is absent."""
        items = self._loaded()
        for index, item in enumerate(items):
            if item.id == item_id:
                del items[index]
                self._save()
                self._notify()
                return True
        return False

    def clear(self) -> None:
        self._items = []
        self._save()
        self._notify()

    def __len__(self) -> int:
        return len(self._loaded())

    # ------------------------------------------------------------------ #
    # Replay
    # ------------------------------------------------------------------ #

    @property
    def is_syncing(self) -> bool:
        return self._syncing

    async def replay(self, send: SendFn) -> ReplayReport:
        """Send every pending item once, in enqueue order.

        Successful items are removed and the queue is persisted right away.
        A failed item stays with ``attempts`` incremented and the pass moves
        on. A replay started while another is running returns a report with
        ``skipped=True``.
        """
        if self._syncing:
            logger.info("offline_replay_skipped", reason="already_syncing")
            return ReplayReport(skipped=True)

        report = ReplayReport()
        snapshot = self.items()
        if not snapshot:
            return report

        self._syncing = True
        self._notify()
        try:
            async with LogContext(sync_pass=f"sp_{uuid.uuid4().hex[:8]}"):
                logger.info("offline_replay_started", pending=len(snapshot))
                for item in snapshot:
                    if self.get(item.id) is None:
                        continue
                    try:
                        result = send(item)
                        if inspect.isawaitable(result):
                            await result
                    except Exception as e:
                        report.failed.append(item.id)
                        report.errors[item.id] = str(e)
                        self._bump_attempts(item.id)
                        logger.warning(
                            "offline_item_replay_failed",
                            item_id=item.id,
                            item_kind=item.kind.value,
                            error=str(e),
                        )
                        continue
                    report.succeeded.append(item.id)
                    self.remove(item.id)
                logger.info(
                    "offline_replay_finished",
                    succeeded=len(report.succeeded),
                    failed=len(report.failed),
                    remaining=len(self),
                )
        finally:
            self._syncing = False
            self._last_sync_at = utcnow()
            self._last_errors = tuple(report.errors.values())
            self._notify()
        return report

    def _bump_attempts(self, item_id: str) -> None:
        items = self._loaded()
        for index, item in enumerate(items):
            if item.id == item_id:
                items[index] = replace(item, attempts=item.attempts + 1)
                self._save()
                return

    # ------------------------------------------------------------------ #
    # Status and connectivity
    # ------------------------------------------------------------------ #

    def status(self) -> SyncStatus:
        return SyncStatus(
            is_online=self._online,
            is_syncing=self._syncing,
            pending_items=len(self),
            last_sync_at=self._last_sync_at,
            last_errors=self._last_errors,
        )

    def add_listener(self, listener: StatusListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: StatusListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self) -> None:
        if not self._listeners:
            return
        status = self.status()
        for listener in list(self._listeners):
            try:
                listener(status)
            except Exception as e:
                logger.warning("sync_listener_error", error=str(e))

    def attach(self, monitor: ConnectivityMonitor, send: SendFn) -> str:
        """Replay once on every offline → online transition of ``monitor``.

        Returns the subscription token.
        """
        self._online = monitor.is_online

        async def _on_change(change: ConnectivityChange) -> None:
            self._online = change.online
            self._notify()
            if change.online:
                await self.replay(send)

        return monitor.subscribe(_on_change)


__all__ = [
    "CORRUPT_SUFFIX",
    "DEFAULT_QUEUE_KEY",
    "OfflineQueue",
    "OfflineQueueItem",
    "QueueItemKind",
    "ReplayReport",
    "SyncStatus",
]
