"""
Last-known-good cache for offline play.

Stores the most recent successful payload of read operations (active
challenges, the player's profile, the leaderboard) so the client can keep
showing something when the network goes away.

Manifesto:
    - **TTL-stamped:** every entry records when it was written and how long
      it lives; stale data is dropped on read rather than served
    - **Store-agnostic:** any ``KeyValueStore`` works
    - **Never fatal:** a broken store or a corrupt entry is a cache miss

Architecture:
    ::

        OfflineCache(store, default_ttl=86400)
            put("challenges", [...])   → store["cache:challenges"] =
                                          {"data": [...], "written_at": t, "ttl": 86400}
            get("challenges")          → [...] | None (expired/corrupt → deleted)

Examples:
    >>> cache = OfflineCache(InMemoryKeyValueStore())
    >>> cache.put(CHALLENGES_KEY, [{"id": "c1"}])
    >>> cache.get(CHALLENGES_KEY)
    [{'id': 'c1'}]

Guardrails:
    ❌ DON'T: Cache values that are not JSON-serializable
    ✅ DO: Treat ``None`` from ``get`` as "nothing to serve"

Tags:
    cache, offline, ttl, degradation, spotcheck

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import json
import time
from collections.abc import Callable, Iterable
from typing import Any

from spotcheck.core.logging import get_logger
from spotcheck.core.storage import KeyValueStore

logger = get_logger(__name__)

CHALLENGES_KEY = "challenges"
USER_PROFILE_KEY = "user_profile"
LEADERBOARD_KEY = "leaderboard"

DEFAULT_TTL_SECONDS = 24 * 60 * 60


class OfflineCache:
    """TTL cache layered over a ``KeyValueStore``.

    Args:
        store: Backing key-value store
        default_ttl: Lifetime in seconds for entries written without ``ttl``
        clock: Wall-clock source (epoch seconds)
        prefix: Namespace prepended to every key in the store
    """

    def __init__(
        self,
        store: KeyValueStore,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
        prefix: str = "cache:",
    ):
        if default_ttl <= 0:
            raise ValueError("default_ttl must be > 0")
        self._store = store
        self._default_ttl = default_ttl
        self._clock = clock
        self._prefix = prefix

    @property
    def default_ttl(self) -> float:
        return self._default_ttl

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def put(self, key: str, data: Any, ttl: float | None = None) -> None:
        """Write ``data`` under ``key``. Store failures are logged."""
        entry = {
            "data": data,
            "written_at": self._clock(),
            "ttl": self._default_ttl if ttl is None else ttl,
        }
        try:
            self._store.put(self._key(key), json.dumps(entry))
        except Exception as e:
            logger.warning("cache_write_failed", key=key, error=str(e))

    def get(self, key: str) -> Any | None:
        """Return cached data, or ``None`` when missing, expired or corrupt."""
        try:
            raw = self._store.get(self._key(key))
        except Exception as e:
            logger.warning("cache_read_failed", key=key, error=str(e))
            return None
        if raw is None:
            return None

        try:
            entry = json.loads(raw)
            data = entry["data"]
            written_at = float(entry["written_at"])
            ttl = float(entry["ttl"])
        except (ValueError, TypeError, KeyError) as e:
            logger.warning("cache_entry_corrupt", key=key, kind="data_corruption", error=str(e))
            self.delete(key)
            return None

        age = self._clock() - written_at
        if age > ttl:
            logger.debug("cache_entry_expired", key=key, age=round(age, 1), ttl=ttl)
            self.delete(key)
            return None
        return data

    def delete(self, key: str) -> None:
        try:
            self._store.delete(self._key(key))
        except Exception as e:
            logger.warning("cache_delete_failed", key=key, error=str(e))

    def clear(self, keys: Iterable[str] = (CHALLENGES_KEY, USER_PROFILE_KEY, LEADERBOARD_KEY)) -> None:
        """Delete ``keys`` (the well-known keys by default)."""
        for key in keys:
            self.delete(key)


__all__ = [
    "CHALLENGES_KEY",
    "DEFAULT_TTL_SECONDS",
    "LEADERBOARD_KEY",
    "OfflineCache",
    "USER_PROFILE_KEY",
]
