"""
Key-value persistence contract consumed by diagnostics, caching and the
offline queue.

Manifesto:
    The resilience layer must not care where bytes end up. A device keeps
    them in local storage, tests keep them in a dict, the CLI keeps them in
    a SQLite file. All three satisfy the same three-method protocol.

    - **Protocol-based:** ``KeyValueStore`` defines the contract
    - **Strings only:** callers serialize; stores never interpret values
    - **Non-fatal:** callers treat any exception from a store as a logged,
      recoverable event

Architecture:
    ::

        KeyValueStore (Protocol)
        ├── InMemoryKeyValueStore  — process-local dict (tests, ephemeral)
        └── SqliteKeyValueStore    — durable single-file store

        API: get(key) → str | None
             put(key, value)
             delete(key)

Tags:
    storage, persistence, key-value, protocol, sqlite, spotcheck

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from pathlib import Path
from typing import Protocol, runtime_checkable


@runtime_checkable
class KeyValueStore(Protocol):
    """Minimal string key-value store."""

    def get(self, key: str) -> str | None:
        """Return the stored value, or ``None`` if absent."""
        ...

    def put(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""
        ...

    def delete(self, key: str) -> None:
        """Remove ``key``. No-op if it does not exist."""
        ...


class InMemoryKeyValueStore:
    """Dict-backed store. Contents vanish with the process."""

    def __init__(self, initial: dict[str, str] | None = None):
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def put(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self, prefix: str = "") -> list[str]:
        """List keys starting with ``prefix``."""
        return [k for k in self._data if k.startswith(prefix)]

    def __len__(self) -> int:
        return len(self._data)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._data))


class SqliteKeyValueStore:
    """Durable store backed by a single SQLite table.

    Example:
        store = SqliteKeyValueStore(Path.home() / ".spotcheck" / "state.db")
        store.put("offline_queue", "[]")
    """

    _DDL = """
        CREATE TABLE IF NOT EXISTS kv_store (
            key        TEXT PRIMARY KEY,
            value      TEXT NOT NULL,
            updated_at TEXT NOT NULL DEFAULT (datetime('now'))
        )
    """

    def __init__(self, path: str | Path = ":memory:"):
        if str(path) != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        self._path = str(path)
        self._conn = sqlite3.connect(self._path)
        self._conn.execute(self._DDL)
        self._conn.commit()

    @property
    def path(self) -> str:
        return self._path

    def get(self, key: str) -> str | None:
        row = self._conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
        return row[0] if row else None

    def put(self, key: str, value: str) -> None:
        self._conn.execute(
            """
            INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, datetime('now'))
            ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
            """,
            (key, value),
        )
        self._conn.commit()

    def delete(self, key: str) -> None:
        self._conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
        self._conn.commit()

    def keys(self, prefix: str = "") -> list[str]:
        """List keys starting with ``prefix``."""
        rows = self._conn.execute(
            "SELECT key FROM kv_store WHERE key LIKE ? ESCAPE '\\' ORDER BY key",
            (prefix.replace("%", r"\%").replace("_", r"\_") + "%",),
        ).fetchall()
        return [r[0] for r in rows]

    def close(self) -> None:
        self._conn.close()


__all__ = [
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "SqliteKeyValueStore",
]
