"""Durable local key/value cache.

The cache holds the last known value of every logical key, namespaced per
user.  All operations are synchronous: callers never suspend on the cache.
"""

from __future__ import annotations

import copy
import json
import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol

from zensync.exceptions import MalformedPayloadError
from zensync.models._base import format_server_timestamp, parse_server_timestamp
from zensync.models.cache import CacheEntry, CacheKey

_logger = logging.getLogger(__name__)


class LocalCache(Protocol):
    """Structural interface for local cache backends."""

    def read(self, key: CacheKey) -> CacheEntry | None:
        ...

    def write(self, key: CacheKey, value: Any, *, last_updated: datetime | None = None) -> None:
        ...

    def delete(self, key: CacheKey) -> None:
        ...

    def keys(self, user_id: str) -> set[str]:
        ...

    def clear(self, user_id: str | None = None) -> None:
        ...


def _encode(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"))


def _decode(storage_key: str, text: str) -> Any:
    try:
        return json.loads(text)
    except (TypeError, json.JSONDecodeError) as exc:
        raise MalformedPayloadError(f"Cached value for {storage_key} is not JSON", key=storage_key) from exc


class MemoryCache:
    """In-process cache.  Values are deep-copied on the way in and out."""

    def __init__(self) -> None:
        self._entries: dict[CacheKey, CacheEntry] = {}

    def read(self, key: CacheKey) -> CacheEntry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        return CacheEntry(value=entry.value_copy(), last_updated=entry.last_updated)

    def write(self, key: CacheKey, value: Any, *, last_updated: datetime | None = None) -> None:
        self._entries[key] = CacheEntry(value=copy.deepcopy(value), last_updated=last_updated)

    def delete(self, key: CacheKey) -> None:
        self._entries.pop(key, None)

    def keys(self, user_id: str) -> set[str]:
        return {k.logical_key for k in self._entries if k.user_id == user_id}

    def clear(self, user_id: str | None = None) -> None:
        if user_id is None:
            self._entries.clear()
            return
        for key in [k for k in self._entries if k.user_id == user_id]:
            del self._entries[key]


class SqliteCache:
    """SQLite-backed cache in a single ``key_value_store`` table.

    Rows are keyed by the ``(user_id, logical_key)`` pair, so a user id that
    itself contains an underscore can never alias another user's key.
    """

    _SCHEMA = """
        CREATE TABLE IF NOT EXISTS key_value_store (
            user_id TEXT NOT NULL,
            logical_key TEXT NOT NULL,
            value TEXT NOT NULL,
            last_updated TEXT,
            PRIMARY KEY (user_id, logical_key)
        );
    """

    def __init__(self, path: str | Path = ":memory:") -> None:
        self._path = str(path)
        if self._path != ":memory:":
            Path(self._path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(self._path)
        self._conn.executescript(self._SCHEMA)
        self._conn.commit()

    @property
    def path(self) -> str:
        return self._path

    def close(self) -> None:
        self._conn.close()

    def read(self, key: CacheKey) -> CacheEntry | None:
        row = self._conn.execute(
            "SELECT value, last_updated FROM key_value_store WHERE user_id = ? AND logical_key = ?",
            (key.user_id, key.logical_key),
        ).fetchone()
        if row is None:
            return None
        text, stamp = row
        try:
            value = _decode(key.storage_key, text)
        except MalformedPayloadError:
            _logger.warning("Discarding malformed cache entry %s", key.storage_key)
            return None
        try:
            last_updated = parse_server_timestamp(stamp)
        except ValueError:
            _logger.warning("Ignoring malformed timestamp on cache entry %s: %r", key.storage_key, stamp)
            last_updated = None
        return CacheEntry(value=value, last_updated=last_updated)

    def write(self, key: CacheKey, value: Any, *, last_updated: datetime | None = None) -> None:
        stamp = format_server_timestamp(last_updated) if last_updated is not None else None
        with self._conn:
            self._conn.execute(
                "INSERT INTO key_value_store (user_id, logical_key, value, last_updated) "
                "VALUES (?, ?, ?, ?) "
                "ON CONFLICT(user_id, logical_key) DO UPDATE SET "
                "value = excluded.value, last_updated = excluded.last_updated",
                (key.user_id, key.logical_key, _encode(value), stamp),
            )

    def delete(self, key: CacheKey) -> None:
        with self._conn:
            self._conn.execute(
                "DELETE FROM key_value_store WHERE user_id = ? AND logical_key = ?",
                (key.user_id, key.logical_key),
            )

    def keys(self, user_id: str) -> set[str]:
        rows = self._conn.execute(
            "SELECT logical_key FROM key_value_store WHERE user_id = ?",
            (user_id,),
        ).fetchall()
        return {row[0] for row in rows}

    def clear(self, user_id: str | None = None) -> None:
        with self._conn:
            if user_id is None:
                self._conn.execute("DELETE FROM key_value_store")
            else:
                self._conn.execute("DELETE FROM key_value_store WHERE user_id = ?", (user_id,))


def open_cache(path: str | Path) -> LocalCache:
    """Open the cache backend for *path* (``":memory:"`` stays in-process)."""
    if str(path) == ":memory:":
        return MemoryCache()
    return SqliteCache(path)
