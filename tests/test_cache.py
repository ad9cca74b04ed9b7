from __future__ import annotations

import sqlite3
from datetime import UTC, datetime
from pathlib import Path

import pytest

from zensync.cache import LocalCache, MemoryCache, SqliteCache, open_cache
from zensync.models.cache import CacheKey

STAMP = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


@pytest.fixture(params=["memory", "sqlite"])
def any_cache(request: pytest.FixtureRequest, tmp_path: Path) -> LocalCache:
    if request.param == "memory":
        return MemoryCache()
    return SqliteCache(tmp_path / "cache.db")


def test_read_after_write_returns_value_and_stamp(any_cache: LocalCache) -> None:
    key = CacheKey(user_id="alice", logical_key="habits")
    any_cache.write(key, [{"id": 1, "done": False}], last_updated=STAMP)

    entry = any_cache.read(key)
    assert entry is not None
    assert entry.value == [{"id": 1, "done": False}]
    assert entry.last_updated == STAMP


def test_missing_key_reads_none(any_cache: LocalCache) -> None:
    assert any_cache.read(CacheKey(user_id="alice", logical_key="nope")) is None


def test_users_are_isolated(any_cache: LocalCache) -> None:
    any_cache.write(CacheKey(user_id="alice", logical_key="habits"), ["a"])
    any_cache.write(CacheKey(user_id="bob", logical_key="habits"), ["b"])

    alice = any_cache.read(CacheKey(user_id="alice", logical_key="habits"))
    assert alice is not None and alice.value == ["a"]
    assert any_cache.keys("bob") == {"habits"}

    any_cache.clear("alice")
    assert any_cache.read(CacheKey(user_id="alice", logical_key="habits")) is None
    assert any_cache.read(CacheKey(user_id="bob", logical_key="habits")) is not None


def test_underscored_ids_do_not_alias(any_cache: LocalCache) -> None:
    any_cache.write(CacheKey(user_id="a_b", logical_key="c"), 1)
    any_cache.write(CacheKey(user_id="a", logical_key="b_c"), 2)

    first = any_cache.read(CacheKey(user_id="a_b", logical_key="c"))
    second = any_cache.read(CacheKey(user_id="a", logical_key="b_c"))
    assert first is not None and first.value == 1
    assert second is not None and second.value == 2


def test_returned_values_are_copies(any_cache: LocalCache) -> None:
    key = CacheKey(user_id="alice", logical_key="tasks")
    source = {"items": [1]}
    any_cache.write(key, source)
    source["items"].append(2)

    entry = any_cache.read(key)
    assert entry is not None
    entry.value["items"].append(3)
    again = any_cache.read(key)
    assert again is not None and again.value == {"items": [1]}


def test_delete_and_clear_all(any_cache: LocalCache) -> None:
    key = CacheKey(user_id="alice", logical_key="tasks")
    any_cache.write(key, 1)
    any_cache.delete(key)
    any_cache.delete(key)
    assert any_cache.read(key) is None

    any_cache.write(CacheKey(user_id="bob", logical_key="x"), 1)
    any_cache.clear()
    assert any_cache.keys("bob") == set()


def test_sqlite_cache_survives_reopen(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "cache.db"
    key = CacheKey(user_id="alice", logical_key="habits")
    first = SqliteCache(path)
    first.write(key, ["persisted"], last_updated=STAMP)
    first.close()

    second = SqliteCache(path)
    entry = second.read(key)
    second.close()
    assert entry is not None
    assert entry.value == ["persisted"]
    assert entry.last_updated == STAMP


def test_sqlite_malformed_row_reads_as_absent(tmp_path: Path) -> None:
    path = tmp_path / "cache.db"
    cache = SqliteCache(path)
    conn = sqlite3.connect(path)
    with conn:
        conn.execute(
            "INSERT INTO key_value_store (user_id, logical_key, value, last_updated) VALUES (?, ?, ?, ?)",
            ("alice", "habits", "{not json", "garbage"),
        )
        conn.execute(
            "INSERT INTO key_value_store (user_id, logical_key, value, last_updated) VALUES (?, ?, ?, ?)",
            ("alice", "tasks", "[1]", "garbage"),
        )
    conn.close()

    assert cache.read(CacheKey(user_id="alice", logical_key="habits")) is None
    tasks = cache.read(CacheKey(user_id="alice", logical_key="tasks"))
    assert tasks is not None
    assert tasks.value == [1]
    assert tasks.last_updated is None
    cache.close()


def test_open_cache_picks_backend(tmp_path: Path) -> None:
    assert isinstance(open_cache(":memory:"), MemoryCache)
    sqlite_cache = open_cache(tmp_path / "c.db")
    assert isinstance(sqlite_cache, SqliteCache)
    sqlite_cache.close()


def test_sqlite_out_of_range_stamp_reads_as_missing(tmp_path: Path) -> None:
    path = tmp_path / "cache.db"
    cache = SqliteCache(path)
    conn = sqlite3.connect(path)
    with conn:
        conn.execute(
            "INSERT INTO key_value_store (user_id, logical_key, value, last_updated) VALUES (?, ?, ?, ?)",
            ("alice", "habits", "[1]", 1e20),
        )
    conn.close()

    entry = cache.read(CacheKey(user_id="alice", logical_key="habits"))
    cache.close()
    assert entry is not None
    assert entry.value == [1]
    assert entry.last_updated is None
