from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import pytest

from zensync._api import data as data_api
from zensync.cache import MemoryCache
from zensync.exceptions import RemoteUnavailableError, UnauthorizedError
from zensync.models.cache import CacheKey
from zensync.remote import HttpRemoteStore, LocalOnlyRemoteStore, RemoteStore
from zensync.session import Session, SessionState

if TYPE_CHECKING:
    from conftest import FakeDataServer


@pytest.fixture(params=["http", "mock"])
def store(request: pytest.FixtureRequest, server: FakeDataServer, sessions: SessionState) -> RemoteStore:
    if request.param == "http":
        return HttpRemoteStore(server, sessions)
    return LocalOnlyRemoteStore(MemoryCache(), sessions)


@pytest.mark.asyncio
async def test_unknown_key_is_absent(store: RemoteStore) -> None:
    assert await store.get_one("habits") is None
    assert await store.get_timestamps(["habits"]) == {"habits": None}


@pytest.mark.asyncio
async def test_set_then_get_round_trip(store: RemoteStore) -> None:
    await store.set_one("habits", [{"id": 1, "name": "Read"}])
    assert await store.get_one("habits") == [{"id": 1, "name": "Read"}]


@pytest.mark.asyncio
async def test_timestamps_increase_with_every_write(store: RemoteStore) -> None:
    await store.set_one("habits", [1])
    first = (await store.get_timestamps(["habits"]))["habits"]
    await store.set_one("habits", [1, 2])
    second = (await store.get_timestamps(["habits"]))["habits"]

    assert first is not None and second is not None
    assert second > first
    assert second.tzinfo is not None


@pytest.mark.asyncio
async def test_batch_returns_only_requested_keys(store: RemoteStore) -> None:
    await store.set_one("habits", ["h"])
    await store.set_one("tasks", ["t"])
    await store.set_one("calendar-tasks", ["c"])

    batch = await store.get_batch(["habits", "tasks", "missing"])
    assert batch.get("habits") == ["h"]
    assert batch.get("tasks") == ["t"]
    assert batch.get("missing") is None
    assert "calendar-tasks" not in batch


@pytest.mark.asyncio
async def test_every_operation_requires_a_session(server: FakeDataServer) -> None:
    signed_out = SessionState()
    for store in (HttpRemoteStore(server, signed_out), LocalOnlyRemoteStore(MemoryCache(), signed_out)):
        with pytest.raises(UnauthorizedError):
            await store.get_one("habits")
        with pytest.raises(UnauthorizedError):
            await store.set_one("habits", [])
        with pytest.raises(UnauthorizedError):
            await store.get_timestamps(["habits"])
        with pytest.raises(UnauthorizedError):
            await store.get_batch(["habits"])
    assert server.calls == {}


@pytest.mark.asyncio
async def test_empty_key_sets_skip_the_network(remote: HttpRemoteStore, server: FakeDataServer) -> None:
    assert await remote.get_timestamps([]) == {}
    assert await remote.get_batch([]) == {}
    assert server.calls == {}


@pytest.mark.asyncio
async def test_http_store_is_namespaced_by_token(server: FakeDataServer) -> None:
    alice = HttpRemoteStore(server, SessionState(Session(user_id="alice", token="token_alice")))
    bob = HttpRemoteStore(server, SessionState(Session(user_id="bob", token="token_bob")))

    await alice.set_one("habits", ["alice"])
    assert await bob.get_one("habits") is None


@pytest.mark.asyncio
async def test_http_failure_surfaces_remote_unavailable(remote: HttpRemoteStore, server: FakeDataServer) -> None:
    server.fail_endpoints.add("/api/data/sync/timestamps")
    with pytest.raises(RemoteUnavailableError):
        await remote.get_timestamps(["habits"])


@pytest.mark.asyncio
async def test_mock_store_writes_into_user_namespace(sessions: SessionState) -> None:
    cache = MemoryCache()
    stamps = iter([datetime(2024, 1, 1, tzinfo=UTC)] * 2)
    store = LocalOnlyRemoteStore(cache, sessions, clock=lambda: next(stamps))

    await store.set_one("habits", ["a"])
    await store.set_one("habits", ["b"])

    entry = cache.read(CacheKey(user_id="alice", logical_key="habits"))
    assert entry is not None
    assert entry.value == ["b"]
    # A clock that stands still still yields increasing stamps.
    assert entry.last_updated == datetime(2024, 1, 1, 0, 0, 0, 1, tzinfo=UTC)


class _ScriptedTransport:
    def __init__(self, body: Any) -> None:
        self.body = body
        self.requests: list[tuple[str, str, Any]] = []

    async def request(self, method: str, endpoint: str, *, payload: Any = None, token: str | None = None) -> Any:
        self.requests.append((method, endpoint, payload))
        return self.body


@pytest.mark.asyncio
async def test_fetch_value_quotes_key_and_accepts_bare_values() -> None:
    transport = _ScriptedTransport(["legacy"])
    record = await data_api.fetch_value(transport, Session(user_id="a", token="t"), "calendar tasks/1")

    assert record is not None and record.value == ["legacy"]
    assert transport.requests == [("GET", "/api/data/calendar%20tasks%2F1", None)]


@pytest.mark.asyncio
async def test_store_value_requires_acknowledgement() -> None:
    transport = _ScriptedTransport({"success": False})
    with pytest.raises(RemoteUnavailableError):
        await data_api.store_value(transport, Session(user_id="a", token="t"), "habits", [])


@pytest.mark.asyncio
async def test_fetch_timestamps_tolerates_bad_entries() -> None:
    transport = _ScriptedTransport({"habits": "2024-05-01T12:00:00Z", "tasks": "not-a-date"})
    result = await data_api.fetch_timestamps(transport, Session(user_id="a", token="t"), ["tasks", "habits", "x"])

    assert result == {
        "habits": datetime(2024, 5, 1, 12, 0, tzinfo=UTC),
        "tasks": None,
        "x": None,
    }
    assert transport.requests[0][2] == {"keys": ["habits", "tasks", "x"]}


@pytest.mark.asyncio
async def test_non_object_batch_reply_is_rejected() -> None:
    transport = _ScriptedTransport(["not", "a", "map"])
    with pytest.raises(RemoteUnavailableError):
        await data_api.fetch_batch(transport, Session(user_id="a", token="t"), ["habits"])


@pytest.mark.asyncio
async def test_fetch_timestamps_tolerates_out_of_range_epochs() -> None:
    transport = _ScriptedTransport({"habits": 1e20, "tasks": 1714564800})
    result = await data_api.fetch_timestamps(transport, Session(user_id="a", token="t"), ["habits", "tasks"])

    assert result == {"habits": None, "tasks": datetime(2024, 5, 1, 12, 0, tzinfo=UTC)}


@pytest.mark.asyncio
async def test_explicit_session_overrides_current_one(server: FakeDataServer, sessions: SessionState) -> None:
    store = HttpRemoteStore(server, sessions)
    await store.set_one("habits", ["carol"], session=Session(user_id="carol", token="token_carol"))

    assert server.value("carol", "habits") == ["carol"]
    assert await store.get_one("habits") is None
    assert await store.get_one("habits", session=Session(user_id="carol", token="token_carol")) == ["carol"]
