from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any
from urllib.parse import unquote

import pytest

from zensync.cache import MemoryCache
from zensync.exceptions import RemoteUnavailableError, UnauthorizedError
from zensync.models._base import format_server_timestamp
from zensync.remote import HttpRemoteStore
from zensync.session import Session, SessionState, user_id_from_token


@dataclass
class FakeDataServer:
    """In-memory stand-in for the data API, implementing ``Transport.request``."""

    healthy: bool = True
    calls: dict[str, int] = field(default_factory=dict)
    fail_endpoints: set[str] = field(default_factory=set)
    rows: dict[tuple[str, str], tuple[Any, datetime]] = field(default_factory=dict)
    now: datetime = datetime(2024, 1, 1, tzinfo=UTC)

    def _record_call(self, endpoint: str) -> None:
        self.calls[endpoint] = self.calls.get(endpoint, 0) + 1

    def _tick(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now

    def put(self, user_id: str, key: str, value: Any) -> datetime:
        """Server-side write, as if from another device."""
        stamp = self._tick()
        self.rows[(user_id, key)] = (value, stamp)
        return stamp

    def value(self, user_id: str, key: str) -> Any:
        row = self.rows.get((user_id, key))
        return None if row is None else row[0]

    async def request(
        self,
        method: str,
        endpoint: str,
        *,
        payload: Any = None,
        token: str | None = None,
    ) -> Any:
        self._record_call(endpoint)
        if endpoint in self.fail_endpoints:
            raise RemoteUnavailableError(f"HTTP 500 from {endpoint}", status_code=500, endpoint=endpoint)

        if endpoint == "/api/health":
            if not self.healthy:
                raise RemoteUnavailableError("connection refused", endpoint=endpoint)
            return {"status": "ok"}

        if endpoint == "/api/auth/login":
            username = payload["username"]
            if payload["password"] != username:
                raise UnauthorizedError(f"HTTP 401 from {endpoint}")
            return {
                "success": True,
                "user": {"username": username, "userId": username, "role": "user"},
                "token": f"token_{username}",
            }

        if not token:
            raise UnauthorizedError(f"HTTP 401 from {endpoint}")
        user_id = user_id_from_token(token)

        if endpoint == "/api/auth/user":
            return {"success": True, "user": {"username": user_id, "userId": user_id}}

        if endpoint == "/api/data/sync/timestamps":
            return {
                key: format_server_timestamp(self.rows[(user_id, key)][1])
                for key in payload["keys"]
                if (user_id, key) in self.rows
            }

        if endpoint == "/api/data/sync/batch":
            return {key: self.value(user_id, key) for key in payload["keys"] if (user_id, key) in self.rows}

        if endpoint.startswith("/api/data/"):
            key = unquote(endpoint[len("/api/data/") :])
            if method == "GET":
                row = self.rows.get((user_id, key))
                if row is None:
                    return None
                return {"value": row[0], "lastUpdated": format_server_timestamp(row[1])}
            stamp = self.put(user_id, key, payload["value"])
            return {"success": True, "lastUpdated": format_server_timestamp(stamp)}

        raise RemoteUnavailableError(f"HTTP 404 from {endpoint}", status_code=404, endpoint=endpoint)


@pytest.fixture
def server() -> FakeDataServer:
    return FakeDataServer()


@pytest.fixture
def sessions() -> SessionState:
    return SessionState(Session(user_id="alice", token="token_alice"))


@pytest.fixture
def cache() -> MemoryCache:
    return MemoryCache()


@pytest.fixture
def remote(server: FakeDataServer, sessions: SessionState) -> HttpRemoteStore:
    return HttpRemoteStore(server, sessions)
