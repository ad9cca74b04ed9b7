"""Remote store strategies.

Two implementations share the :class:`RemoteStore` interface:

* :class:`HttpRemoteStore` talks to the authoritative data API.
* :class:`LocalOnlyRemoteStore` ("mock mode") serves the same contract from
  the local cache when no server is reachable.

Callers pick one once (see :mod:`zensync.backend`) and never branch on it.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol

from zensync._api import data as _data_api
from zensync._transport import Transport
from zensync.cache import LocalCache
from zensync.exceptions import UnauthorizedError
from zensync.models.cache import CacheKey
from zensync.session import Session, SessionState

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class RemoteStore(Protocol):
    """Per-key and batched access to the authoritative store.

    Every method requires a valid session and raises
    :class:`~zensync.exceptions.UnauthorizedError` without one.  The
    per-key methods accept an explicit ``session`` captured by the caller;
    it takes precedence over the current one so a queued write always lands
    in the namespace it was issued for.  Network
    and protocol failures surface as
    :class:`~zensync.exceptions.RemoteUnavailableError`.
    """

    is_mock: bool

    async def get_timestamps(self, keys: Iterable[str]) -> dict[str, datetime | None]:
        ...

    async def get_batch(self, keys: Iterable[str]) -> dict[str, Any | None]:
        ...

    async def get_one(self, key: str, *, session: Session | None = None) -> Any | None:
        ...

    async def set_one(self, key: str, value: Any, *, session: Session | None = None) -> None:
        ...


def _require_session(sessions: SessionState, session: Session | None = None) -> Session:
    if session is not None:
        return session
    session = sessions.current
    if session is None:
        raise UnauthorizedError("No active session")
    return session


class HttpRemoteStore:
    """Remote store backed by the data API."""

    is_mock = False

    def __init__(self, transport: Transport, sessions: SessionState) -> None:
        self._transport = transport
        self._sessions = sessions

    async def get_timestamps(self, keys: Iterable[str]) -> dict[str, datetime | None]:
        session = _require_session(self._sessions)
        wanted = set(keys)
        if not wanted:
            return {}
        return await _data_api.fetch_timestamps(self._transport, session, wanted)

    async def get_batch(self, keys: Iterable[str]) -> dict[str, Any | None]:
        session = _require_session(self._sessions)
        wanted = set(keys)
        if not wanted:
            return {}
        return await _data_api.fetch_batch(self._transport, session, wanted)

    async def get_one(self, key: str, *, session: Session | None = None) -> Any | None:
        session = _require_session(self._sessions, session)
        record = await _data_api.fetch_value(self._transport, session, key)
        return None if record is None else record.value

    async def set_one(self, key: str, value: Any, *, session: Session | None = None) -> None:
        session = _require_session(self._sessions, session)
        await _data_api.store_value(self._transport, session, key, value)


class LocalOnlyRemoteStore:
    """Mock-mode remote store that reads and writes the local cache.

    Writes are stamped from a local clock that never repeats or goes
    backwards, so the coordinator's timestamp comparisons behave exactly
    as they do against the server.
    """

    is_mock = True

    def __init__(
        self,
        cache: LocalCache,
        sessions: SessionState,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._cache = cache
        self._sessions = sessions
        self._clock = clock
        self._last_stamp: datetime | None = None

    def _key(self, session: Session, key: str) -> CacheKey:
        return CacheKey(user_id=session.user_id, logical_key=key)

    def _next_stamp(self) -> datetime:
        stamp = self._clock()
        if self._last_stamp is not None and stamp <= self._last_stamp:
            stamp = self._last_stamp + timedelta(microseconds=1)
        self._last_stamp = stamp
        return stamp

    async def get_timestamps(self, keys: Iterable[str]) -> dict[str, datetime | None]:
        session = _require_session(self._sessions)
        result: dict[str, datetime | None] = {}
        for key in set(keys):
            entry = self._cache.read(self._key(session, key))
            result[key] = None if entry is None else entry.last_updated
        return result

    async def get_batch(self, keys: Iterable[str]) -> dict[str, Any | None]:
        session = _require_session(self._sessions)
        result: dict[str, Any | None] = {}
        for key in set(keys):
            entry = self._cache.read(self._key(session, key))
            result[key] = None if entry is None else entry.value_copy()
        return result

    async def get_one(self, key: str, *, session: Session | None = None) -> Any | None:
        session = _require_session(self._sessions, session)
        entry = self._cache.read(self._key(session, key))
        return None if entry is None else entry.value_copy()

    async def set_one(self, key: str, value: Any, *, session: Session | None = None) -> None:
        session = _require_session(self._sessions, session)
        stamp = self._next_stamp()
        _logger.debug("Mock set_one key=%s user=%s stamp=%s", key, session.user_id, stamp.isoformat())
        self._cache.write(self._key(session, key), value, last_updated=stamp)
