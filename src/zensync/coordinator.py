"""Batched, timestamp-driven reconciliation across many keys.

Instead of every channel polling end-to-end, the coordinator asks the
remote store for the ``lastUpdated`` stamp of every registered key, fetches
only the keys whose stamp moved past the last one it reconciled, and writes
the results straight into the local cache.

Only server-issued timestamps are ever compared with each other; the local
clock plays no part in deciding staleness.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

from zensync._constants import DEFAULT_SYNC_INTERVAL
from zensync.cache import LocalCache
from zensync.exceptions import SyncError
from zensync.models.cache import CacheKey
from zensync.remote import RemoteStore
from zensync.session import SessionState

_logger = logging.getLogger(__name__)


class SyncStatus(StrEnum):
    COMPLETED = "completed"
    IN_FLIGHT = "in_flight"
    NO_SESSION = "no_session"
    NO_KEYS = "no_keys"
    DISCARDED = "discarded"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class SyncResult:
    """Outcome of one :meth:`SyncCoordinator.perform_sync` call."""

    status: SyncStatus
    stale_keys: frozenset[str] = frozenset()
    updated_keys: frozenset[str] = frozenset()
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.status not in (SyncStatus.FAILED, SyncStatus.DISCARDED)


@dataclass(frozen=True, slots=True)
class SyncNotification:
    """User-visible message for a user-initiated sync."""

    success: bool
    message: str
    result: SyncResult = field(repr=False)


def is_stale(server_ts: datetime | None, cursor: datetime | None) -> bool:
    """A key is stale when the server has a stamp newer than the cursor (or no cursor)."""
    if server_ts is None:
        return False
    return cursor is None or server_ts > cursor


class SyncCoordinator:
    """Process-wide reconciliation service.

    Construct one per application and hand it to whoever needs it; there
    is no module-level instance.

    Parameters
    ----------
    remote : RemoteStore
        Selected remote store.
    cache : LocalCache
        Shared local cache; results are written here under the namespace
        of the user whose session started the pass.
    sessions : SessionState
        Session holder; no session means every pass is a no-op.
    interval : float
        Seconds between background passes.
    notifier : callable, optional
        Receives a :class:`SyncNotification` after every :meth:`sync_now`.
    """

    def __init__(
        self,
        remote: RemoteStore,
        cache: LocalCache,
        sessions: SessionState,
        *,
        interval: float = DEFAULT_SYNC_INTERVAL,
        notifier: Callable[[SyncNotification], None] | None = None,
    ) -> None:
        self._remote = remote
        self._cache = cache
        self._sessions = sessions
        self._interval = interval
        self._notifier = notifier
        self._keys: set[str] = set()
        self._cursor: dict[str, datetime] = {}
        self._in_flight = False
        self._generation = 0
        self._ticker: asyncio.Task[None] | None = None
        self._update_listeners: list[Callable[[str, Any], None]] = []

    # ------------------------------------------------------------------
    # Registered keys / cursor
    # ------------------------------------------------------------------

    def register_key(self, key: str) -> None:
        self._keys.add(key)

    def unregister_key(self, key: str) -> None:
        self._keys.discard(key)

    def register_keys(self, keys: Iterable[str]) -> None:
        for key in keys:
            self.register_key(key)

    @property
    def registered_keys(self) -> frozenset[str]:
        return frozenset(self._keys)

    def cursor(self, key: str) -> datetime | None:
        """Last server timestamp reconciled for *key*."""
        return self._cursor.get(key)

    @property
    def is_syncing(self) -> bool:
        return self._in_flight

    def add_update_listener(self, listener: Callable[[str, Any], None]) -> Callable[[], None]:
        """Call ``listener(key, value)`` after each value the coordinator writes to the cache."""
        self._update_listeners.append(listener)

        def _remove() -> None:
            if listener in self._update_listeners:
                self._update_listeners.remove(listener)

        return _remove

    def reset(self) -> None:
        """Forget registered keys and cursors (session start/end).

        A pass that is still in flight when this runs has its results
        discarded.
        """
        self._keys.clear()
        self._cursor.clear()
        self._generation += 1

    # ------------------------------------------------------------------
    # Sync passes
    # ------------------------------------------------------------------

    async def perform_sync(self, immediate: bool = False) -> SyncResult:
        """Run one reconciliation pass.

        Never raises for remote failures; the outcome is reported in the
        returned :class:`SyncResult`.  With ``immediate=True`` the outcome
        is also sent to the notifier.
        """
        if self._in_flight:
            _logger.debug("Sync already in flight; skipping")
            return self._finish(SyncResult(SyncStatus.IN_FLIGHT), immediate)

        session = self._sessions.current
        if session is None:
            return self._finish(SyncResult(SyncStatus.NO_SESSION), immediate)
        if not self._keys:
            return self._finish(SyncResult(SyncStatus.NO_KEYS), immediate)

        self._in_flight = True
        generation = self._generation
        user_id = session.user_id
        keys = frozenset(self._keys)
        try:
            timestamps = await self._remote.get_timestamps(keys)
            stale: dict[str, datetime] = {}
            for key in keys:
                ts = timestamps.get(key)
                if ts is not None and is_stale(ts, self._cursor.get(key)):
                    stale[key] = ts
            if not stale:
                _logger.debug("Sync pass: %d keys, none stale", len(keys))
                return self._finish(SyncResult(SyncStatus.COMPLETED), immediate)

            values = await self._remote.get_batch(stale.keys())

            if not self._still_current(generation, user_id):
                _logger.debug("Session changed during sync; discarding %d results", len(values))
                return self._finish(SyncResult(SyncStatus.DISCARDED, stale_keys=frozenset(stale)), immediate)

            updated: set[str] = set()
            for key, ts in stale.items():
                value = values.get(key)
                if value is None:
                    continue
                self._cache.write(CacheKey(user_id=user_id, logical_key=key), value, last_updated=ts)
                self._advance_cursor(key, ts)
                updated.add(key)
                self._emit_update(key, value)

            _logger.debug("Sync pass: %d stale, %d updated", len(stale), len(updated))
            return self._finish(
                SyncResult(
                    SyncStatus.COMPLETED,
                    stale_keys=frozenset(stale),
                    updated_keys=frozenset(updated),
                ),
                immediate,
            )
        except SyncError as exc:
            _logger.warning("Sync pass failed: %s", exc)
            return self._finish(SyncResult(SyncStatus.FAILED, error=exc), immediate)
        finally:
            self._in_flight = False

    async def sync_now(self) -> SyncResult:
        """User-initiated sync; the outcome is always notified."""
        return await self.perform_sync(immediate=True)

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._ticker is not None and not self._ticker.done()

    def init(self) -> None:
        """Start background passes every ``interval`` seconds (no-op if running)."""
        if self.is_running:
            return
        loop = asyncio.get_running_loop()
        self._ticker = loop.create_task(self._run(), name="zensync-coordinator")
        _logger.debug("Sync coordinator started (interval=%.1fs)", self._interval)

    def stop(self) -> None:
        """Stop scheduling passes (no-op if stopped).

        A pass already dispatched is allowed to complete.
        """
        ticker = self._ticker
        self._ticker = None
        if ticker is not None and not ticker.done():
            ticker.cancel()
            _logger.debug("Sync coordinator stopped")

    async def shutdown(self) -> SyncResult:
        """Stop scheduling and make a best-effort final silent pass."""
        ticker = self._ticker
        self.stop()
        if ticker is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await ticker
        return await self.perform_sync(immediate=False)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.perform_sync(immediate=False)
            except Exception:
                _logger.exception("Background sync pass failed")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _still_current(self, generation: int, user_id: str) -> bool:
        session = self._sessions.current
        return generation == self._generation and session is not None and session.user_id == user_id

    def _advance_cursor(self, key: str, ts: datetime) -> None:
        current = self._cursor.get(key)
        if current is None or ts > current:
            self._cursor[key] = ts

    def _emit_update(self, key: str, value: Any) -> None:
        for listener in list(self._update_listeners):
            try:
                listener(key, value)
            except Exception:
                _logger.debug("Update listener failed for key=%s", key, exc_info=True)

    def _finish(self, result: SyncResult, immediate: bool) -> SyncResult:
        if immediate and self._notifier is not None:
            try:
                self._notifier(_notification_for(result))
            except Exception:
                _logger.debug("Sync notifier failed", exc_info=True)
        return result


def _notification_for(result: SyncResult) -> SyncNotification:
    if result.status is SyncStatus.COMPLETED:
        count = len(result.updated_keys)
        message = f"Synced {count} item{'s' if count != 1 else ''}" if count else "Everything is up to date"
        return SyncNotification(True, message, result)
    if result.status is SyncStatus.NO_KEYS:
        return SyncNotification(True, "Nothing to sync", result)
    if result.status is SyncStatus.NO_SESSION:
        return SyncNotification(False, "Sign in to sync your data", result)
    if result.status is SyncStatus.IN_FLIGHT:
        return SyncNotification(True, "Sync already in progress", result)
    if result.status is SyncStatus.DISCARDED:
        return SyncNotification(False, "Sync interrupted by an account change", result)
    return SyncNotification(False, f"Sync failed: {result.error}", result)
