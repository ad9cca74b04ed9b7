"""Per-key reactive state backed by the local cache and the remote store.

A :class:`KeyValueChannel` gives one consumer a read/write pair for one
logical key:

* construction seeds the value from the local cache without suspending;
* :meth:`KeyValueChannel.start` reconciles once with the remote store and
  then polls it on a fixed interval;
* :meth:`KeyValueChannel.write` is optimistic: the value, the local cache
  and the remote store are updated in that order, the last one in the
  background.

Failures never escape into the caller.  They are exposed through
:attr:`KeyValueChannel.error` and the ``on_error`` callback while the last
good value stays readable.
"""

from __future__ import annotations

import asyncio
import contextlib
import copy
import logging
from collections.abc import Callable
from typing import Any

from zensync._constants import DEFAULT_POLL_INTERVAL, PLACEHOLDER_USER_ID
from zensync.cache import LocalCache
from zensync.exceptions import SyncError
from zensync.models.cache import CacheKey
from zensync.remote import RemoteStore
from zensync.session import Session, SessionState

_logger = logging.getLogger(__name__)

ChangeCallback = Callable[[str, Any], None]
ErrorCallback = Callable[[str, Exception], None]


class KeyValueChannel:
    """Read/write access to one logical key.

    Parameters
    ----------
    key : str
        Logical key (e.g. ``"habits"``).
    initial_value
        Value used when neither the cache nor the remote store knows the
        key.  It is persisted to both as soon as it is used.
    cache : LocalCache
        Durable local cache shared with other channels and the coordinator.
    remote : RemoteStore
        Selected remote store (HTTP or mock mode).
    sessions : SessionState
        Session holder.  The user namespace is captured at construction;
        remote calls are only made while the current session belongs to
        that namespace, and a queued write keeps the session it was
        issued under.
    poll_interval : float or None
        Seconds between background polls; ``None`` disables polling.
    on_change : callable, optional
        ``on_change(key, value)`` after every change of the exposed value.
    on_error : callable, optional
        ``on_error(key, exc)`` whenever a remote operation fails.
    """

    def __init__(
        self,
        key: str,
        initial_value: Any,
        *,
        cache: LocalCache,
        remote: RemoteStore,
        sessions: SessionState,
        poll_interval: float | None = DEFAULT_POLL_INTERVAL,
        on_change: ChangeCallback | None = None,
        on_error: ErrorCallback | None = None,
    ) -> None:
        self._key = key
        self._cache = cache
        self._remote = remote
        self._sessions = sessions
        self._poll_interval = poll_interval
        self._on_change = on_change
        self._on_error = on_error

        session = sessions.current
        self._cache_key = CacheKey(
            user_id=session.user_id if session is not None else PLACEHOLDER_USER_ID,
            logical_key=key,
        )

        self._error: Exception | None = None
        self._is_loading = True
        self._write_seq = 0
        self._pending: set[asyncio.Task[None]] = set()
        self._init_task: asyncio.Task[None] | None = None
        self._poll_task: asyncio.Task[None] | None = None

        entry = cache.read(self._cache_key)
        if entry is None:
            self._value: Any = copy.deepcopy(initial_value)
            self._write_cache(self._value)
        else:
            self._value = entry.value

    # ------------------------------------------------------------------
    # Observables
    # ------------------------------------------------------------------

    @property
    def key(self) -> str:
        return self._key

    @property
    def cache_key(self) -> CacheKey:
        return self._cache_key

    @property
    def value(self) -> Any:
        """Current value (a copy; mutate it through :meth:`write`)."""
        return copy.deepcopy(self._value)

    @property
    def error(self) -> Exception | None:
        """Last remote failure, cleared by the next successful remote call."""
        return self._error

    @property
    def is_loading(self) -> bool:
        """``True`` until the first remote reconciliation has finished."""
        return self._is_loading

    @property
    def is_running(self) -> bool:
        return self._init_task is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> KeyValueChannel:
        self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    def start(self) -> None:
        """Begin the initial reconciliation and background polling.

        Calling it again while running is a no-op.
        """
        if self._init_task is not None:
            return
        loop = asyncio.get_running_loop()
        self._init_task = loop.create_task(self._initial_sync(), name=f"zensync-init-{self._key}")
        if self._poll_interval:
            self._poll_task = loop.create_task(self._poll_loop(), name=f"zensync-poll-{self._key}")

    def stop(self) -> None:
        """Stop polling.  Remote writes already dispatched are left to finish."""
        for task in (self._init_task, self._poll_task):
            if task is not None and not task.done():
                task.cancel()
        self._init_task = None
        self._poll_task = None

    async def close(self) -> None:
        """Stop polling and wait for outstanding remote writes."""
        init_task, poll_task = self._init_task, self._poll_task
        self.stop()
        for task in (init_task, poll_task):
            if task is not None:
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        await self.flush()

    async def ready(self) -> None:
        """Wait until the initial reconciliation has finished."""
        task = self._init_task
        if task is not None:
            await asyncio.shield(task)

    async def flush(self) -> None:
        """Wait for every background remote write issued so far."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ------------------------------------------------------------------
    # Reads / writes
    # ------------------------------------------------------------------

    def write(self, value: Any) -> Any:
        """Set a new value, or apply ``value(previous)`` when *value* is callable.

        The new value is visible through :attr:`value` and the local cache
        before this method returns; the remote write runs in the
        background and is never rolled back locally on failure.

        Returns
        -------
        The value that was stored.
        """
        if callable(value):
            new_value = value(copy.deepcopy(self._value))
        else:
            new_value = value
        new_value = copy.deepcopy(new_value)

        self._write_seq += 1
        self._set_value(new_value)
        self._write_cache(new_value)
        self._schedule_remote_write(new_value)
        return copy.deepcopy(new_value)

    async def refresh(self) -> bool:
        """Poll the remote store once.

        The exposed value is replaced only when the remote value differs
        structurally from it.  Last write observed by the poll wins; no
        timestamps are compared here.

        Returns
        -------
        bool
            ``True`` if the value changed.
        """
        session = self._owned_session()
        if session is None:
            return False
        try:
            remote_value = await self._remote.get_one(self._key, session=session)
        except SyncError as exc:
            self._set_error(exc)
            return False
        self._error = None
        if remote_value is None or remote_value == self._value:
            return False
        _logger.debug("Poll replaced value for key=%s", self._key)
        self._set_value(remote_value)
        self._write_cache(remote_value)
        return True

    def apply_external(self, value: Any) -> None:
        """Expose a value another component already wrote to the local cache."""
        if value is None or value == self._value:
            return
        self._set_value(copy.deepcopy(value))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _initial_sync(self) -> None:
        try:
            session = self._owned_session()
            if session is None:
                _logger.debug("No session for %s; key=%s stays local-only", self._cache_key.user_id, self._key)
                return
            seq_before = self._write_seq
            try:
                remote_value = await self._remote.get_one(self._key, session=session)
            except SyncError as exc:
                _logger.warning("Initial fetch failed for key=%s; using cached value: %s", self._key, exc)
                self._set_error(exc)
                return

            self._error = None
            if self._write_seq != seq_before:
                # A local write landed while the fetch was in flight; it already
                # went to the remote store and must not be reverted.
                return
            if remote_value is not None:
                if remote_value != self._value:
                    self._set_value(remote_value)
                    self._write_cache(remote_value)
                return

            # Nothing stored remotely yet: give later reconciliations a baseline.
            self._schedule_remote_write(copy.deepcopy(self._value))
        finally:
            self._is_loading = False

    async def _poll_loop(self) -> None:
        assert self._poll_interval  # noqa: S101
        while True:
            await asyncio.sleep(self._poll_interval)
            try:
                await self.refresh()
            except Exception:
                _logger.exception("Background poll failed for key=%s", self._key)

    def _owned_session(self) -> Session | None:
        """Current session, if it belongs to this channel's namespace."""
        session = self._sessions.current
        if session is None or session.user_id != self._cache_key.user_id:
            return None
        return session

    def _schedule_remote_write(self, value: Any) -> None:
        session = self._owned_session()
        if session is None:
            _logger.debug("No session for %s; write to key=%s kept local-only", self._cache_key.user_id, self._key)
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            _logger.warning("No running event loop; write to key=%s kept local-only", self._key)
            return
        task = loop.create_task(self._push(value, session), name=f"zensync-write-{self._key}")
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _push(self, value: Any, session: Session) -> None:
        try:
            await self._remote.set_one(self._key, value, session=session)
        except SyncError as exc:
            _logger.warning("Remote write failed for key=%s (kept locally): %s", self._key, exc)
            self._set_error(exc)
            return
        self._error = None

    def _write_cache(self, value: Any) -> None:
        # Local writes keep the last server stamp; only the remote issues new ones.
        entry = self._cache.read(self._cache_key)
        last_updated = entry.last_updated if entry is not None else None
        self._cache.write(self._cache_key, value, last_updated=last_updated)

    def _set_value(self, value: Any) -> None:
        self._value = value
        if self._on_change is not None:
            try:
                self._on_change(self._key, copy.deepcopy(value))
            except Exception:
                _logger.debug("on_change callback failed", exc_info=True)

    def _set_error(self, exc: Exception) -> None:
        self._error = exc
        if self._on_error is not None:
            try:
                self._on_error(self._key, exc)
            except Exception:
                _logger.debug("on_error callback failed", exc_info=True)
