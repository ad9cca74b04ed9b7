"""High-level async client for the zensync engine."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

import aiohttp

from zensync._api import auth as _auth_api
from zensync._constants import PLACEHOLDER_USER_ID
from zensync._transport import HttpTransport, Transport
from zensync.backend import BackendSelector
from zensync.cache import LocalCache, SqliteCache, open_cache
from zensync.channel import ChangeCallback, ErrorCallback, KeyValueChannel
from zensync.config import SyncConfig
from zensync.coordinator import SyncCoordinator, SyncNotification, SyncResult
from zensync.exceptions import SyncConfigError, SyncError
from zensync.models.auth import AuthResponse, AuthUser
from zensync.remote import RemoteStore
from zensync.session import Session, SessionState, user_id_from_token

_logger = logging.getLogger(__name__)


class ZenSyncClient:
    """Async entry point wiring cache, remote store, channels and coordinator.

    Usage::

        async with ZenSyncClient(config) as client:
            await client.login("admin", "secret")
            habits = client.channel("habits", [])
            habits.write(lambda items: [*items, {"id": 1, "name": "Read"}])
    """

    def __init__(
        self,
        config: SyncConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        cache: LocalCache | None = None,
        sessions: SessionState | None = None,
        notifier: Callable[[SyncNotification], None] | None = None,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._owns_cache = cache is None
        self._cache = cache
        self._sessions = sessions if sessions is not None else SessionState()
        self._notifier = notifier
        self._transport: Transport | None = None
        self._selector: BackendSelector | None = None
        self._remote: RemoteStore | None = None
        self._coordinator: SyncCoordinator | None = None
        self._channels: list[KeyValueChannel] = []

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> ZenSyncClient:
        if self._cache is None:
            self._cache = open_cache(self._config.cache_path)
        if self._config.base_url:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            self._transport = HttpTransport(self._config, self._http_session)

        self._selector = BackendSelector(
            self._config,
            self._cache,
            self._sessions,
            transport=self._transport,
        )
        self._remote = await self._selector.select()
        self._coordinator = SyncCoordinator(
            self._remote,
            self._cache,
            self._sessions,
            interval=self._config.sync_interval,
            notifier=self._notifier,
        )
        self._coordinator.add_update_listener(self._route_update)
        if self._sessions.current is not None:
            self._begin_sync()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if self._coordinator is not None:
            await self._coordinator.shutdown()
        for channel in list(self._channels):
            await channel.close()
        self._channels.clear()
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        if self._owns_cache and isinstance(self._cache, SqliteCache):
            self._cache.close()
            self._cache = None
        self._transport = None
        self._coordinator = None
        self._remote = None

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def sessions(self) -> SessionState:
        return self._sessions

    @property
    def is_authenticated(self) -> bool:
        return self._sessions.is_authenticated

    @property
    def is_mock(self) -> bool:
        return self._require_remote().is_mock

    @property
    def cache(self) -> LocalCache:
        if self._cache is None:
            raise SyncError("Client not initialized. Use 'async with ZenSyncClient(...) as client:'")
        return self._cache

    @property
    def coordinator(self) -> SyncCoordinator:
        if self._coordinator is None:
            raise SyncError("Client not initialized. Use 'async with ZenSyncClient(...) as client:'")
        return self._coordinator

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    async def login(self, username: str, password: str) -> AuthUser:
        """Sign in and start background sync for the user."""
        if self.is_mock:
            response = _auth_api.local_login(username, password)
        else:
            response = await _auth_api.login(self._require_transport(), username, password)
        return self._start_session(response)

    async def register(self, username: str, password: str, *, email: str | None = None) -> AuthUser:
        """Create an account on the data API and sign in."""
        if self.is_mock:
            raise SyncConfigError("Registration needs the data API; it is unavailable in mock mode")
        response = await _auth_api.register(self._require_transport(), username, password, email=email)
        return self._start_session(response)

    async def restore_session(self, token: str) -> AuthUser:
        """Resume a session from a stored bearer token.

        Against the data API the token is verified first; an invalid token
        raises :class:`~zensync.exceptions.UnauthorizedError`.
        """
        if self.is_mock:
            user_id = user_id_from_token(token)
            user = AuthUser(username=user_id, user_id=user_id)
        else:
            user = await _auth_api.fetch_current_user(self._require_transport(), token)
        return self._start_session(AuthResponse(success=True, user=user, token=token))

    def logout(self) -> None:
        """End the session: stop background sync and all channels."""
        coordinator = self.coordinator
        coordinator.stop()
        coordinator.reset()
        for channel in self._channels:
            channel.stop()
        self._channels.clear()
        self._sessions.clear()

    # ------------------------------------------------------------------
    # Channels / sync
    # ------------------------------------------------------------------

    def channel(
        self,
        key: str,
        initial_value: Any,
        *,
        poll: bool = True,
        on_change: ChangeCallback | None = None,
        on_error: ErrorCallback | None = None,
    ) -> KeyValueChannel:
        """Create and start a channel for *key*, registering it for batched sync."""
        channel = KeyValueChannel(
            key,
            initial_value,
            cache=self.cache,
            remote=self._require_remote(),
            sessions=self._sessions,
            poll_interval=self._config.poll_interval if poll else None,
            on_change=on_change,
            on_error=on_error,
        )
        channel.start()
        self._channels.append(channel)
        if self._sessions.current is not None:
            self.coordinator.register_key(key)
        return channel

    async def close_channel(self, channel: KeyValueChannel) -> None:
        """Stop *channel* and wait for its pending writes."""
        if channel in self._channels:
            self._channels.remove(channel)
        await channel.close()

    async def sync_now(self) -> SyncResult:
        """User-initiated sync of every registered key."""
        return await self.coordinator.sync_now()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_transport(self) -> Transport:
        if self._transport is None:
            raise SyncConfigError("No data API configured (set config.base_url)")
        return self._transport

    def _require_remote(self) -> RemoteStore:
        if self._remote is None:
            raise SyncError("Client not initialized. Use 'async with ZenSyncClient(...) as client:'")
        return self._remote

    def _start_session(self, response: AuthResponse) -> AuthUser:
        assert response.user is not None and response.token is not None  # noqa: S101
        if self._sessions.current is not None:
            self.logout()

        user_id = user_id_from_token(response.token)
        if user_id == PLACEHOLDER_USER_ID and response.user.user_id:
            user_id = response.user.user_id
        ttl = self._config.session_ttl if self._config.session_ttl > 0 else float("inf")
        self._sessions.set(Session.from_token(response.token, user_id=user_id, ttl=ttl))
        self._stop_foreign_channels(user_id)
        _logger.info("Signed in as %s", response.user.username)
        self._begin_sync()
        return response.user

    def _stop_foreign_channels(self, user_id: str) -> None:
        # Channels opened while signed out belong to the placeholder namespace.
        foreign = [c for c in self._channels if c.cache_key.user_id != user_id]
        for channel in foreign:
            channel.stop()
            self._channels.remove(channel)
        if foreign:
            _logger.debug("Stopped %d channel(s) outside namespace %s", len(foreign), user_id)

    def _begin_sync(self) -> None:
        coordinator = self.coordinator
        coordinator.reset()
        coordinator.register_keys(self._config.tracked_keys)
        coordinator.init()

    def _route_update(self, key: str, value: Any) -> None:
        session = self._sessions.current
        if session is None:
            return
        for channel in self._channels:
            if channel.key == key and channel.cache_key.user_id == session.user_id:
                channel.apply_external(value)
