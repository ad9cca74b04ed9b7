"""One-time choice between the HTTP store and mock mode."""

from __future__ import annotations

import logging

from zensync._constants import HEALTH_ENDPOINT, MOCK_MODE_SETTING, SETTINGS_NAMESPACE
from zensync._transport import Transport
from zensync.cache import LocalCache
from zensync.config import SyncConfig
from zensync.exceptions import SyncConfigError, SyncError
from zensync.models.cache import CacheKey
from zensync.remote import HttpRemoteStore, LocalOnlyRemoteStore, RemoteStore
from zensync.session import SessionState

_logger = logging.getLogger(__name__)

_SETTING_KEY = CacheKey(user_id=SETTINGS_NAMESPACE, logical_key=MOCK_MODE_SETTING)


class BackendSelector:
    """Pick the :class:`RemoteStore` implementation once per installation.

    Resolution order:

    1. ``config.mock_mode`` when explicitly set.
    2. A decision persisted by an earlier run (so reloads skip the health check).
    3. Mock mode when there is no transport (no ``base_url``).
    4. A ``GET /api/health`` probe; any failure selects mock mode.

    The outcome of steps 3 and 4 is persisted in the local cache.
    """

    def __init__(
        self,
        config: SyncConfig,
        cache: LocalCache,
        sessions: SessionState,
        *,
        transport: Transport | None = None,
    ) -> None:
        self._config = config
        self._cache = cache
        self._sessions = sessions
        self._transport = transport
        self._store: RemoteStore | None = None

    @property
    def selected(self) -> RemoteStore | None:
        return self._store

    @property
    def is_mock(self) -> bool:
        return self._store is not None and self._store.is_mock

    async def select(self) -> RemoteStore:
        """Return the selected store, deciding on the first call."""
        if self._store is not None:
            return self._store

        mock = await self._decide()
        if mock:
            self._store = LocalOnlyRemoteStore(self._cache, self._sessions)
        else:
            if self._transport is None:
                raise SyncConfigError("mock_mode=False requires config.base_url")
            self._store = HttpRemoteStore(self._transport, self._sessions)
        _logger.info("Remote store selected: %s", "mock (local only)" if mock else "http")
        return self._store

    def reset(self) -> None:
        """Forget the persisted decision; the next :meth:`select` decides again."""
        self._cache.delete(_SETTING_KEY)
        self._store = None

    async def _decide(self) -> bool:
        if self._config.mock_mode is not None:
            return self._config.mock_mode

        persisted = self._read_persisted()
        if persisted is not None:
            _logger.debug("Using persisted backend decision mock=%s", persisted)
            return persisted

        if self._transport is None:
            _logger.debug("No base_url configured; selecting mock mode")
            return self._persist(True)

        try:
            await self._transport.request("GET", HEALTH_ENDPOINT)
        except SyncError as exc:
            _logger.warning("Data API unreachable (%s); switching to mock mode", exc)
            return self._persist(True)
        return self._persist(False)

    def _read_persisted(self) -> bool | None:
        entry = self._cache.read(_SETTING_KEY)
        if entry is None or not isinstance(entry.value, bool):
            return None
        return entry.value

    def _persist(self, mock: bool) -> bool:
        self._cache.write(_SETTING_KEY, mock)
        return mock
