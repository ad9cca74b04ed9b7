"""zensync - Offline-first data sync engine for the Zen habit tracker."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("zensync")
except PackageNotFoundError:
    __version__ = "0+local"
from zensync.backend import BackendSelector
from zensync.cache import LocalCache, MemoryCache, SqliteCache, open_cache
from zensync.channel import KeyValueChannel
from zensync.client import ZenSyncClient
from zensync.config import SyncConfig
from zensync.coordinator import SyncCoordinator, SyncNotification, SyncResult, SyncStatus
from zensync.exceptions import (
    AuthenticationError,
    MalformedPayloadError,
    RemoteUnavailableError,
    SyncConfigError,
    SyncError,
    UnauthorizedError,
)
from zensync.models import AuthUser, CacheEntry, CacheKey, DataRecord
from zensync.remote import HttpRemoteStore, LocalOnlyRemoteStore, RemoteStore
from zensync.session import Session, SessionState

__all__ = [
    "__version__",
    "AuthenticationError",
    "AuthUser",
    "BackendSelector",
    "CacheEntry",
    "CacheKey",
    "DataRecord",
    "HttpRemoteStore",
    "KeyValueChannel",
    "LocalCache",
    "LocalOnlyRemoteStore",
    "MalformedPayloadError",
    "MemoryCache",
    "RemoteStore",
    "RemoteUnavailableError",
    "Session",
    "SessionState",
    "SqliteCache",
    "SyncConfig",
    "SyncConfigError",
    "SyncCoordinator",
    "SyncError",
    "SyncNotification",
    "SyncResult",
    "SyncStatus",
    "UnauthorizedError",
    "ZenSyncClient",
    "open_cache",
]
