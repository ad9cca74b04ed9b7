"""Client configuration for zensync."""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Mapping
from typing import Any

from zensync._constants import (
    DEFAULT_POLL_INTERVAL,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_SYNC_INTERVAL,
    DEFAULT_TRACKED_KEYS,
)
from zensync.exceptions import SyncConfigError


def _env_bool(value: str | None, default: bool | None) -> bool | None:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_float(env: Mapping[str, str], name: str) -> float | None:
    raw = env.get(name)
    if raw is None:
        return None
    try:
        return float(raw)
    except ValueError as exc:
        raise SyncConfigError(f"{name} must be a number, got {raw!r}") from exc


@dataclasses.dataclass(frozen=True)
class SyncConfig:
    """Client configuration.

    Parameters
    ----------
    base_url : str or None
        Root URL of the data API (e.g. ``"https://habit.example.com"``).
        ``None`` means no server is reachable and forces mock mode.
    cache_path : str
        Location of the SQLite file backing the local cache.
        ``":memory:"`` keeps the cache in process memory.
    poll_interval : float
        Seconds between background polls of a single channel.
    sync_interval : float
        Seconds between batched reconciliation passes.
    request_timeout : float
        Total timeout in seconds for a single HTTP request.
    mock_mode : bool or None
        Force (``True``) or forbid (``False``) mock mode.  ``None`` lets
        the backend selector decide.
    session_ttl : float
        Seconds after which a session is considered expired.  ``0``
        disables expiry.
    tracked_keys : tuple of str
        Logical keys registered with the coordinator on sign-in.
    """

    base_url: str | None = None
    cache_path: str = ":memory:"
    poll_interval: float = DEFAULT_POLL_INTERVAL
    sync_interval: float = DEFAULT_SYNC_INTERVAL
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    mock_mode: bool | None = None
    session_ttl: float = 0.0
    tracked_keys: tuple[str, ...] = DEFAULT_TRACKED_KEYS

    def __post_init__(self) -> None:
        if self.poll_interval <= 0:
            raise SyncConfigError("poll_interval must be positive")
        if self.sync_interval <= 0:
            raise SyncConfigError("sync_interval must be positive")
        if self.request_timeout <= 0:
            raise SyncConfigError("request_timeout must be positive")
        if self.base_url is not None:
            object.__setattr__(self, "base_url", self.base_url.rstrip("/") or None)

    @classmethod
    def from_env(cls, **overrides: Any) -> SyncConfig:
        """Create configuration from ``ZENSYNC_*`` environment variables.

        Explicit keyword arguments override environment values.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {}

        base_url = env.get("ZENSYNC_BASE_URL")
        if base_url:
            config_kwargs["base_url"] = base_url

        cache_path = env.get("ZENSYNC_CACHE_PATH")
        if cache_path:
            config_kwargs["cache_path"] = cache_path

        _ENV_FLOAT_MAP = {
            "ZENSYNC_POLL_INTERVAL": "poll_interval",
            "ZENSYNC_SYNC_INTERVAL": "sync_interval",
            "ZENSYNC_REQUEST_TIMEOUT": "request_timeout",
            "ZENSYNC_SESSION_TTL": "session_ttl",
        }
        for env_key, field_name in _ENV_FLOAT_MAP.items():
            value = _env_float(env, env_key)
            if value is not None:
                config_kwargs[field_name] = value

        mock_mode = _env_bool(env.get("ZENSYNC_MOCK_MODE"), None)
        if mock_mode is not None:
            config_kwargs["mock_mode"] = mock_mode

        tracked = env.get("ZENSYNC_TRACKED_KEYS")
        if tracked is not None:
            config_kwargs["tracked_keys"] = tuple(k.strip() for k in tracked.split(",") if k.strip())

        config_kwargs.update(overrides)
        return cls(**config_kwargs)
