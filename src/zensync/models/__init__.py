"""Data models for zensync."""

from zensync.models._base import ServerTimestamp, ZenBaseModel, format_server_timestamp, parse_server_timestamp
from zensync.models.auth import AuthResponse, AuthUser
from zensync.models.cache import CacheEntry, CacheKey
from zensync.models.data import DataRecord, WriteAck

__all__ = [
    "AuthResponse",
    "AuthUser",
    "CacheEntry",
    "CacheKey",
    "DataRecord",
    "ServerTimestamp",
    "WriteAck",
    "ZenBaseModel",
    "format_server_timestamp",
    "parse_server_timestamp",
]
