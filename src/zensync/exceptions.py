"""Custom exception hierarchy for zensync."""

from __future__ import annotations


class SyncError(Exception):
    """Base exception for all zensync errors."""


class SyncConfigError(SyncError):
    """Invalid or missing configuration."""


class UnauthorizedError(SyncError):
    """No valid session is available, or the server rejected the token.

    Remote calls are skipped and never retried for this error; the caller
    keeps working from the local cache.
    """


class AuthenticationError(UnauthorizedError):
    """Login or registration was rejected."""


class RemoteUnavailableError(SyncError):
    """HTTP-level failure (network, non-2xx, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class MalformedPayloadError(SyncError):
    """A cached or remote value could not be decoded as JSON.

    Consumers treat the affected key as absent.
    """

    def __init__(self, message: str, *, key: str = "") -> None:
        self.key = key
        super().__init__(message)
