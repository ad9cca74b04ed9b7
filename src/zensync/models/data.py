"""Data API wire models."""

from __future__ import annotations

from typing import Any

from zensync.models._base import ServerTimestamp, ZenBaseModel


class DataRecord(ZenBaseModel):
    """Response of ``GET /api/data/:key``."""

    value: Any = None
    last_updated: ServerTimestamp = None

    @classmethod
    def from_response(cls, body: Any) -> DataRecord | None:
        """Parse a data response.

        ``null`` means the key was never written.  Older servers return the
        stored value directly instead of a ``{value, lastUpdated}`` object.
        """
        if body is None:
            return None
        if isinstance(body, dict) and "value" in body:
            return cls.model_validate(body)
        return cls(value=body)


class WriteAck(ZenBaseModel):
    """Response of ``POST /api/data/:key``."""

    success: bool = False
    last_updated: ServerTimestamp = None
