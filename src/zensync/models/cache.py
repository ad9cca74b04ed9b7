"""Local cache key and entry models."""

from __future__ import annotations

import copy
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CacheKey(BaseModel):
    """Typed composite key ``{user_id, logical_key}``.

    Every local cache read and write goes through this key so values from
    different accounts on the same device can never collide.
    """

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    user_id: str
    logical_key: str

    @field_validator("user_id", "logical_key")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        if not value:
            raise ValueError("cache key parts must be non-empty")
        return value

    @property
    def storage_key(self) -> str:
        """Flat ``<userId>_<logicalKey>`` form, for logs and display only."""
        return f"{self.user_id}_{self.logical_key}"


class CacheEntry(BaseModel):
    """Last known value for a key plus the server timestamp it was written at.

    ``last_updated`` is only ever set from a server-issued timestamp; local
    writes carry the previous stamp forward (or ``None``).
    """

    model_config = ConfigDict(frozen=True)

    value: Any = None
    last_updated: datetime | None = Field(default=None)

    def value_copy(self) -> Any:
        """Deep copy of ``value`` so callers can't mutate cached state."""
        return copy.deepcopy(self.value)
