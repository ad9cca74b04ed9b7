"""Base model and timestamp helpers for zensync wire types.

Every response model inherits from :class:`ZenBaseModel` which maps the
API's camelCase keys (``lastUpdated``, ``isAdmin``) to snake_case fields
and keeps models immutable.

Server timestamps arrive as ISO 8601 strings; some older deployments sent
epoch seconds or milliseconds.  :data:`ServerTimestamp` accepts all of
them and always yields a timezone-aware UTC ``datetime``.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict
from pydantic.alias_generators import to_camel

# Threshold to distinguish seconds from milliseconds.
_MS_THRESHOLD = 1_000_000_000_000


def parse_server_timestamp(value: Any) -> datetime | None:
    """Convert a server timestamp (ISO string or epoch number) to a UTC datetime.

    Returns ``None`` for ``None`` and empty strings.  Raises
    :class:`ValueError` for anything else that cannot be interpreted.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=UTC)
    if isinstance(value, bool):
        raise ValueError(f"not a timestamp: {value!r}")
    if isinstance(value, (int, float)):
        try:
            ts = float(value)
            if ts >= _MS_THRESHOLD:
                ts /= 1000.0
            return datetime.fromtimestamp(ts, tz=UTC)
        except (OverflowError, OSError) as exc:
            raise ValueError(f"timestamp out of range: {value!r}") from exc
    if isinstance(value, str):
        parsed = datetime.fromisoformat(value.strip())
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=UTC)
        return parsed.astimezone(UTC)
    raise ValueError(f"not a timestamp: {value!r}")


def format_server_timestamp(value: datetime) -> str:
    """Render a timestamp the way the data API does (ISO 8601, UTC, ``Z``)."""
    return value.astimezone(UTC).isoformat().replace("+00:00", "Z")


ServerTimestamp = Annotated[datetime | None, BeforeValidator(parse_server_timestamp)]
"""Annotated type that coerces server timestamps to aware UTC datetimes."""


class ZenBaseModel(BaseModel):
    """Base for zensync wire models."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )
