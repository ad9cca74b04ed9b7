"""Data endpoints.

Endpoints:
  - GET  /api/data/:key
  - POST /api/data/:key
  - POST /api/data/sync/timestamps
  - POST /api/data/sync/batch
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime
from typing import Any
from urllib.parse import quote

from pydantic import ValidationError

from zensync._constants import BATCH_ENDPOINT, DATA_ENDPOINT, TIMESTAMPS_ENDPOINT
from zensync._transport import Transport
from zensync.exceptions import RemoteUnavailableError
from zensync.models._base import parse_server_timestamp
from zensync.models.data import DataRecord, WriteAck
from zensync.session import Session

_logger = logging.getLogger(__name__)


def _key_endpoint(key: str) -> str:
    return f"{DATA_ENDPOINT}/{quote(key, safe='')}"


def _require_mapping(endpoint: str, body: Any) -> dict[str, Any]:
    if not isinstance(body, dict):
        raise RemoteUnavailableError(
            f"Expected a JSON object from {endpoint}, got {type(body).__name__}",
            endpoint=endpoint,
        )
    return body


async def fetch_value(transport: Transport, session: Session, key: str) -> DataRecord | None:
    """Fetch the stored record for *key*; ``None`` if never written."""
    endpoint = _key_endpoint(key)
    body = await transport.request("GET", endpoint, token=session.token)
    try:
        return DataRecord.from_response(body)
    except ValidationError as exc:
        raise RemoteUnavailableError(f"Malformed record from {endpoint}: {exc}", endpoint=endpoint) from exc


async def store_value(transport: Transport, session: Session, key: str, value: Any) -> WriteAck:
    """Store *value* under *key*.  The server stamps ``lastUpdated``."""
    endpoint = _key_endpoint(key)
    body = await transport.request("POST", endpoint, payload={"value": value}, token=session.token)
    ack = WriteAck.model_validate(_require_mapping(endpoint, body))
    if not ack.success:
        raise RemoteUnavailableError(f"{endpoint} did not acknowledge the write", endpoint=endpoint)
    return ack


async def fetch_timestamps(
    transport: Transport,
    session: Session,
    keys: Iterable[str],
) -> dict[str, datetime | None]:
    """Fetch ``lastUpdated`` for every key.  Keys missing from the reply map to ``None``."""
    wanted = sorted(set(keys))
    body = _require_mapping(
        TIMESTAMPS_ENDPOINT,
        await transport.request("POST", TIMESTAMPS_ENDPOINT, payload={"keys": wanted}, token=session.token),
    )
    result: dict[str, datetime | None] = {}
    for key in wanted:
        raw = body.get(key)
        try:
            result[key] = parse_server_timestamp(raw)
        except ValueError:
            _logger.warning("Ignoring unparseable timestamp for key=%s: %r", key, raw)
            result[key] = None
    return result


async def fetch_batch(
    transport: Transport,
    session: Session,
    keys: Iterable[str],
) -> dict[str, Any | None]:
    """Fetch values for several keys in one request."""
    wanted = sorted(set(keys))
    body = _require_mapping(
        BATCH_ENDPOINT,
        await transport.request("POST", BATCH_ENDPOINT, payload={"keys": wanted}, token=session.token),
    )
    return {key: body.get(key) for key in wanted}
