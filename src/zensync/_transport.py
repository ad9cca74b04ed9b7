"""HTTP transport for the data and auth APIs."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Protocol

import aiohttp

from zensync._constants import BATCH_ENDPOINT, USER_AGENT
from zensync._redact import redact_for_log, summarize_value
from zensync.config import SyncConfig
from zensync.exceptions import RemoteUnavailableError, SyncConfigError, UnauthorizedError

_logger = logging.getLogger(__name__)

_UNAUTHORIZED_STATUSES = frozenset({401, 403})


class Transport(Protocol):
    """Structural transport interface used by endpoint modules.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (`HttpTransport`) concrete.
    """

    async def request(
        self,
        method: str,
        endpoint: str,
        *,
        payload: Any = None,
        token: str | None = None,
    ) -> Any:
        ...


class HttpTransport:
    """JSON-over-HTTP transport with bearer authentication."""

    def __init__(self, config: SyncConfig, http_session: aiohttp.ClientSession) -> None:
        if not config.base_url:
            raise SyncConfigError("HttpTransport requires config.base_url")
        self._base_url = config.base_url
        self._http = http_session
        self._timeout = aiohttp.ClientTimeout(total=config.request_timeout)

    async def request(
        self,
        method: str,
        endpoint: str,
        *,
        payload: Any = None,
        token: str | None = None,
    ) -> Any:
        """Send a request and return the decoded JSON body.

        Raises
        ------
        UnauthorizedError
            The server answered 401/403.
        RemoteUnavailableError
            Network failure, timeout, any other non-2xx status or a body
            that is not JSON.
        """
        headers: dict[str, str] = {
            "accept": "application/json",
            "user-agent": USER_AGENT,
        }
        if token:
            headers["authorization"] = f"Bearer {token}"

        data: str | None = None
        if payload is not None:
            headers["content-type"] = "application/json; charset=UTF-8"
            data = json.dumps(payload, separators=(",", ":"))

        url = f"{self._base_url}{endpoint}"
        _logger.debug("%s %s payload=%s", method, url, redact_for_log(payload))

        try:
            async with self._http.request(
                method,
                url,
                data=data,
                headers=headers,
                timeout=self._timeout,
            ) as resp:
                text = await resp.text()
                status = resp.status
        except aiohttp.ClientError as exc:
            raise RemoteUnavailableError(
                f"Request to {endpoint} failed: {exc}",
                endpoint=endpoint,
            ) from exc
        except asyncio.TimeoutError as exc:
            raise RemoteUnavailableError(
                f"Request to {endpoint} timed out",
                endpoint=endpoint,
            ) from exc

        if status in _UNAUTHORIZED_STATUSES:
            raise UnauthorizedError(f"HTTP {status} from {endpoint}")
        if not 200 <= status < 300:
            raise RemoteUnavailableError(
                f"HTTP {status} from {endpoint}: {text[:200]}",
                status_code=status,
                endpoint=endpoint,
            )

        try:
            body = json.loads(text)
        except json.JSONDecodeError as exc:
            raise RemoteUnavailableError(
                f"Invalid JSON from {endpoint}: {text[:200]}",
                status_code=status,
                endpoint=endpoint,
            ) from exc

        if endpoint == BATCH_ENDPOINT and isinstance(body, dict):
            logged: Any = {key: summarize_value(value) for key, value in body.items()}
        else:
            logged = redact_for_log(body, max_string=128)
        _logger.debug("%s %s -> %d body=%s", method, url, status, logged)
        return body
