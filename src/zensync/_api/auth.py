"""Authentication endpoints.

Endpoints:
  - POST /api/auth/login
  - POST /api/auth/register
  - GET  /api/auth/user

The sync engine only needs the resulting bearer token; user management
itself lives elsewhere.
"""

from __future__ import annotations

import logging
import secrets
from typing import Any

from pydantic import ValidationError

from zensync._constants import LOGIN_ENDPOINT, REGISTER_ENDPOINT, USER_ENDPOINT
from zensync._redact import redact_for_log
from zensync._transport import Transport
from zensync.exceptions import AuthenticationError, UnauthorizedError
from zensync.models.auth import AuthResponse, AuthUser

_logger = logging.getLogger(__name__)


def parse_auth_response(endpoint: str, body: Any, *, require_token: bool = True) -> AuthResponse:
    """Validate an auth response.

    Raises
    ------
    AuthenticationError
        If the server reported failure or the reply lacks a user/token.
    """
    _logger.debug("Auth response from %s: %s", endpoint, redact_for_log(body))
    if not isinstance(body, dict):
        raise AuthenticationError(f"{endpoint} returned a non-object body")
    try:
        response = AuthResponse.model_validate(body)
    except ValidationError as exc:
        raise AuthenticationError(f"{endpoint} returned a malformed body: {exc}") from exc
    if not response.success or response.user is None:
        raise AuthenticationError(f"{endpoint} failed: {response.error or 'unknown error'}")
    if require_token and not response.token:
        raise AuthenticationError(f"{endpoint} response missing token")
    return response


async def _post_credentials(transport: Transport, endpoint: str, payload: dict[str, Any]) -> AuthResponse:
    try:
        body = await transport.request("POST", endpoint, payload=payload)
    except UnauthorizedError as exc:
        raise AuthenticationError(f"{endpoint} rejected the credentials") from exc
    return parse_auth_response(endpoint, body)


async def login(transport: Transport, username: str, password: str) -> AuthResponse:
    """Exchange credentials for a bearer token."""
    return await _post_credentials(transport, LOGIN_ENDPOINT, {"username": username, "password": password})


async def register(
    transport: Transport,
    username: str,
    password: str,
    *,
    email: str | None = None,
) -> AuthResponse:
    """Create an account and return its bearer token."""
    payload: dict[str, Any] = {"username": username, "password": password}
    if email:
        payload["email"] = email
    return await _post_credentials(transport, REGISTER_ENDPOINT, payload)


async def fetch_current_user(transport: Transport, token: str) -> AuthUser:
    """Return the user the token belongs to."""
    body = await transport.request("GET", USER_ENDPOINT, token=token)
    response = parse_auth_response(USER_ENDPOINT, body, require_token=False)
    assert response.user is not None  # noqa: S101
    return response.user


def local_login(username: str, password: str) -> AuthResponse:
    """Offline sign-in used in mock mode.

    Accepts ``admin``/``admin`` or any account whose password equals its
    username.  The issued token is local to this device.
    """
    name = username.strip()
    if not name or not ((name == "admin" and password == "admin") or name == password):
        raise AuthenticationError("Invalid username or password")
    user = AuthUser(
        username=name,
        user_id=name,
        role="admin" if name.lower() == "admin" else "user",
        is_admin=name.lower() == "admin",
    )
    return AuthResponse(success=True, user=user, token=f"local_{secrets.token_hex(16)}")
