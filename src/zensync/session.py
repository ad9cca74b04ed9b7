"""Session state for authenticated remote calls."""

from __future__ import annotations

import base64
import binascii
import json
import logging
import time

from pydantic import BaseModel, ConfigDict, Field

from zensync._constants import PLACEHOLDER_USER_ID

_logger = logging.getLogger(__name__)

_JWT_USER_CLAIMS = ("sub", "userId", "user_id", "id")
_SIMPLE_TOKEN_PREFIX = "token_"


def _decode_jwt_payload(token: str) -> dict[str, object] | None:
    parts = token.split(".")
    if len(parts) != 3:
        return None
    segment = parts[1]
    padded = segment + "=" * (-len(segment) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded.encode("ascii"))
        payload = json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeError, ValueError):
        return None
    return payload if isinstance(payload, dict) else None


def user_id_from_token(token: str | None) -> str:
    """Best-effort user identifier for cache namespacing.

    Tries the payload of a JWT-shaped token first, then the
    ``token_<userId>`` form issued by the file-backed server, and finally
    falls back to a fixed placeholder.  This is not a security boundary:
    the token is never verified here.
    """
    if not token:
        return PLACEHOLDER_USER_ID
    payload = _decode_jwt_payload(token)
    if payload is not None:
        for claim in _JWT_USER_CLAIMS:
            value = payload.get(claim)
            if isinstance(value, (str, int)) and str(value):
                return str(value)
    if token.startswith(_SIMPLE_TOKEN_PREFIX) and len(token) > len(_SIMPLE_TOKEN_PREFIX):
        return token[len(_SIMPLE_TOKEN_PREFIX) :]
    _logger.debug("Could not derive user id from token; using placeholder namespace")
    return PLACEHOLDER_USER_ID


class Session(BaseModel):
    """Authenticated session.

    Parameters
    ----------
    user_id : str
        Namespace for the user's cached state.
    token : str
        Opaque bearer token passed through on every remote call.
    created_at : float
        Monotonic timestamp (``time.monotonic()``) when the session
        was created.  Defaults to *now* if not provided.
    ttl : float
        Time-to-live in seconds.  ``inf`` disables expiry.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        validate_default=True,
        str_strip_whitespace=True,
    )

    user_id: str
    token: str
    created_at: float = Field(default_factory=time.monotonic)
    ttl: float = float("inf")

    @classmethod
    def from_token(cls, token: str, *, user_id: str | None = None, ttl: float = float("inf")) -> Session:
        """Build a session, deriving ``user_id`` from the token when not given."""
        return cls(user_id=user_id or user_id_from_token(token), token=token, ttl=ttl)

    @property
    def is_expired(self) -> bool:
        """Whether the session has exceeded its TTL."""
        return (time.monotonic() - self.created_at) >= self.ttl

    @property
    def authorization(self) -> str:
        return f"Bearer {self.token}"


class SessionState:
    """Holder for the current session.

    Owned by the authentication layer; the sync engine only asks whether a
    valid session is present and which user it belongs to.
    """

    def __init__(self, session: Session | None = None) -> None:
        self._session = session

    @property
    def current(self) -> Session | None:
        """The active session, or ``None`` when signed out or expired."""
        session = self._session
        if session is None or session.is_expired:
            return None
        return session

    @property
    def is_authenticated(self) -> bool:
        return self.current is not None

    def set(self, session: Session) -> None:
        self._session = session

    def clear(self) -> None:
        self._session = None
