"""Authentication wire models."""

from __future__ import annotations

from pydantic import Field

from zensync.models._base import ZenBaseModel


class AuthUser(ZenBaseModel):
    """User record returned by the auth endpoints (password never included)."""

    username: str
    user_id: str | None = None
    email: str | None = None
    role: str | None = None
    is_admin: bool = False


class AuthResponse(ZenBaseModel):
    """Response of ``/api/auth/login``, ``/api/auth/register`` and ``/api/auth/user``."""

    success: bool = False
    user: AuthUser | None = None
    token: str | None = None
    error: str | None = Field(default=None)
