from __future__ import annotations

import base64
import json

from zensync._constants import PLACEHOLDER_USER_ID
from zensync.session import Session, SessionState, user_id_from_token


def _jwt(claims: dict[str, object]) -> str:
    body = base64.urlsafe_b64encode(json.dumps(claims).encode()).decode().rstrip("=")
    return f"eyJhbGciOiJIUzI1NiJ9.{body}.signature"


def test_user_id_from_jwt_subject() -> None:
    assert user_id_from_token(_jwt({"sub": "user-42"})) == "user-42"
    assert user_id_from_token(_jwt({"userId": 7})) == "7"


def test_user_id_from_simple_server_token() -> None:
    assert user_id_from_token("token_bob") == "bob"


def test_user_id_falls_back_to_placeholder() -> None:
    assert user_id_from_token(None) == PLACEHOLDER_USER_ID
    assert user_id_from_token("opaque") == PLACEHOLDER_USER_ID
    assert user_id_from_token("a.!!!.c") == PLACEHOLDER_USER_ID


def test_session_from_token_derives_user() -> None:
    session = Session.from_token("token_carol")
    assert session.user_id == "carol"
    assert session.authorization == "Bearer token_carol"
    assert not session.is_expired


def test_expired_session_is_not_current() -> None:
    state = SessionState(Session(user_id="a", token="t", created_at=0.0, ttl=1.0))
    assert state.current is None
    assert not state.is_authenticated


def test_session_state_set_and_clear() -> None:
    state = SessionState()
    assert state.current is None
    state.set(Session(user_id="a", token="t"))
    assert state.current is not None and state.current.user_id == "a"
    state.clear()
    state.clear()
    assert state.current is None
