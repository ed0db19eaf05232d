"""Tests for dashboard session token issuing and verification."""

from datetime import timedelta

import pytest
from fastapi import Response

from authserver.config import settings
from authserver.core.security import create_session_token, decode_session_token
from authserver.models.user import Users
from authserver.services.dashboard_session import (
    DashboardSessionError,
    build_session_data,
    issue_session_tokens,
    set_session_cookies,
    verify_refresh_token,
)
from authserver.utils.dates import utcnow


def _user() -> Users:
    return Users(
        id="user-ada",
        email="ada@example.com",
        display_name="Ada Lovelace",
        provider="google",
        email_verified=True,
        created_at=utcnow(),
    )


@pytest.mark.unit
class TestSessionData:
    def test_fields_copied_from_user(self):
        data = build_session_data(_user())

        assert data.user_id == "user-ada"
        assert data.email == "ada@example.com"
        assert data.display_name == "Ada Lovelace"
        assert data.email_verified is True
        assert len(data.session_id) == 32

    def test_session_id_kept_when_given(self):
        assert build_session_data(_user(), "existing-session").session_id == "existing-session"

    def test_expiry_uses_dashboard_lifetime(self):
        data = build_session_data(_user())

        lifetime = data.expires_at - data.last_activity
        assert lifetime == timedelta(hours=settings.DASHBOARD_SESSION_HOURS)

    def test_camel_case_wire_format(self):
        dumped = build_session_data(_user()).model_dump(by_alias=True, mode="json")

        assert dumped["userId"] == "user-ada"
        assert dumped["displayName"] == "Ada Lovelace"
        assert dumped["emailVerified"] is True
        assert dumped["expiresAt"].endswith("Z")
        assert {"photoURL", "createdAt", "lastActivity", "sessionId"} <= set(dumped)


@pytest.mark.unit
class TestSessionTokens:
    def test_tokens_carry_user_and_session(self):
        data = build_session_data(_user())

        session_token, refresh_token = issue_session_tokens(data)

        session_claims = decode_session_token(session_token)
        refresh_claims = decode_session_token(refresh_token)
        assert session_claims["type"] == "session"
        assert refresh_claims["type"] == "refresh"
        assert session_claims["sid"] == refresh_claims["sid"] == data.session_id
        assert refresh_claims["sub"] == "user-ada"

    def test_verify_refresh_token(self):
        data = build_session_data(_user())
        _, refresh_token = issue_session_tokens(data)

        assert verify_refresh_token(refresh_token) == ("user-ada", data.session_id)

    def test_session_token_is_not_a_refresh_token(self):
        session_token, _ = issue_session_tokens(build_session_data(_user()))

        with pytest.raises(DashboardSessionError) as exc_info:
            verify_refresh_token(session_token)

        assert exc_info.value.message == "Invalid token type"

    def test_expired_refresh_token(self):
        token = create_session_token({"sub": "user-ada", "sid": "s1"}, "refresh", timedelta(seconds=-1))

        with pytest.raises(DashboardSessionError) as exc_info:
            verify_refresh_token(token)

        assert exc_info.value.message == "Refresh token expired"

    def test_garbage_refresh_token(self):
        with pytest.raises(DashboardSessionError) as exc_info:
            verify_refresh_token("not-a-jwt")

        assert exc_info.value.message == "Invalid refresh token"

    def test_refresh_token_without_session_id(self):
        token = create_session_token({"sub": "user-ada"}, "refresh", timedelta(minutes=5))

        with pytest.raises(DashboardSessionError):
            verify_refresh_token(token)


@pytest.mark.unit
def test_cookies_are_http_only():
    response = Response()

    set_session_cookies(response, "session-value", "refresh-value")

    cookies = response.headers.getlist("set-cookie")
    assert len(cookies) == 2
    assert any(cookie.startswith(f"{settings.SESSION_COOKIE_NAME}=session-value") for cookie in cookies)
    assert any(cookie.startswith(f"{settings.REFRESH_COOKIE_NAME}=refresh-value") for cookie in cookies)
    assert all("HttpOnly" in cookie for cookie in cookies)
    assert all("SameSite=lax" in cookie for cookie in cookies)
