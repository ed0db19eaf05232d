"""Tests for the dashboard session refresh endpoint (/auth/refresh)."""

from datetime import timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from authserver.config import settings
from authserver.core.security import create_session_token
from authserver.services.dashboard_session import build_session_data, issue_session_tokens


def _refresh_token_for(user, session_id: str = "dash-session-1") -> str:
    _, refresh_token = issue_session_tokens(build_session_data(user, session_id))
    return refresh_token


@pytest.mark.api
class TestSessionRefresh:
    async def test_refresh_keeps_session_id(self, client: AsyncClient, user):
        response = await client.post("/auth/refresh", json={"refreshToken": _refresh_token_for(user)})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "Session refreshed successfully"
        session_data = body["sessionData"]
        assert session_data["userId"] == "user-ada"
        assert session_data["email"] == "ada@example.com"
        assert session_data["displayName"] == "Ada Lovelace"
        assert session_data["emailVerified"] is True
        assert session_data["sessionId"] == "dash-session-1"

    async def test_sets_both_cookies(self, client: AsyncClient, user):
        response = await client.post("/auth/refresh", json={"refreshToken": _refresh_token_for(user)})

        cookies = response.headers.get_list("set-cookie")
        assert len(cookies) == 2
        assert any(cookie.startswith(f"{settings.SESSION_COOKIE_NAME}=") for cookie in cookies)
        assert any(cookie.startswith(f"{settings.REFRESH_COOKIE_NAME}=") for cookie in cookies)
        assert all("httponly" in cookie.lower() for cookie in cookies)

    async def test_updates_last_refresh_time(self, client: AsyncClient, db_session: AsyncSession, user):
        user.last_refresh_time = None
        db_session.add(user)
        await db_session.commit()

        await client.post("/auth/refresh", json={"refreshToken": _refresh_token_for(user)})

        await db_session.refresh(user)
        assert user.last_refresh_time is not None

    async def test_missing_token(self, client: AsyncClient):
        response = await client.post("/auth/refresh", json={})

        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "Refresh token is required"}

    async def test_session_token_rejected(self, client: AsyncClient, user):
        session_token, _ = issue_session_tokens(build_session_data(user, "dash-session-1"))

        response = await client.post("/auth/refresh", json={"refreshToken": session_token})

        assert response.status_code == 401
        assert response.json()["error"] == "Invalid token type"

    async def test_garbage_token(self, client: AsyncClient):
        response = await client.post("/auth/refresh", json={"refreshToken": "not-a-jwt"})

        assert response.status_code == 401
        assert response.json()["error"] == "Invalid refresh token"

    async def test_expired_token(self, client: AsyncClient, user):
        expired = create_session_token(
            {"sub": user.id, "sid": "dash-session-1"}, "refresh", timedelta(seconds=-10)
        )

        response = await client.post("/auth/refresh", json={"refreshToken": expired})

        assert response.status_code == 401
        assert response.json()["error"] == "Refresh token expired"

    async def test_unknown_user(self, client: AsyncClient):
        token = create_session_token({"sub": "ghost", "sid": "dash-session-1"}, "refresh", timedelta(days=1))

        response = await client.post("/auth/refresh", json={"refreshToken": token})

        assert response.status_code == 404
        assert response.json()["error"] == "User not found"

    async def test_inactive_user(self, client: AsyncClient, db_session: AsyncSession, user):
        user.is_active = False
        db_session.add(user)
        await db_session.commit()

        response = await client.post("/auth/refresh", json={"refreshToken": _refresh_token_for(user)})

        assert response.status_code == 404


@pytest.mark.api
async def test_refresh_preflight(client: AsyncClient):
    response = await client.options("/auth/refresh")

    assert response.status_code == 200
    assert "POST" in response.headers["Access-Control-Allow-Methods"]
