"""
Dashboard login sessions.

Separate from the OAuth core: these are the signed cookies that keep a
developer logged in to the web dashboard. They reuse the rotation pattern
(short-lived session token, longer-lived refresh token that is replaced on
every refresh) but share no storage with OAuthSessions.
"""

from datetime import timedelta

import jwt
from fastapi import Response

from authserver.config import settings
from authserver.core.logging import get_logger
from authserver.core.security import create_session_token, decode_session_token, generate_session_id
from authserver.models.user import Users
from authserver.schemas.auth import SessionData
from authserver.utils.dates import utcnow

logger = get_logger(__name__)

SESSION_TOKEN_TYPE = "session"
REFRESH_TOKEN_TYPE = "refresh"


class DashboardSessionError(Exception):
    """Refresh token rejected; `message` is safe to return to the caller."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


def build_session_data(user: Users, session_id: str | None = None) -> SessionData:
    now = utcnow()
    return SessionData(
        user_id=user.id,
        email=user.email,
        display_name=user.display_name,
        photo_url=user.photo_url,
        provider=user.provider,
        email_verified=user.email_verified,
        created_at=user.created_at,
        expires_at=now + timedelta(hours=settings.DASHBOARD_SESSION_HOURS),
        last_activity=now,
        session_id=session_id or generate_session_id(),
    )


def issue_session_tokens(session_data: SessionData) -> tuple[str, str]:
    """
    Sign a session token and a refresh token for `session_data`.

    Returns:
        (session_token, refresh_token)
    """
    claims = {"sub": session_data.user_id, "sid": session_data.session_id}
    session_token = create_session_token(
        {**claims, "email": session_data.email},
        SESSION_TOKEN_TYPE,
        timedelta(hours=settings.DASHBOARD_SESSION_HOURS),
    )
    refresh_token = create_session_token(
        claims,
        REFRESH_TOKEN_TYPE,
        timedelta(days=settings.DASHBOARD_REFRESH_DAYS),
    )
    return session_token, refresh_token


def verify_refresh_token(token: str) -> tuple[str, str]:
    """
    Check a dashboard refresh token.

    Returns:
        (user_id, session_id)

    Raises:
        DashboardSessionError: Expired, malformed, or not a refresh token
    """
    try:
        payload = decode_session_token(token)
    except jwt.ExpiredSignatureError as e:
        raise DashboardSessionError("Refresh token expired") from e
    except jwt.InvalidTokenError as e:
        raise DashboardSessionError("Invalid refresh token") from e

    if payload.get("type") != REFRESH_TOKEN_TYPE:
        raise DashboardSessionError("Invalid token type")

    user_id = payload.get("sub")
    session_id = payload.get("sid")
    if not user_id or not session_id:
        raise DashboardSessionError("Invalid refresh token")
    return str(user_id), str(session_id)


def set_session_cookies(response: Response, session_token: str, refresh_token: str) -> None:
    """Set the session and refresh cookies as HTTP-only cookies."""
    secure = settings.ENVIRONMENT != "development"
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=session_token,
        max_age=settings.DASHBOARD_SESSION_HOURS * 3600,
        httponly=True,
        secure=secure,
        samesite="lax",
        path="/",
    )
    response.set_cookie(
        key=settings.REFRESH_COOKIE_NAME,
        value=refresh_token,
        max_age=settings.DASHBOARD_REFRESH_DAYS * 86400,
        httponly=True,
        secure=secure,
        samesite="lax",
        path="/",
    )
    logger.debug("dashboard_session_cookies_set")
