"""OAuth session lifecycle: create at authorize, authorize at complete, sweep when stale."""

from datetime import datetime, timedelta

from sqlalchemy import delete, update
from sqlalchemy.ext.asyncio import AsyncSession

from authserver.config import SessionStatus, settings
from authserver.core.logging import get_logger
from authserver.core.security import generate_rotation_id, generate_session_id
from authserver.models.access_token import AccessTokens
from authserver.models.api_credential import ApiCredentials
from authserver.models.oauth_session import OAuthSessions
from authserver.models.refresh_token import RefreshTokens
from authserver.services.credentials import next_login_number
from authserver.utils.dates import utcnow

logger = get_logger(__name__)


async def create_session(
    db: AsyncSession,
    credential: ApiCredentials,
    redirect_uri: str,
    scopes: list[str],
    state: str | None = None,
    code_challenge: str | None = None,
    code_challenge_method: str | None = None,
) -> OAuthSessions:
    """
    Create a pending session for an authorization attempt.

    The session expires OAUTH_SESSION_EXPIRE_MINUTES after creation.
    """
    now = utcnow()
    session = OAuthSessions(
        session_id=generate_session_id(),
        rotation_id=generate_rotation_id(),
        login_number=await next_login_number(db, credential),
        credential_id=credential.id,
        state=state or "",
        code_challenge=code_challenge or None,
        code_challenge_method=code_challenge_method if code_challenge else None,
        redirect_uri=redirect_uri,
        scopes=scopes,
        status=SessionStatus.PENDING,
        created_at=now,
        expires_at=now + timedelta(minutes=settings.OAUTH_SESSION_EXPIRE_MINUTES),
    )
    db.add(session)
    await db.flush()
    return session


async def get_session(db: AsyncSession, session_id: str) -> OAuthSessions | None:
    return await db.get(OAuthSessions, session_id)


async def mark_authorized(db: AsyncSession, session_id: str, user_id: str) -> bool:
    """
    Move a pending, unexpired session to authorized.

    The status check and the write are one conditional UPDATE, so of two
    concurrent completions only one can succeed.

    Returns:
        True if this call authorized the session
    """
    now = utcnow()
    result = await db.execute(
        update(OAuthSessions)
        .where(
            OAuthSessions.session_id == session_id,  # type: ignore[arg-type]
            OAuthSessions.status == SessionStatus.PENDING,  # type: ignore[arg-type]
            OAuthSessions.expires_at > now,  # type: ignore[arg-type]
        )
        .values(user_id=user_id, status=SessionStatus.AUTHORIZED, authorized_at=now)
    )
    return result.rowcount == 1  # type: ignore[attr-defined]


async def update_token_snapshot(
    db: AsyncSession,
    session_id: str,
    access_token: AccessTokens,
    refresh_token: RefreshTokens,
) -> None:
    """
    Copy the latest token pair onto the session row.

    The snapshot is bookkeeping only; nothing reads it to make a security
    decision. A missing session is not an error.
    """
    session = await db.get(OAuthSessions, session_id)
    if session is None:
        logger.debug("token_snapshot_session_missing", session_id=session_id)
        return

    session.access_token = access_token.token
    session.refresh_token = refresh_token.token
    session.token_expires_at = access_token.expires_at
    session.status = SessionStatus.AUTHORIZED
    db.add(session)


async def cleanup_expired_sessions(db: AsyncSession, now: datetime | None = None) -> int:
    """
    Delete pending sessions whose expires_at has passed.

    Authorized sessions are kept: refresh grants read the granted scopes from
    them for as long as the refresh token lives.

    Returns:
        Count of deleted sessions
    """
    cutoff = now or utcnow()
    result = await db.execute(
        delete(OAuthSessions).where(
            OAuthSessions.status == SessionStatus.PENDING,  # type: ignore[arg-type]
            OAuthSessions.expires_at < cutoff,  # type: ignore[arg-type]
        )
    )
    count = result.rowcount or 0  # type: ignore[attr-defined]

    if count > 0:
        await db.commit()
        logger.info("cleanup_expired_sessions_complete", deleted_count=count)
    else:
        logger.debug("cleanup_expired_sessions_no_deletions")

    return count
