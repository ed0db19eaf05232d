"""
Authorization code and token storage.

Security features:
- Codes and refresh tokens are consumed with a conditional UPDATE
  (`... WHERE used = false`); only the caller that flips the flag may mint tokens
- Superseded access tokens are revoked in place, never deleted
- Rotation chain: each refresh token records its successor in replaced_by
"""

from datetime import timedelta

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from authserver.config import settings
from authserver.core.logging import get_logger, mask_secret
from authserver.core.security import (
    generate_access_token,
    generate_authorization_code,
    generate_refresh_token,
)
from authserver.models.access_token import AccessTokens
from authserver.models.authorization_code import AuthorizationCodes
from authserver.models.oauth_session import OAuthSessions
from authserver.models.refresh_token import RefreshTokens
from authserver.utils.dates import utcnow

logger = get_logger(__name__)


async def create_authorization_code(
    db: AsyncSession, session: OAuthSessions, user_id: str
) -> AuthorizationCodes:
    """
    Mint a code bound to the session's client, redirect_uri, scopes and PKCE challenge.
    """
    now = utcnow()
    code = AuthorizationCodes(
        code=generate_authorization_code(),
        session_id=session.session_id,
        user_id=user_id,
        credential_id=session.credential_id,
        redirect_uri=session.redirect_uri,
        scopes=list(session.scopes),
        code_challenge=session.code_challenge,
        code_challenge_method=session.code_challenge_method,
        expires_at=now + timedelta(minutes=settings.AUTHORIZATION_CODE_EXPIRE_MINUTES),
        used=False,
        created_at=now,
    )
    db.add(code)
    await db.flush()
    return code


async def get_authorization_code(db: AsyncSession, code: str) -> AuthorizationCodes | None:
    return await db.get(AuthorizationCodes, code)


async def consume_authorization_code(db: AsyncSession, code: str) -> bool:
    """
    Mark an authorization code used if nobody has yet.

    Returns:
        True if this call consumed the code, False if it was already used
    """
    result = await db.execute(
        update(AuthorizationCodes)
        .where(
            AuthorizationCodes.code == code,  # type: ignore[arg-type]
            AuthorizationCodes.used == False,  # type: ignore[arg-type]  # noqa: E712
        )
        .values(used=True)
    )
    consumed = result.rowcount == 1  # type: ignore[attr-defined]
    if not consumed:
        logger.warning("authorization_code_replay", code=mask_secret(code))
    return consumed


async def get_refresh_token(db: AsyncSession, token: str) -> RefreshTokens | None:
    return await db.get(RefreshTokens, token)


async def consume_refresh_token(db: AsyncSession, token: str) -> bool:
    """
    Mark a refresh token used if nobody has yet.

    Returns:
        True if this call consumed the token, False if it was already used
    """
    result = await db.execute(
        update(RefreshTokens)
        .where(
            RefreshTokens.token == token,  # type: ignore[arg-type]
            RefreshTokens.used == False,  # type: ignore[arg-type]  # noqa: E712
        )
        .values(used=True)
    )
    consumed = result.rowcount == 1  # type: ignore[attr-defined]
    if not consumed:
        logger.warning("refresh_token_replay", token=mask_secret(token))
    return consumed


async def issue_token_pair(
    db: AsyncSession,
    user_id: str,
    credential_id: str,
    session_id: str,
    scopes: list[str],
) -> tuple[AccessTokens, RefreshTokens]:
    """
    Mint an access token and the refresh token paired with it.

    Args:
        db: Database session
        user_id: Token owner
        credential_id: Client the tokens are issued to
        session_id: Originating OAuth session
        scopes: Granted scopes

    Returns:
        (access_token, refresh_token), both added to the session
    """
    now = utcnow()
    access_token = AccessTokens(
        token=generate_access_token(),
        user_id=user_id,
        credential_id=credential_id,
        session_id=session_id,
        scopes=list(scopes),
        token_type="Bearer",
        expires_at=now + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
        created_at=now,
        is_revoked=False,
    )
    refresh_token = RefreshTokens(
        token=generate_refresh_token(),
        user_id=user_id,
        credential_id=credential_id,
        session_id=session_id,
        access_token_id=access_token.token,
        expires_at=now + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
        created_at=now,
        used=False,
    )
    db.add(access_token)
    db.add(refresh_token)
    await db.flush()

    logger.info(
        "token_pair_issued",
        credential_id=credential_id,
        user_id=user_id,
        session_id=session_id,
        access_token=mask_secret(access_token.token),
    )
    return access_token, refresh_token


async def link_replacement(db: AsyncSession, old_token: str, new_token: str) -> None:
    """Record the successor of a rotated refresh token."""
    await db.execute(
        update(RefreshTokens)
        .where(RefreshTokens.token == old_token)  # type: ignore[arg-type]
        .values(replaced_by=new_token)
    )


async def get_access_token(db: AsyncSession, token: str) -> AccessTokens | None:
    return await db.get(AccessTokens, token)


async def revoke_access_token(db: AsyncSession, token: str) -> bool:
    """
    Revoke an access token in place.

    Returns:
        True if the token existed and was not already revoked
    """
    result = await db.execute(
        update(AccessTokens)
        .where(
            AccessTokens.token == token,  # type: ignore[arg-type]
            AccessTokens.is_revoked == False,  # type: ignore[arg-type]  # noqa: E712
        )
        .values(is_revoked=True)
    )
    return result.rowcount == 1  # type: ignore[attr-defined]
