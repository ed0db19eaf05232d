"""
Tests for session, code and token storage.

The single-use guarantees rest on conditional UPDATEs; these tests drive the
same artifact through them twice and check only the first call wins.
"""

from datetime import timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from authserver.config import SessionStatus
from authserver.models.oauth_session import OAuthSessions
from authserver.models.refresh_token import RefreshTokens
from authserver.services.oauth_sessions import (
    cleanup_expired_sessions,
    create_session,
    mark_authorized,
    update_token_snapshot,
)
from authserver.services.tokens import (
    consume_authorization_code,
    consume_refresh_token,
    create_authorization_code,
    get_access_token,
    issue_token_pair,
    link_replacement,
    revoke_access_token,
)
from authserver.utils.dates import utcnow

REDIRECT_URI = "https://app.example/cb"


@pytest.mark.unit
class TestOAuthSessions:
    async def test_create_session_defaults(self, db_session: AsyncSession, credential):
        session = await create_session(
            db_session, credential, redirect_uri=REDIRECT_URI, scopes=["openid"], state="s1"
        )

        assert session.status == SessionStatus.PENDING
        assert session.credential_id == credential.id
        assert session.login_number == 1
        assert session.user_id == ""
        assert session.expires_at - session.created_at == timedelta(minutes=10)

    async def test_login_numbers_increase_per_credential(self, db_session: AsyncSession, credential):
        numbers = []
        for _ in range(3):
            session = await create_session(db_session, credential, redirect_uri=REDIRECT_URI, scopes=["openid"])
            numbers.append(session.login_number)

        assert numbers == [1, 2, 3]

    async def test_challenge_method_dropped_without_challenge(self, db_session: AsyncSession, credential):
        session = await create_session(
            db_session,
            credential,
            redirect_uri=REDIRECT_URI,
            scopes=["openid"],
            code_challenge_method="S256",
        )

        assert session.code_challenge is None
        assert session.code_challenge_method is None

    async def test_mark_authorized_only_once(self, db_session: AsyncSession, credential):
        session = await create_session(db_session, credential, redirect_uri=REDIRECT_URI, scopes=["openid"])

        first = await mark_authorized(db_session, session.session_id, "user-ada")
        second = await mark_authorized(db_session, session.session_id, "user-eve")

        await db_session.refresh(session)
        assert first is True
        assert second is False
        assert session.status == SessionStatus.AUTHORIZED
        assert session.user_id == "user-ada"
        assert session.authorized_at is not None

    async def test_mark_authorized_refuses_expired(self, db_session: AsyncSession, credential):
        session = await create_session(db_session, credential, redirect_uri=REDIRECT_URI, scopes=["openid"])
        session.expires_at = utcnow() - timedelta(seconds=1)
        await db_session.flush()

        assert await mark_authorized(db_session, session.session_id, "user-ada") is False

    async def test_cleanup_deletes_only_expired_pending(self, db_session: AsyncSession, credential):
        abandoned = await create_session(db_session, credential, redirect_uri=REDIRECT_URI, scopes=["openid"])
        another = await create_session(db_session, credential, redirect_uri=REDIRECT_URI, scopes=["openid"])
        authorized = await create_session(db_session, credential, redirect_uri=REDIRECT_URI, scopes=["openid"])
        await mark_authorized(db_session, authorized.session_id, "user-ada")
        await db_session.commit()
        abandoned_id, another_id, authorized_id = abandoned.session_id, another.session_id, authorized.session_id

        deleted = await cleanup_expired_sessions(db_session, now=utcnow() + timedelta(minutes=5))
        assert deleted == 0

        deleted = await cleanup_expired_sessions(db_session, now=utcnow() + timedelta(minutes=11))

        remaining = (await db_session.execute(select(OAuthSessions.session_id))).scalars().all()
        assert deleted == 2
        assert set(remaining) == {authorized_id}
        assert abandoned_id not in remaining
        assert another_id not in remaining


@pytest.mark.unit
class TestAuthorizationCodes:
    async def test_code_bound_to_session(self, db_session: AsyncSession, credential):
        session = await create_session(
            db_session,
            credential,
            redirect_uri=REDIRECT_URI,
            scopes=["openid", "email"],
            code_challenge="challenge",
            code_challenge_method="S256",
        )

        code = await create_authorization_code(db_session, session, "user-ada")

        assert code.credential_id == credential.id
        assert code.session_id == session.session_id
        assert code.redirect_uri == REDIRECT_URI
        assert code.scopes == ["openid", "email"]
        assert code.code_challenge == "challenge"
        assert code.used is False
        assert code.expires_at - code.created_at == timedelta(minutes=10)

    async def test_code_consumed_once(self, db_session: AsyncSession, credential):
        session = await create_session(db_session, credential, redirect_uri=REDIRECT_URI, scopes=["openid"])
        code = await create_authorization_code(db_session, session, "user-ada")

        assert await consume_authorization_code(db_session, code.code) is True
        assert await consume_authorization_code(db_session, code.code) is False

    async def test_unknown_code_not_consumed(self, db_session: AsyncSession):
        assert await consume_authorization_code(db_session, "no-such-code") is False


@pytest.mark.unit
class TestTokens:
    async def _pair(self, db_session, credential, scopes=None):
        session = await create_session(db_session, credential, redirect_uri=REDIRECT_URI, scopes=["openid"])
        return session, await issue_token_pair(
            db_session,
            user_id="user-ada",
            credential_id=credential.id,
            session_id=session.session_id,
            scopes=scopes or ["openid"],
        )

    async def test_pair_is_linked(self, db_session: AsyncSession, credential):
        _, (access_token, refresh_token) = await self._pair(db_session, credential)

        assert refresh_token.access_token_id == access_token.token
        assert access_token.token_type == "Bearer"
        assert access_token.expires_at - access_token.created_at == timedelta(minutes=60)
        assert refresh_token.expires_at - refresh_token.created_at == timedelta(days=30)

    async def test_refresh_token_consumed_once(self, db_session: AsyncSession, credential):
        _, (_, refresh_token) = await self._pair(db_session, credential)

        assert await consume_refresh_token(db_session, refresh_token.token) is True
        assert await consume_refresh_token(db_session, refresh_token.token) is False

    async def test_revoke_is_idempotent(self, db_session: AsyncSession, credential):
        _, (access_token, _) = await self._pair(db_session, credential)

        assert await revoke_access_token(db_session, access_token.token) is True
        assert await revoke_access_token(db_session, access_token.token) is False

        stored = await get_access_token(db_session, access_token.token)
        assert stored is not None
        await db_session.refresh(stored)
        assert stored.is_revoked is True

    async def test_link_replacement(self, db_session: AsyncSession, credential):
        _, (_, old) = await self._pair(db_session, credential)
        _, (_, new) = await self._pair(db_session, credential)

        await link_replacement(db_session, old.token, new.token)

        stored = await db_session.get(RefreshTokens, old.token)
        await db_session.refresh(stored)
        assert stored.replaced_by == new.token

    async def test_snapshot_copied_to_session(self, db_session: AsyncSession, credential):
        session, (access_token, refresh_token) = await self._pair(db_session, credential)

        await update_token_snapshot(db_session, session.session_id, access_token, refresh_token)

        assert session.access_token == access_token.token
        assert session.refresh_token == refresh_token.token
        assert session.token_expires_at == access_token.expires_at
        assert session.status == SessionStatus.AUTHORIZED

    async def test_snapshot_for_missing_session_is_ignored(self, db_session: AsyncSession, credential):
        _, (access_token, refresh_token) = await self._pair(db_session, credential)

        await update_token_snapshot(db_session, "missing-session", access_token, refresh_token)
