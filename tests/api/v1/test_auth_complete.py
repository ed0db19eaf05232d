"""
Tests for the /auth/complete endpoint.

Called by the sign-in collaborator once it has verified the user; mints the
authorization code and hands back the client's redirect URL.
"""

from datetime import timedelta
from urllib.parse import parse_qs, urlsplit

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from authserver.models.authorization_code import AuthorizationCodes
from authserver.models.oauth_session import OAuthSessions
from authserver.models.security_log import SecurityLogs
from authserver.models.user import Users
from authserver.services.oauth_sessions import create_session
from authserver.utils.dates import utcnow

REDIRECT_URI = "https://app.example/cb"


@pytest.fixture
async def pending_session(db_session: AsyncSession, credential) -> OAuthSessions:
    session = await create_session(
        db_session,
        credential,
        redirect_uri=REDIRECT_URI,
        scopes=["openid", "profile"],
        state="state-123",
        code_challenge="c" * 43,
        code_challenge_method="S256",
    )
    await db_session.commit()
    return session


def _payload(session_id: str, **overrides) -> dict[str, str]:
    payload = {
        "sessionId": session_id,
        "userId": "firebase-uid-42",
        "userEmail": "grace@example.com",
        "userDisplayName": "Grace Hopper",
        "userPhotoURL": "https://img.example/grace.png",
        "provider": "google",
    }
    payload.update(overrides)
    return {key: value for key, value in payload.items() if value is not None}


@pytest.mark.api
class TestCompleteSuccess:
    """Tests for a successful POST /auth/complete."""

    async def test_returns_redirect_with_code_and_state(self, client: AsyncClient, pending_session):
        response = await client.post("/auth/complete", json=_payload(pending_session.session_id))

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "Authentication completed successfully"
        data = body["data"]
        assert data["sessionId"] == pending_session.session_id
        assert data["rotationId"] == pending_session.rotation_id
        assert data["loginNumber"] == pending_session.login_number

        redirect = urlsplit(data["redirectUrl"])
        assert f"{redirect.scheme}://{redirect.netloc}{redirect.path}" == REDIRECT_URI
        assert parse_qs(redirect.query) == {"code": [data["authCode"]], "state": ["state-123"]}

    async def test_code_bound_to_session(self, client: AsyncClient, db_session: AsyncSession, pending_session):
        response = await client.post("/auth/complete", json=_payload(pending_session.session_id))

        code = await db_session.get(AuthorizationCodes, response.json()["data"]["authCode"])
        assert code.user_id == "firebase-uid-42"
        assert code.credential_id == pending_session.credential_id
        assert code.redirect_uri == REDIRECT_URI
        assert code.scopes == ["openid", "profile"]
        assert code.code_challenge == "c" * 43
        assert code.code_challenge_method == "S256"
        assert code.used is False

    async def test_session_authorized(self, client: AsyncClient, db_session: AsyncSession, pending_session):
        await client.post("/auth/complete", json=_payload(pending_session.session_id))

        await db_session.refresh(pending_session)
        assert pending_session.status == "authorized"
        assert pending_session.user_id == "firebase-uid-42"
        assert pending_session.authorized_at is not None

    async def test_new_user_created(self, client: AsyncClient, db_session: AsyncSession, pending_session):
        await client.post("/auth/complete", json=_payload(pending_session.session_id))

        user = await db_session.get(Users, "firebase-uid-42")
        assert user.email == "grace@example.com"
        assert user.display_name == "Grace Hopper"
        assert user.provider == "google"
        assert user.email_verified is True

    async def test_existing_user_keeps_id(
        self, client: AsyncClient, db_session: AsyncSession, user, pending_session
    ):
        response = await client.post(
            "/auth/complete",
            json=_payload(pending_session.session_id, userEmail=user.email, userDisplayName=None, userPhotoURL=None),
        )

        code = await db_session.get(AuthorizationCodes, response.json()["data"]["authCode"])
        assert code.user_id == "user-ada"
        await db_session.refresh(user)
        assert user.display_name == "Ada Lovelace"
        assert user.last_sign_in_time is not None
        assert await db_session.get(Users, "firebase-uid-42") is None

    async def test_state_omitted_when_not_sent(self, client: AsyncClient, db_session: AsyncSession, credential):
        session = await create_session(db_session, credential, redirect_uri=REDIRECT_URI, scopes=["openid"])
        await db_session.commit()

        response = await client.post("/auth/complete", json=_payload(session.session_id))

        query = parse_qs(urlsplit(response.json()["data"]["redirectUrl"]).query)
        assert set(query) == {"code"}


@pytest.mark.api
class TestCompleteRejections:
    async def test_replay_rejected(self, client: AsyncClient, db_session: AsyncSession, pending_session):
        first = await client.post("/auth/complete", json=_payload(pending_session.session_id))
        second = await client.post("/auth/complete", json=_payload(pending_session.session_id))

        assert first.status_code == 200
        assert second.status_code == 400
        assert second.json() == {"success": False, "error": "Session has already been completed"}

        codes = (await db_session.execute(select(AuthorizationCodes))).scalars().all()
        assert len(codes) == 1

    async def test_unknown_session(self, client: AsyncClient):
        response = await client.post("/auth/complete", json=_payload("f" * 32))

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid session"

    async def test_expired_session(self, client: AsyncClient, db_session: AsyncSession, pending_session):
        pending_session.expires_at = utcnow() - timedelta(seconds=1)
        db_session.add(pending_session)
        await db_session.commit()

        response = await client.post("/auth/complete", json=_payload(pending_session.session_id))

        assert response.status_code == 400
        assert response.json()["error"] == "Session has expired"

    @pytest.mark.parametrize("missing", ["sessionId", "userId", "userEmail"])
    async def test_missing_parameters(self, client: AsyncClient, pending_session, missing):
        response = await client.post("/auth/complete", json=_payload(pending_session.session_id, **{missing: None}))

        assert response.status_code == 400
        assert response.json()["error"] == "Missing required parameters"

    async def test_invalid_email(self, client: AsyncClient, pending_session):
        response = await client.post(
            "/auth/complete", json=_payload(pending_session.session_id, userEmail="not-an-email")
        )

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid request body"

    async def test_non_json_body(self, client: AsyncClient):
        response = await client.post("/auth/complete", content=b"not json")

        assert response.status_code == 400
        assert response.json()["error"] == "Missing required parameters"

    async def test_rejection_audited(self, client: AsyncClient, db_session: AsyncSession):
        await client.post("/auth/complete", json=_payload("f" * 32))

        log = (
            await db_session.execute(select(SecurityLogs).where(SecurityLogs.action == "auth_complete"))
        ).scalar_one()
        assert log.success is False
        assert log.error == "Invalid session"

    async def test_no_user_written_on_rejection(self, client: AsyncClient, db_session: AsyncSession):
        await client.post("/auth/complete", json=_payload("f" * 32))

        assert await db_session.get(Users, "firebase-uid-42") is None
