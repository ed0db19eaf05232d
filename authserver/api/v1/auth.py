"""
Sign-in callback and dashboard session endpoints.

These are not client-facing OAuth endpoints: failures are plain
`{success: false, error, message?}` bodies rather than RFC 6749 errors.
"""

from typing import Annotated, Any

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from authserver.config import SecurityAction, SessionStatus
from authserver.core.auth import get_request_info, read_json_body
from authserver.core.database import get_db
from authserver.core.errors import cors_headers, error_body
from authserver.core.logging import get_logger
from authserver.models.api_credential import ApiCredentials
from authserver.schemas.auth import (
    CompleteData,
    CompleteRequest,
    CompleteResponse,
    SessionRefreshRequest,
    SessionRefreshResponse,
)
from authserver.services.audit import RequestInfo, log_security_event, record_server_error, record_usage_stats
from authserver.services.dashboard_session import (
    DashboardSessionError,
    build_session_data,
    issue_session_tokens,
    set_session_cookies,
    verify_refresh_token,
)
from authserver.services.oauth_sessions import get_session, mark_authorized
from authserver.services.tokens import create_authorization_code
from authserver.services.users import get_user, get_user_by_email, upsert_user
from authserver.utils.dates import is_expired, utcnow
from authserver.utils.urls import add_query_params

logger = get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

COMPLETE_METHODS = "POST, OPTIONS"
REFRESH_METHODS = "POST, OPTIONS"


async def _reject_completion(
    db: AsyncSession,
    request_info: RequestInfo,
    message: str,
    user_id: str | None = None,
    credential_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    """Audit a refused completion and answer 400."""
    await log_security_event(
        db,
        SecurityAction.AUTH_COMPLETE,
        False,
        request_info,
        user_id=user_id,
        credential_id=credential_id,
        error=message,
        details=details,
    )
    await db.commit()
    return JSONResponse(
        error_body(message),
        status_code=status.HTTP_400_BAD_REQUEST,
        headers=cors_headers(COMPLETE_METHODS),
    )


@router.post("/complete", response_model=CompleteResponse)
async def complete(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    request_info: Annotated[RequestInfo, Depends(get_request_info)],
) -> Response:
    """
    Finish an authorization attempt after the end user signed in.

    Called by the trusted sign-in collaborator, which has already verified the
    user's identity. Mints the authorization code and returns the client's
    redirect URL; the collaborator performs the browser redirect.

    Flow:
    1. Require sessionId, userId, userEmail
    2. Session must exist, be unexpired and still pending
    3. Mark the session authorized (conditional update, so a replayed
       completion loses even when concurrent)
    4. Upsert the user by email
    5. Mint the authorization code bound to the session
    6. Return redirect_uri?code=...&state=...
    """
    credential_id: str | None = None

    try:
        data = await read_json_body(request)
        try:
            payload = CompleteRequest.model_validate(data or {})
        except ValidationError:
            return await _reject_completion(db, request_info, "Invalid request body")

        if not payload.session_id or not payload.user_id or not payload.user_email:
            return await _reject_completion(
                db,
                request_info,
                "Missing required parameters",
                user_id=payload.user_id,
                details={"session_id": payload.session_id},
            )

        session = await get_session(db, payload.session_id)
        if session is None:
            return await _reject_completion(
                db,
                request_info,
                "Invalid session",
                user_id=payload.user_id,
                details={"session_id": payload.session_id},
            )
        credential_id = session.credential_id

        if is_expired(session.expires_at):
            return await _reject_completion(
                db,
                request_info,
                "Session has expired",
                user_id=payload.user_id,
                credential_id=credential_id,
                details={"session_id": session.session_id, "expires_at": session.expires_at.isoformat()},
            )

        if session.status != SessionStatus.PENDING:
            return await _reject_completion(
                db,
                request_info,
                "Session has already been completed",
                user_id=payload.user_id,
                credential_id=credential_id,
                details={"session_id": session.session_id, "current_status": session.status},
            )

        # An existing account keeps its id; the collaborator's id names new accounts
        existing = await get_user_by_email(db, payload.user_email)
        resolved_user_id = existing.id if existing is not None else payload.user_id

        if not await mark_authorized(db, session.session_id, resolved_user_id):
            return await _reject_completion(
                db,
                request_info,
                "Session has already been completed",
                user_id=payload.user_id,
                credential_id=credential_id,
                details={"session_id": session.session_id},
            )

        user = await upsert_user(
            db,
            user_id=payload.user_id,
            email=payload.user_email,
            display_name=payload.user_display_name,
            photo_url=payload.user_photo_url,
            provider=payload.provider,
            existing=existing,
        )
        code = await create_authorization_code(db, session, user.id)
        redirect_url = add_query_params(
            session.redirect_uri, {"code": code.code, "state": session.state or None}
        )

        credential = await db.get(ApiCredentials, credential_id)
        if credential is not None:
            await record_usage_stats(db, credential, True)
        await log_security_event(
            db,
            SecurityAction.AUTH_COMPLETE,
            True,
            request_info,
            user_id=user.id,
            credential_id=credential_id,
            details={
                "session_id": session.session_id,
                "provider": payload.provider,
                "scopes": session.scopes,
                "redirect_uri": session.redirect_uri,
            },
        )

        body = CompleteResponse(
            data=CompleteData(
                redirect_url=redirect_url,
                auth_code=code.code,
                session_id=session.session_id,
                rotation_id=session.rotation_id,
                login_number=session.login_number,
            )
        )
        await db.commit()
        return JSONResponse(body.model_dump(by_alias=True), headers=cors_headers(COMPLETE_METHODS))

    except Exception as e:
        await record_server_error(db, SecurityAction.AUTH_COMPLETE, request_info, e, credential_id)
        return JSONResponse(
            error_body("Internal server error"),
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            headers=cors_headers(COMPLETE_METHODS),
        )


@router.post("/refresh", response_model=SessionRefreshResponse)
async def refresh_session(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Response:
    """
    Refresh a web dashboard login.

    Verifies the signed refresh token, reloads the user, and sets a new
    session cookie plus a rotated refresh cookie. The dashboard session id is
    kept across refreshes.
    """
    headers = cors_headers(REFRESH_METHODS)

    data = await read_json_body(request)
    try:
        payload = SessionRefreshRequest.model_validate(data or {})
    except ValidationError:
        payload = SessionRefreshRequest()

    if not payload.refresh_token:
        return JSONResponse(
            error_body("Refresh token is required"),
            status_code=status.HTTP_400_BAD_REQUEST,
            headers=headers,
        )

    try:
        user_id, session_id = verify_refresh_token(payload.refresh_token)
    except DashboardSessionError as e:
        logger.info("dashboard_refresh_rejected", reason=e.message)
        return JSONResponse(
            error_body(e.message), status_code=status.HTTP_401_UNAUTHORIZED, headers=headers
        )

    user = await get_user(db, user_id)
    if user is None or not user.is_active:
        return JSONResponse(
            error_body("User not found"), status_code=status.HTTP_404_NOT_FOUND, headers=headers
        )

    session_data = build_session_data(user, session_id)
    session_token, refresh_token = issue_session_tokens(session_data)

    user.last_refresh_time = utcnow()
    db.add(user)
    await db.commit()

    logger.info("dashboard_session_refreshed", user_id=user_id, session_id=session_id)

    body = SessionRefreshResponse(session_data=session_data)
    response = JSONResponse(body.model_dump(by_alias=True, mode="json"), headers=headers)
    set_session_cookies(response, session_token, refresh_token)
    return response


@router.options("/complete", include_in_schema=False)
async def complete_options() -> Response:
    return Response(status_code=status.HTTP_200_OK, headers=cors_headers(COMPLETE_METHODS))


@router.options("/refresh", include_in_schema=False)
async def refresh_options() -> Response:
    return Response(status_code=status.HTTP_200_OK, headers=cors_headers(REFRESH_METHODS))
