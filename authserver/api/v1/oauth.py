"""
OAuth 2.0 protocol endpoints.

Every handler catches OAuthError (and AuthorizeFailure) at the top level,
audits the failure and renders it; nothing protocol-related escapes to
FastAPI's exception handlers. Failed requests are charged to a client's
usage statistics only once the client has been resolved.
"""

from typing import Annotated
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Header, Request, Response, status
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from authserver.config import GrantType, OAuthScope, RateLimitOperation, SecurityAction, settings
from authserver.core.auth import extract_bearer_token, get_request_info, read_json_body, wants_json
from authserver.core.database import get_db
from authserver.core.errors import (
    AuthorizeFailure,
    OAuthError,
    OAuthErrorCode,
    bearer_error_response,
    cors_headers,
    error_body,
    oauth_error_response,
)
from authserver.core.logging import client_id_ctx, get_logger, mask_secret
from authserver.models.api_credential import ApiCredentials
from authserver.schemas.oauth import (
    AuthorizeData,
    AuthorizeParams,
    AuthorizeResponse,
    LogoutRequest,
    TokenRequest,
    TokenResponse,
    UserInfoResponse,
    ValidateResponse,
)
from authserver.services.audit import RequestInfo, log_security_event, record_server_error, record_usage_stats
from authserver.services.oauth import (
    authenticate_bearer,
    authenticate_client,
    build_userinfo,
    exchange_authorization_code,
    exchange_refresh_token,
    get_valid_access_token,
    rate_limited,
    require_token_params,
    validate_authorize_request,
)
from authserver.services.oauth_sessions import create_session
from authserver.services.rate_limit import RateLimiter, get_rate_limiter
from authserver.services.tokens import get_access_token, revoke_access_token
from authserver.services.users import get_user
from authserver.utils.dates import seconds_until
from authserver.utils.scopes import has_any_scope, scopes_to_string
from authserver.utils.urls import SessionUrlComponents, build_session_url

logger = get_logger(__name__)

router = APIRouter(tags=["oauth"])

AUTHORIZE_METHODS = "GET, POST, OPTIONS"
TOKEN_METHODS = "POST, OPTIONS"
USERINFO_METHODS = "GET, POST, OPTIONS"
VALIDATE_METHODS = "GET, OPTIONS"
LOGOUT_METHODS = "POST, OPTIONS"

# Token responses must never be cached (RFC 6749 section 5.1)
NO_STORE_HEADERS = {"Cache-Control": "no-store", "Pragma": "no-cache"}


# ===== Authorize =====


@router.api_route("/authorize", methods=["GET", "POST"], response_model=AuthorizeResponse)
async def authorize(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    limiter: Annotated[RateLimiter, Depends(get_rate_limiter)],
    request_info: Annotated[RequestInfo, Depends(get_request_info)],
) -> Response:
    """
    Begin an authorization attempt.

    Validates the client, redirect_uri and scopes, then creates a pending
    OAuth session. Callers sending `Accept: application/json` get the session
    details as JSON; browsers are redirected to the login page.

    Errors are JSON, except scope errors which are redirected back to the
    (already verified) redirect_uri with error/error_description/state.
    """
    params = AuthorizeParams.model_validate(dict(request.query_params))
    credential_id: str | None = None

    try:
        credential, scopes = await validate_authorize_request(db, limiter, params)
        credential_id = credential.id
        client_id_ctx.set(credential.client_id)

        session = await create_session(
            db,
            credential,
            redirect_uri=params.redirect_uri or "",
            scopes=scopes,
            state=params.state,
            code_challenge=params.code_challenge,
            code_challenge_method=params.code_challenge_method,
        )
        session_url = build_session_url(
            SessionUrlComponents(
                session_id=session.session_id,
                rotation_id=session.rotation_id,
                login_number=session.login_number,
            )
        )
        authorization_url = (
            f"{settings.LOGIN_PAGE_PATH}?"
            f"{urlencode({'session': session.session_id, 'client_name': credential.name})}"
        )

        await limiter.record_credential(credential, True, RateLimitOperation.AUTHORIZE)
        await record_usage_stats(db, credential, True)
        await log_security_event(
            db,
            SecurityAction.OAUTH_AUTHORIZE,
            True,
            request_info,
            credential_id=credential.id,
            details={
                "session_id": session.session_id,
                "rotation_id": session.rotation_id,
                "login_number": session.login_number,
                "scopes": scopes,
                "session_url": session_url,
            },
        )
        await db.commit()

        if wants_json(request):
            body = AuthorizeResponse(
                data=AuthorizeData(
                    authorization_url=authorization_url,
                    session_url=session_url,
                    session_id=session.session_id,
                    rotation_id=session.rotation_id,
                    login_number=session.login_number,
                    expires_in=settings.OAUTH_SESSION_EXPIRE_MINUTES * 60,
                )
            )
            return JSONResponse(body.model_dump(), headers=cors_headers(AUTHORIZE_METHODS))

        login_url = f"{str(request.base_url).rstrip('/')}{authorization_url}"
        return RedirectResponse(login_url, status_code=status.HTTP_302_FOUND)

    except AuthorizeFailure as failure:
        if failure.credential_id:
            credential = await db.get(ApiCredentials, failure.credential_id)
            if credential is not None:
                await limiter.record_credential(credential, False, RateLimitOperation.AUTHORIZE)
                await record_usage_stats(db, credential, False)
        await log_security_event(
            db,
            SecurityAction.OAUTH_AUTHORIZE,
            False,
            request_info,
            credential_id=failure.credential_id,
            error=failure.error.error,
            details={
                "stage": failure.stage.value,
                "delivery": failure.delivery.value,
                "error_description": failure.error.description,
                "client_id": params.client_id,
            },
        )
        await db.commit()
        return failure.to_response()

    except Exception as e:
        await record_server_error(db, SecurityAction.OAUTH_AUTHORIZE, request_info, e, credential_id)
        return oauth_error_response(
            OAuthError(OAuthErrorCode.SERVER_ERROR, "Internal server error occurred", state=params.state),
            methods=AUTHORIZE_METHODS,
        )


# ===== Token =====


async def _parse_token_request(request: Request) -> TokenRequest:
    """Read the token request from a JSON or form-encoded body."""
    content_type = request.headers.get("Content-Type", "")
    if "application/json" in content_type:
        data = await read_json_body(request)
        if data is None:
            raise OAuthError(OAuthErrorCode.INVALID_REQUEST, "Request body must be a JSON object")
    else:
        form = await request.form()
        data = {key: value for key, value in form.items() if isinstance(value, str)}

    try:
        return TokenRequest.model_validate(data)
    except ValidationError as e:
        raise OAuthError(OAuthErrorCode.INVALID_REQUEST, "Malformed token request") from e


@router.post("/oauth/token", response_model=TokenResponse)
async def token(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    limiter: Annotated[RateLimiter, Depends(get_rate_limiter)],
    request_info: Annotated[RequestInfo, Depends(get_request_info)],
) -> Response:
    """
    Exchange an authorization code, or rotate a refresh token.

    Both grants require client_id and client_secret. The body may be
    form-encoded or JSON.

    Status codes: invalid_client 401; invalid_request, invalid_grant,
    unsupported_grant_type 400; temporarily_unavailable 503; server_error 500.
    """
    credential: ApiCredentials | None = None
    credential_id: str | None = None
    grant_type: str | None = None

    try:
        token_request = await _parse_token_request(request)
        grant_type = token_request.grant_type
        require_token_params(token_request)

        credential = await authenticate_client(
            db, token_request.client_id or "", token_request.client_secret or ""
        )
        credential_id = credential.id
        client_id_ctx.set(credential.client_id)

        result = await limiter.check_credential(credential, RateLimitOperation.TOKEN)
        if not result.allowed:
            raise rate_limited(result)

        if grant_type == GrantType.AUTHORIZATION_CODE:
            body, access_token = await exchange_authorization_code(db, credential, token_request)
        else:
            body, access_token = await exchange_refresh_token(db, credential, token_request)

        await limiter.record_credential(credential, True, RateLimitOperation.TOKEN)
        await record_usage_stats(db, credential, True)
        await log_security_event(
            db,
            SecurityAction.OAUTH_TOKEN,
            True,
            request_info,
            user_id=access_token.user_id,
            credential_id=credential.id,
            details={
                "grant_type": grant_type,
                "scopes": access_token.scopes,
                "session_id": access_token.session_id,
                "access_token": mask_secret(access_token.token),
            },
        )
        await db.commit()

        return JSONResponse(
            body.model_dump(), headers={**cors_headers(TOKEN_METHODS), **NO_STORE_HEADERS}
        )

    except OAuthError as e:
        if credential is not None:
            await limiter.record_credential(credential, False, RateLimitOperation.TOKEN)
            await record_usage_stats(db, credential, False)
        await log_security_event(
            db,
            SecurityAction.OAUTH_TOKEN,
            False,
            request_info,
            credential_id=credential_id,
            error=e.error,
            details={"grant_type": grant_type, "error_description": e.description},
        )
        await db.commit()
        return oauth_error_response(e, methods=TOKEN_METHODS)

    except Exception as e:
        await record_server_error(db, SecurityAction.OAUTH_TOKEN, request_info, e, credential_id)
        return oauth_error_response(
            OAuthError(OAuthErrorCode.SERVER_ERROR, "Internal server error occurred"),
            methods=TOKEN_METHODS,
        )


# ===== UserInfo =====


@router.api_route("/oauth/userinfo", methods=["GET", "POST"], response_model=UserInfoResponse)
async def userinfo(
    db: Annotated[AsyncSession, Depends(get_db)],
    limiter: Annotated[RateLimiter, Depends(get_rate_limiter)],
    request_info: Annotated[RequestInfo, Depends(get_request_info)],
    authorization: Annotated[str | None, Header()] = None,
) -> Response:
    """
    Return claims about the bearer token's user.

    Requires the openid or profile scope. Profile claims need `profile`,
    email claims need `email`; `sub` is always present.
    """
    credential: ApiCredentials | None = None
    credential_id: str | None = None
    user_id: str | None = None

    try:
        token_value = extract_bearer_token(authorization)
        if token_value is None:
            raise OAuthError(
                OAuthErrorCode.INVALID_REQUEST,
                "Missing or malformed Authorization header",
                status_code=status.HTTP_401_UNAUTHORIZED,
            )

        access_token = await authenticate_bearer(db, token_value)
        user_id = access_token.user_id
        scopes = list(access_token.scopes)

        if not has_any_scope(scopes, OAuthScope.USERINFO):
            raise OAuthError(
                OAuthErrorCode.INSUFFICIENT_SCOPE, "The openid or profile scope is required"
            )

        resolved = await db.get(ApiCredentials, access_token.credential_id)
        if resolved is None or not resolved.is_active:
            raise OAuthError(OAuthErrorCode.INVALID_TOKEN, "Client is no longer active")
        credential = resolved
        credential_id = credential.id
        client_id_ctx.set(credential.client_id)

        result = await limiter.check_credential(credential, RateLimitOperation.USERINFO)
        if not result.allowed:
            raise rate_limited(result)

        user = await get_user(db, user_id)
        if user is None:
            raise OAuthError(OAuthErrorCode.INVALID_TOKEN, "User not found")

        info = build_userinfo(user, scopes)
        claims = info.model_dump(exclude_none=True)

        await limiter.record_credential(credential, True, RateLimitOperation.USERINFO)
        await record_usage_stats(db, credential, True)
        await log_security_event(
            db,
            SecurityAction.OAUTH_USERINFO,
            True,
            request_info,
            user_id=user_id,
            credential_id=credential_id,
            details={"scopes": scopes, "returned_fields": sorted(claims)},
        )
        await db.commit()

        return JSONResponse(
            claims,
            headers={
                **cors_headers(USERINFO_METHODS),
                "Cache-Control": f"private, max-age={settings.USERINFO_CACHE_SECONDS}",
            },
        )

    except OAuthError as e:
        if credential is not None:
            await limiter.record_credential(credential, False, RateLimitOperation.USERINFO)
            await record_usage_stats(db, credential, False)
        await log_security_event(
            db,
            SecurityAction.OAUTH_USERINFO,
            False,
            request_info,
            user_id=user_id,
            credential_id=credential_id,
            error=e.error,
            details={"error_description": e.description},
        )
        await db.commit()
        return bearer_error_response(e, methods=USERINFO_METHODS)

    except Exception as e:
        await record_server_error(db, SecurityAction.OAUTH_USERINFO, request_info, e, credential_id)
        return oauth_error_response(
            OAuthError(OAuthErrorCode.SERVER_ERROR, "Internal server error occurred"),
            methods=USERINFO_METHODS,
        )


# ===== Validate =====


@router.get("/oauth/validate", response_model=ValidateResponse)
async def validate(
    db: Annotated[AsyncSession, Depends(get_db)],
    request_info: Annotated[RequestInfo, Depends(get_request_info)],
    token: str | None = None,
) -> Response:
    """
    Minimal token introspection.

    Returns `{active: true, scope, client_id, user_id, expires_in}` for a live
    access token, `{active: false}` with 401 otherwise. `client_id` is the
    internal credential id the token was issued to.
    """
    headers = cors_headers(VALIDATE_METHODS)

    try:
        if not token:
            await log_security_event(
                db, SecurityAction.OAUTH_VALIDATE, False, request_info, error="Token is required"
            )
            await db.commit()
            return JSONResponse(
                error_body("Token is required"), status_code=status.HTTP_400_BAD_REQUEST, headers=headers
            )

        access_token = await get_valid_access_token(db, token)
        if access_token is None:
            await log_security_event(
                db,
                SecurityAction.OAUTH_VALIDATE,
                False,
                request_info,
                error="Invalid or expired token",
                details={"token": mask_secret(token)},
            )
            await db.commit()
            return JSONResponse(
                ValidateResponse(active=False).model_dump(exclude_none=True),
                status_code=status.HTTP_401_UNAUTHORIZED,
                headers=headers,
            )

        body = ValidateResponse(
            active=True,
            scope=scopes_to_string(access_token.scopes),
            client_id=access_token.credential_id,
            user_id=access_token.user_id,
            expires_in=seconds_until(access_token.expires_at),
        )
        await log_security_event(
            db,
            SecurityAction.OAUTH_VALIDATE,
            True,
            request_info,
            user_id=access_token.user_id,
            credential_id=access_token.credential_id,
        )
        await db.commit()
        return JSONResponse(body.model_dump(), headers=headers)

    except Exception as e:
        await record_server_error(db, SecurityAction.OAUTH_VALIDATE, request_info, e)
        return JSONResponse(
            error_body("Internal server error"),
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            headers=headers,
        )


# ===== Logout (revocation) =====


@router.post("/oauth/logout")
async def logout(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    request_info: Annotated[RequestInfo, Depends(get_request_info)],
) -> Response:
    """
    Revoke an access token.

    Unknown or already revoked tokens are answered as success: the caller's
    goal (the token no longer works) holds either way.
    """
    headers = cors_headers(LOGOUT_METHODS)

    try:
        data = await read_json_body(request)
        try:
            payload = LogoutRequest.model_validate(data or {})
        except ValidationError:
            payload = LogoutRequest()

        if not payload.token:
            return JSONResponse(
                error_body("Token is required"), status_code=status.HTTP_400_BAD_REQUEST, headers=headers
            )

        access_token = await get_access_token(db, payload.token)
        if access_token is None:
            await log_security_event(
                db,
                SecurityAction.OAUTH_LOGOUT,
                True,
                request_info,
                details={"token": mask_secret(payload.token), "found": False},
            )
            await db.commit()
            return JSONResponse(
                {"success": True, "message": "Token not found or already invalidated."},
                headers=headers,
            )

        user_id = access_token.user_id
        credential_id = access_token.credential_id
        revoked = await revoke_access_token(db, payload.token)

        await log_security_event(
            db,
            SecurityAction.OAUTH_LOGOUT,
            True,
            request_info,
            user_id=user_id,
            credential_id=credential_id,
            details={"token": mask_secret(payload.token), "found": True, "revoked": revoked},
        )
        await db.commit()
        return JSONResponse({"success": True, "message": "Token successfully revoked."}, headers=headers)

    except Exception as e:
        await record_server_error(db, SecurityAction.OAUTH_LOGOUT, request_info, e)
        return JSONResponse(
            error_body("Internal server error"),
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            headers=headers,
        )


# ===== CORS preflight =====


@router.options("/authorize", include_in_schema=False)
async def authorize_options() -> Response:
    return Response(status_code=status.HTTP_200_OK, headers=cors_headers(AUTHORIZE_METHODS))


@router.options("/oauth/token", include_in_schema=False)
async def token_options() -> Response:
    return Response(status_code=status.HTTP_200_OK, headers=cors_headers(TOKEN_METHODS))


@router.options("/oauth/userinfo", include_in_schema=False)
async def userinfo_options() -> Response:
    return Response(status_code=status.HTTP_200_OK, headers=cors_headers(USERINFO_METHODS))


@router.options("/oauth/validate", include_in_schema=False)
async def validate_options() -> Response:
    return Response(status_code=status.HTTP_200_OK, headers=cors_headers(VALIDATE_METHODS))


@router.options("/oauth/logout", include_in_schema=False)
async def logout_options() -> Response:
    return Response(status_code=status.HTTP_200_OK, headers=cors_headers(LOGOUT_METHODS))
