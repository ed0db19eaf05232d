"""
OAuth 2.0 protocol engine.

Validation and grant logic shared by the /authorize, /oauth/token and
/oauth/userinfo handlers. Every check raises OAuthError (or AuthorizeFailure
for /authorize) in the order the protocol defines; the handlers catch those
at the top level, audit them and render the response.

Token grants run all read-only checks before the first write. The first write
is the conditional UPDATE that consumes the code or refresh token, so a grant
that fails validation leaves the artifact redeemable, and two concurrent
redemptions cannot both win.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from authserver.config import GrantType, OAuthScope, PKCEMethod, RateLimitOperation, ResponseType
from authserver.core.errors import AuthorizeFailure, AuthorizeStage, OAuthError, OAuthErrorCode
from authserver.core.logging import get_logger, mask_secret
from authserver.core.security import secrets_match, verify_code_challenge
from authserver.models.access_token import AccessTokens
from authserver.models.api_credential import ApiCredentials
from authserver.models.oauth_session import OAuthSessions
from authserver.models.user import Users
from authserver.schemas.oauth import AuthorizeParams, TokenRequest, TokenResponse, UserInfoResponse
from authserver.services import tokens as token_store
from authserver.services.credentials import get_active_credential
from authserver.services.oauth_sessions import update_token_snapshot
from authserver.services.rate_limit import RateLimiter, RateLimitResult
from authserver.utils.dates import is_expired, seconds_until
from authserver.utils.scopes import parse_scopes, scopes_to_string
from authserver.utils.urls import is_absolute_url, is_registered_redirect_uri

logger = get_logger(__name__)

# Description shared by every client authentication failure, so responses do
# not reveal whether the client_id exists
INVALID_CLIENT_DESCRIPTION = "Client authentication failed"

DEFAULT_LOCALE = "en-US"


def rate_limited(result: RateLimitResult, state: str | None = None) -> OAuthError:
    return OAuthError(
        OAuthErrorCode.TEMPORARILY_UNAVAILABLE,
        "Rate limit exceeded. Please try again later.",
        state=state,
        headers=result.headers(),
    )


# ---------------------------------------------------------------------------
# /authorize
# ---------------------------------------------------------------------------


async def validate_authorize_request(
    db: AsyncSession, limiter: RateLimiter, params: AuthorizeParams
) -> tuple[ApiCredentials, list[str]]:
    """
    Run the authorize validation stages in order.

    Args:
        db: Database session
        limiter: Rate limiter (consumes one `authorize` slot once the client is known)
        params: Raw authorize parameters

    Returns:
        (credential, granted scopes)

    Raises:
        AuthorizeFailure: Tagged with the failing stage; the stage decides
            whether the error is delivered as JSON or as a redirect
    """
    state = params.state or None

    def request_error(description: str, code: str = OAuthErrorCode.INVALID_REQUEST) -> AuthorizeFailure:
        return AuthorizeFailure(OAuthError(code, description, state=state), AuthorizeStage.REQUEST)

    if params.response_type != ResponseType.CODE:
        raise request_error(
            "Only response_type=code is supported", OAuthErrorCode.UNSUPPORTED_RESPONSE_TYPE
        )
    if not params.client_id:
        raise request_error("client_id is required")
    if not params.redirect_uri:
        raise request_error("redirect_uri is required")
    if not is_absolute_url(params.redirect_uri):
        raise request_error("redirect_uri must be a valid URL")
    if not params.scope:
        raise request_error("scope is required")
    if params.code_challenge:
        if not params.code_challenge_method:
            raise request_error("code_challenge_method is required when code_challenge is provided")
        if params.code_challenge_method not in PKCEMethod.SUPPORTED:
            raise request_error("code_challenge_method must be S256 or plain")

    credential = await get_active_credential(db, params.client_id)
    if credential is None:
        raise AuthorizeFailure(
            OAuthError(OAuthErrorCode.INVALID_CLIENT, "Invalid or inactive client_id", state=state),
            AuthorizeStage.CLIENT,
        )

    result = await limiter.check_credential(credential, RateLimitOperation.AUTHORIZE)
    if not result.allowed:
        raise AuthorizeFailure(
            rate_limited(result, state), AuthorizeStage.RATE_LIMIT, credential_id=credential.id
        )

    if not is_registered_redirect_uri(params.redirect_uri, credential.redirect_uris):
        raise AuthorizeFailure(
            OAuthError(
                OAuthErrorCode.INVALID_REQUEST,
                "redirect_uri is not registered for this client",
                state=state,
            ),
            AuthorizeStage.REDIRECT_URI,
            credential_id=credential.id,
        )

    scopes = parse_scopes(params.scope)
    if not scopes:
        raise AuthorizeFailure(
            OAuthError(OAuthErrorCode.INVALID_SCOPE, "No valid scopes requested", state=state),
            AuthorizeStage.SCOPE,
            redirect_uri=params.redirect_uri,
            credential_id=credential.id,
        )

    return credential, scopes


# ---------------------------------------------------------------------------
# /oauth/token
# ---------------------------------------------------------------------------


def require_token_params(request: TokenRequest) -> None:
    """
    Check the token request carries what its grant type needs.

    Raises:
        OAuthError: invalid_request or unsupported_grant_type
    """
    if not request.grant_type:
        raise OAuthError(OAuthErrorCode.INVALID_REQUEST, "grant_type is required")
    if request.grant_type not in GrantType.SUPPORTED:
        raise OAuthError(
            OAuthErrorCode.UNSUPPORTED_GRANT_TYPE,
            "Supported grant types: authorization_code, refresh_token",
        )
    if not request.client_id or not request.client_secret:
        raise OAuthError(OAuthErrorCode.INVALID_REQUEST, "client_id and client_secret are required")

    if request.grant_type == GrantType.AUTHORIZATION_CODE:
        if not request.code or not request.redirect_uri:
            raise OAuthError(
                OAuthErrorCode.INVALID_REQUEST,
                "code and redirect_uri are required for authorization_code grant",
            )
    elif not request.refresh_token:
        raise OAuthError(
            OAuthErrorCode.INVALID_REQUEST, "refresh_token is required for refresh_token grant"
        )


async def authenticate_client(db: AsyncSession, client_id: str, client_secret: str) -> ApiCredentials:
    """
    Resolve and authenticate the calling client.

    Unknown, inactive and wrong-secret clients get the same error; only the
    log line tells them apart.

    Raises:
        OAuthError: invalid_client (401)
    """
    credential = await get_active_credential(db, client_id)
    if credential is None:
        logger.warning("client_authentication_failed", client_id=client_id, reason="unknown_or_inactive")
        raise OAuthError(OAuthErrorCode.INVALID_CLIENT, INVALID_CLIENT_DESCRIPTION)

    if not secrets_match(client_secret, credential.client_secret):
        logger.warning("client_authentication_failed", client_id=client_id, reason="secret_mismatch")
        raise OAuthError(OAuthErrorCode.INVALID_CLIENT, INVALID_CLIENT_DESCRIPTION)

    return credential


def _token_response(access_token: AccessTokens, refresh_token_value: str) -> TokenResponse:
    return TokenResponse(
        access_token=access_token.token,
        token_type=access_token.token_type,
        expires_in=seconds_until(access_token.expires_at),
        refresh_token=refresh_token_value,
        scope=scopes_to_string(access_token.scopes),
    )


async def exchange_authorization_code(
    db: AsyncSession, credential: ApiCredentials, request: TokenRequest
) -> tuple[TokenResponse, AccessTokens]:
    """
    Redeem an authorization code for an access/refresh token pair.

    Args:
        db: Database session
        credential: The authenticated client
        request: Token request (code, redirect_uri, code_verifier)

    Returns:
        (token response, the new access token)

    Raises:
        OAuthError: invalid_grant for any problem with the code itself,
            invalid_request if a PKCE verifier is required but missing
    """
    code_value = request.code or ""
    code = await token_store.get_authorization_code(db, code_value)
    if code is None:
        raise OAuthError(OAuthErrorCode.INVALID_GRANT, "Invalid authorization code")
    if code.used:
        logger.warning("authorization_code_reuse", code=mask_secret(code_value), credential_id=credential.id)
        raise OAuthError(OAuthErrorCode.INVALID_GRANT, "Authorization code has already been used")
    if is_expired(code.expires_at):
        raise OAuthError(OAuthErrorCode.INVALID_GRANT, "Authorization code has expired")
    if code.credential_id != credential.id:
        raise OAuthError(OAuthErrorCode.INVALID_GRANT, "Authorization code was issued to a different client")
    if code.redirect_uri != request.redirect_uri:
        raise OAuthError(OAuthErrorCode.INVALID_GRANT, "redirect_uri does not match the authorization request")

    if code.code_challenge:
        if not request.code_verifier:
            raise OAuthError(OAuthErrorCode.INVALID_REQUEST, "code_verifier is required")
        if not verify_code_challenge(request.code_verifier, code.code_challenge, code.code_challenge_method):
            raise OAuthError(OAuthErrorCode.INVALID_GRANT, "Invalid code verifier")

    # Capture what we need before the conditional UPDATE touches the row
    user_id = code.user_id
    session_id = code.session_id
    scopes = list(code.scopes)

    if not await token_store.consume_authorization_code(db, code_value):
        raise OAuthError(OAuthErrorCode.INVALID_GRANT, "Authorization code has already been used")

    access_token, refresh_token = await token_store.issue_token_pair(
        db, user_id=user_id, credential_id=credential.id, session_id=session_id, scopes=scopes
    )
    await update_token_snapshot(db, session_id, access_token, refresh_token)

    return _token_response(access_token, refresh_token.token), access_token


async def exchange_refresh_token(
    db: AsyncSession, credential: ApiCredentials, request: TokenRequest
) -> tuple[TokenResponse, AccessTokens]:
    """
    Rotate a refresh token.

    The old refresh token is consumed and its paired access token revoked;
    a new pair is minted with the scopes granted on the originating session.
    If that session no longer exists the default (openid, profile, email)
    scopes are used.

    Raises:
        OAuthError: invalid_grant for a missing, used, expired or foreign token
    """
    token_value = request.refresh_token or ""
    refresh_token = await token_store.get_refresh_token(db, token_value)
    if refresh_token is None:
        raise OAuthError(OAuthErrorCode.INVALID_GRANT, "Invalid refresh token")
    if refresh_token.used:
        logger.warning("refresh_token_reuse", token=mask_secret(token_value), credential_id=credential.id)
        raise OAuthError(OAuthErrorCode.INVALID_GRANT, "Refresh token has already been used")
    if is_expired(refresh_token.expires_at):
        raise OAuthError(OAuthErrorCode.INVALID_GRANT, "Refresh token has expired")
    if refresh_token.credential_id != credential.id:
        raise OAuthError(OAuthErrorCode.INVALID_GRANT, "Refresh token was issued to a different client")

    user_id = refresh_token.user_id
    session_id = refresh_token.session_id
    old_access_token = refresh_token.access_token_id

    if not await token_store.consume_refresh_token(db, token_value):
        raise OAuthError(OAuthErrorCode.INVALID_GRANT, "Refresh token has already been used")

    await token_store.revoke_access_token(db, old_access_token)

    session = await db.get(OAuthSessions, session_id)
    if session is not None:
        scopes = list(session.scopes)
    else:
        scopes = list(OAuthScope.REFRESH_FALLBACK)
        logger.info("refresh_scope_fallback", session_id=session_id, scopes=scopes)

    access_token, new_refresh_token = await token_store.issue_token_pair(
        db, user_id=user_id, credential_id=credential.id, session_id=session_id, scopes=scopes
    )
    await token_store.link_replacement(db, token_value, new_refresh_token.token)
    await update_token_snapshot(db, session_id, access_token, new_refresh_token)

    return _token_response(access_token, new_refresh_token.token), access_token


# ---------------------------------------------------------------------------
# /oauth/userinfo and /oauth/validate
# ---------------------------------------------------------------------------


async def get_valid_access_token(db: AsyncSession, token: str) -> AccessTokens | None:
    """The access token if it exists, is not revoked and has not expired."""
    access_token = await token_store.get_access_token(db, token)
    if access_token is None or access_token.is_revoked or is_expired(access_token.expires_at):
        return None
    return access_token


async def authenticate_bearer(db: AsyncSession, token: str) -> AccessTokens:
    """
    Resolve a bearer token for a protected resource.

    Raises:
        OAuthError: invalid_token (401) if unknown, revoked or expired
    """
    access_token = await token_store.get_access_token(db, token)
    if access_token is None:
        raise OAuthError(OAuthErrorCode.INVALID_TOKEN, "Invalid access token")
    if access_token.is_revoked:
        raise OAuthError(OAuthErrorCode.INVALID_TOKEN, "Access token has been revoked")
    if is_expired(access_token.expires_at):
        raise OAuthError(OAuthErrorCode.INVALID_TOKEN, "Access token has expired")
    return access_token


def build_userinfo(user: Users, scopes: list[str]) -> UserInfoResponse:
    """
    Claims for `user` limited to what `scopes` grants.

    profile: name, given_name/family_name (display name split on the first
    space), picture, locale. email: email, email_verified.
    """
    info = UserInfoResponse(sub=user.id)

    if OAuthScope.PROFILE in scopes:
        if user.display_name:
            info.name = user.display_name
            given, _, family = user.display_name.partition(" ")
            info.given_name = given
            info.family_name = family or None
        info.picture = user.photo_url or None
        info.locale = DEFAULT_LOCALE

    if OAuthScope.EMAIL in scopes:
        info.email = user.email
        info.email_verified = user.email_verified

    return info
