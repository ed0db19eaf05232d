"""
OAuth error taxonomy and response rendering.

OAuth endpoints never let an OAuthError escape as an unhandled exception: each
handler catches it, records the failure, and renders it with the helpers here.

Authorize failures are delivered in one of two shapes, chosen per validation
stage by AUTHORIZE_ERROR_POLICY:
- JSON: a 4xx/5xx body `{error, error_description?, state?}`
- REDIRECT: 302 back to the (already verified) redirect_uri with the same
  fields as query parameters
"""

from enum import Enum

from fastapi import status
from fastapi.responses import JSONResponse, RedirectResponse, Response

from authserver.utils.urls import add_query_params


class OAuthErrorCode(str, Enum):
    """RFC 6749 / RFC 6750 error codes used by this server"""

    INVALID_REQUEST = "invalid_request"
    INVALID_CLIENT = "invalid_client"
    INVALID_GRANT = "invalid_grant"
    INVALID_SCOPE = "invalid_scope"
    INVALID_TOKEN = "invalid_token"
    INSUFFICIENT_SCOPE = "insufficient_scope"
    UNSUPPORTED_RESPONSE_TYPE = "unsupported_response_type"
    UNSUPPORTED_GRANT_TYPE = "unsupported_grant_type"
    TEMPORARILY_UNAVAILABLE = "temporarily_unavailable"
    SERVER_ERROR = "server_error"


# Rate limiting answers 503 on every endpoint, userinfo included
ERROR_STATUS: dict[str, int] = {
    OAuthErrorCode.INVALID_REQUEST: status.HTTP_400_BAD_REQUEST,
    OAuthErrorCode.INVALID_GRANT: status.HTTP_400_BAD_REQUEST,
    OAuthErrorCode.INVALID_SCOPE: status.HTTP_400_BAD_REQUEST,
    OAuthErrorCode.UNSUPPORTED_RESPONSE_TYPE: status.HTTP_400_BAD_REQUEST,
    OAuthErrorCode.UNSUPPORTED_GRANT_TYPE: status.HTTP_400_BAD_REQUEST,
    OAuthErrorCode.INVALID_CLIENT: status.HTTP_401_UNAUTHORIZED,
    OAuthErrorCode.INVALID_TOKEN: status.HTTP_401_UNAUTHORIZED,
    OAuthErrorCode.INSUFFICIENT_SCOPE: status.HTTP_403_FORBIDDEN,
    OAuthErrorCode.TEMPORARILY_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
    OAuthErrorCode.SERVER_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}


def cors_headers(methods: str) -> dict[str, str]:
    """Permissive CORS headers for a route accepting `methods`."""
    return {**CORS_HEADERS, "Access-Control-Allow-Methods": methods}


class OAuthError(Exception):
    """
    A protocol failure that maps to an RFC 6749 error response.

    Args:
        error: One of OAuthErrorCode
        description: Human readable error_description
        state: Client CSRF state to echo back (authorize only)
        status_code: Override for the status table (e.g. 401 on a malformed
            bearer header, which is invalid_request but an auth failure)
        headers: Extra response headers (e.g. Retry-After)
    """

    def __init__(
        self,
        error: str,
        description: str | None = None,
        state: str | None = None,
        status_code: int | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(description or error)
        self.error = error.value if isinstance(error, Enum) else error
        self.description = description
        self.state = state or None
        self.status_code = status_code or ERROR_STATUS.get(self.error, status.HTTP_400_BAD_REQUEST)
        self.headers = headers or {}

    def to_dict(self) -> dict[str, str]:
        body = {"error": self.error}
        if self.description:
            body["error_description"] = self.description
        if self.state:
            body["state"] = self.state
        return body


class ErrorDelivery(str, Enum):
    """How an authorize failure reaches the user agent"""

    JSON = "json"
    REDIRECT = "redirect"


class AuthorizeStage(str, Enum):
    """Validation stages of the authorize endpoint, in evaluation order"""

    REQUEST = "request"
    CLIENT = "client"
    RATE_LIMIT = "rate_limit"
    REDIRECT_URI = "redirect_uri"
    SCOPE = "scope"
    INTERNAL = "internal"


# Only stages reached after the redirect_uri is verified may redirect
AUTHORIZE_ERROR_POLICY: dict[AuthorizeStage, ErrorDelivery] = {
    AuthorizeStage.REQUEST: ErrorDelivery.JSON,
    AuthorizeStage.CLIENT: ErrorDelivery.JSON,
    AuthorizeStage.RATE_LIMIT: ErrorDelivery.JSON,
    AuthorizeStage.REDIRECT_URI: ErrorDelivery.JSON,
    AuthorizeStage.SCOPE: ErrorDelivery.REDIRECT,
    AuthorizeStage.INTERNAL: ErrorDelivery.JSON,
}


class AuthorizeFailure(Exception):
    """
    An authorize validation failure tagged with the stage that raised it.

    `redirect_uri` is only set once it has been matched against the client's
    registered URIs; `credential_id` once the client has been resolved.
    """

    def __init__(
        self,
        error: OAuthError,
        stage: AuthorizeStage,
        redirect_uri: str | None = None,
        credential_id: str | None = None,
    ) -> None:
        super().__init__(str(error))
        self.error = error
        self.stage = stage
        self.redirect_uri = redirect_uri
        self.credential_id = credential_id

    @property
    def delivery(self) -> ErrorDelivery:
        if self.redirect_uri is None:
            return ErrorDelivery.JSON
        return AUTHORIZE_ERROR_POLICY[self.stage]

    def to_response(self) -> Response:
        if self.delivery is ErrorDelivery.REDIRECT and self.redirect_uri:
            location = add_query_params(
                self.redirect_uri,
                {
                    "error": self.error.error,
                    "error_description": self.error.description,
                    "state": self.error.state,
                },
            )
            return RedirectResponse(location, status_code=status.HTTP_302_FOUND)
        return oauth_error_response(self.error, methods="GET, POST, OPTIONS")


def oauth_error_response(error: OAuthError, methods: str = "POST, OPTIONS") -> JSONResponse:
    """Render an OAuthError as a JSON body with CORS headers."""
    return JSONResponse(
        status_code=error.status_code,
        content=error.to_dict(),
        headers={**cors_headers(methods), **error.headers},
    )


def bearer_error_response(error: OAuthError, methods: str = "GET, POST, OPTIONS") -> JSONResponse:
    """
    Render an OAuthError for a bearer-protected resource.

    401 and 403 responses carry a WWW-Authenticate challenge naming the error.
    """
    response = oauth_error_response(error, methods=methods)
    if error.status_code in (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN):
        challenge = "Bearer"
        if error.error in (OAuthErrorCode.INVALID_TOKEN, OAuthErrorCode.INSUFFICIENT_SCOPE):
            challenge += f' error="{error.error}"'
            if error.description:
                challenge += f', error_description="{error.description}"'
        response.headers["WWW-Authenticate"] = challenge
    return response


def error_body(error: str, message: str | None = None) -> dict[str, object]:
    """Body for non-OAuth endpoints (`/auth/complete`, `/auth/refresh`, `/oauth/logout`)."""
    body: dict[str, object] = {"success": False, "error": error}
    if message:
        body["message"] = message
    return body
