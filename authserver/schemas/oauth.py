"""
OAuth protocol schemas.

Request models accept every parameter as optional: a missing parameter is an
OAuth `invalid_request`, which the handlers report themselves instead of
letting FastAPI answer with a 422.
"""

from pydantic import BaseModel, ConfigDict, Field


class AuthorizeParams(BaseModel):
    """Query parameters of /authorize."""

    model_config = ConfigDict(extra="ignore")

    response_type: str | None = None
    client_id: str | None = None
    redirect_uri: str | None = None
    scope: str | None = None
    state: str | None = None
    code_challenge: str | None = None
    code_challenge_method: str | None = None


class AuthorizeData(BaseModel):
    authorization_url: str
    session_url: str
    session_id: str
    rotation_id: str
    login_number: int
    expires_in: int = Field(..., description="Seconds until the pending session expires")


class AuthorizeResponse(BaseModel):
    """Machine response of /authorize (Accept: application/json)."""

    success: bool = True
    data: AuthorizeData


class TokenRequest(BaseModel):
    """Body of /oauth/token, form-encoded or JSON."""

    model_config = ConfigDict(extra="ignore")

    grant_type: str | None = None
    code: str | None = None
    refresh_token: str | None = None
    client_id: str | None = None
    client_secret: str | None = None
    redirect_uri: str | None = None
    code_verifier: str | None = None


class TokenResponse(BaseModel):
    """Successful token grant."""

    access_token: str
    token_type: str = "Bearer"
    expires_in: int = Field(..., description="Access token lifetime remaining in seconds")
    refresh_token: str
    scope: str = Field(..., description="Granted scopes, space separated")


class UserInfoResponse(BaseModel):
    """
    Claims about the token's user.

    Only `sub` is unconditional; every other claim is present only when its
    governing scope was granted, so responses are serialized with exclude_none.
    """

    sub: str

    # profile
    name: str | None = None
    given_name: str | None = None
    family_name: str | None = None
    picture: str | None = None
    locale: str | None = None

    # email
    email: str | None = None
    email_verified: bool | None = None


class ValidateResponse(BaseModel):
    """Simplified introspection result; inactive tokens carry only `active`."""

    active: bool
    scope: str | None = None
    client_id: str | None = None
    user_id: str | None = None
    expires_in: int | None = None


class LogoutRequest(BaseModel):
    token: str | None = None
