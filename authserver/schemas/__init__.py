"""
Pydantic schemas for API responses and requests
"""

from authserver.schemas.auth import (
    CompleteData,
    CompleteRequest,
    CompleteResponse,
    MessageResponse,
    SessionData,
    SessionRefreshRequest,
    SessionRefreshResponse,
)
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

__all__ = [
    "AuthorizeData",
    "AuthorizeParams",
    "AuthorizeResponse",
    "CompleteData",
    "CompleteRequest",
    "CompleteResponse",
    "LogoutRequest",
    "MessageResponse",
    "SessionData",
    "SessionRefreshRequest",
    "SessionRefreshResponse",
    "TokenRequest",
    "TokenResponse",
    "UserInfoResponse",
    "ValidateResponse",
]
