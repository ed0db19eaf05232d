"""
Schemas for the sign-in collaborator callback and the dashboard session refresh.

These endpoints speak camelCase on the wire; fields are snake_case here with
aliases, and responses are dumped by_alias.
"""

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from authserver.schemas.base import UTCDatetime, UTCDatetimeOptional


class CompleteRequest(BaseModel):
    """Body of /auth/complete, sent once the collaborator has verified the user."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    session_id: str | None = Field(default=None, alias="sessionId")
    user_id: str | None = Field(default=None, alias="userId")
    user_email: EmailStr | None = Field(default=None, alias="userEmail")
    user_display_name: str | None = Field(default=None, alias="userDisplayName", max_length=255)
    user_photo_url: str | None = Field(default=None, alias="userPhotoURL", max_length=1024)
    provider: str | None = Field(default=None, max_length=32)


class CompleteData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    redirect_url: str = Field(alias="redirectUrl")
    auth_code: str = Field(alias="authCode")
    session_id: str = Field(alias="sessionId")
    rotation_id: str = Field(alias="rotationId")
    login_number: int = Field(alias="loginNumber")


class CompleteResponse(BaseModel):
    success: bool = True
    data: CompleteData
    message: str = "Authentication completed successfully"


class SessionRefreshRequest(BaseModel):
    """Body of /auth/refresh."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    refresh_token: str | None = Field(default=None, alias="refreshToken")


class SessionData(BaseModel):
    """Dashboard session payload (unrelated to OAuth sessions)."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId")
    email: str
    display_name: str | None = Field(default=None, alias="displayName")
    photo_url: str | None = Field(default=None, alias="photoURL")
    provider: str
    email_verified: bool = Field(alias="emailVerified")
    created_at: UTCDatetime = Field(alias="createdAt")
    expires_at: UTCDatetime = Field(alias="expiresAt")
    last_activity: UTCDatetimeOptional = Field(default=None, alias="lastActivity")
    session_id: str = Field(alias="sessionId")


class SessionRefreshResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    session_data: SessionData = Field(alias="sessionData")
    message: str = "Session refreshed successfully"


class MessageResponse(BaseModel):
    success: bool = True
    message: str
