"""
SQLModel-based OAuthSessions model.

One row per authorization attempt, created by `/authorize` and completed by
`/auth/complete`. Status moves pending -> authorized exactly once; a pending
session past expires_at can never be authorized.

The access/refresh token columns are a denormalized snapshot kept for
bookkeeping only. Security decisions always read the token tables.
"""

from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, ForeignKeyConstraint, Index
from sqlmodel import Field, SQLModel

from authserver.config import SessionStatus
from authserver.utils.dates import utcnow


class OAuthSessions(SQLModel, table=True):
    """Database table for in-flight and completed authorization attempts."""

    __tablename__ = "oauth_sessions"

    __table_args__ = (
        ForeignKeyConstraint(
            ["credential_id"],
            ["api_credentials.id"],
            ondelete="CASCADE",
            name="fk_oauth_sessions_credential_id",
        ),
        Index("idx_oauth_sessions_credential_id", "credential_id"),
        Index("idx_oauth_sessions_expires_at", "expires_at"),
    )

    # 128-bit session identifier (32 hex chars), also the storage id the
    # human-facing login page refers to
    session_id: str = Field(primary_key=True, max_length=32)
    rotation_id: str = Field(max_length=32)
    login_number: int

    # Empty until the end user authenticates
    user_id: str = Field(default="", max_length=128)
    credential_id: str = Field(max_length=64)

    # Client CSRF token, echoed back on the final redirect
    state: str = Field(default="", max_length=512)

    # PKCE
    code_challenge: str | None = Field(default=None, max_length=128)
    code_challenge_method: str | None = Field(default=None, max_length=10)

    redirect_uri: str = Field(max_length=2048)
    scopes: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))

    status: str = Field(default=SessionStatus.PENDING, max_length=16)

    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
    expires_at: datetime = Field(sa_type=DateTime)
    authorized_at: datetime | None = Field(default=None, sa_type=DateTime)

    # Token snapshot (read-model only)
    access_token: str | None = Field(default=None, max_length=128)
    refresh_token: str | None = Field(default=None, max_length=128)
    token_expires_at: datetime | None = Field(default=None, sa_type=DateTime)
