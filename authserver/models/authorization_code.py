"""
SQLModel-based AuthorizationCodes model.

A one-time artifact minted by `/auth/complete` and redeemed at `/oauth/token`.
Redeemed codes are kept (used=True) for audit, never deleted.
"""

from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, ForeignKeyConstraint, Index
from sqlmodel import Field, SQLModel

from authserver.utils.dates import utcnow


class AuthorizationCodes(SQLModel, table=True):
    """Database table for authorization codes."""

    __tablename__ = "authorization_codes"

    __table_args__ = (
        ForeignKeyConstraint(
            ["credential_id"],
            ["api_credentials.id"],
            ondelete="CASCADE",
            name="fk_authorization_codes_credential_id",
        ),
        Index("idx_authorization_codes_session_id", "session_id"),
    )

    # The code itself is the lookup key
    code: str = Field(primary_key=True, max_length=64)

    session_id: str = Field(max_length=32)
    user_id: str = Field(max_length=128)
    credential_id: str = Field(max_length=64)

    # Must equal the token request's redirect_uri byte-for-byte
    redirect_uri: str = Field(max_length=2048)
    scopes: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))

    code_challenge: str | None = Field(default=None, max_length=128)
    code_challenge_method: str | None = Field(default=None, max_length=10)

    expires_at: datetime = Field(sa_type=DateTime)
    used: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
