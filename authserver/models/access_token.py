"""
SQLModel-based AccessTokens model.

Opaque bearer tokens keyed by their raw value. Tokens are revoked in place
(is_revoked=True) when a refresh rotation supersedes them or on logout; a
revoked token is never valid again regardless of expiry.
"""

from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, ForeignKeyConstraint, Index
from sqlmodel import Field, SQLModel

from authserver.utils.dates import utcnow


class AccessTokens(SQLModel, table=True):
    """Database table for access tokens."""

    __tablename__ = "access_tokens"

    __table_args__ = (
        ForeignKeyConstraint(
            ["credential_id"],
            ["api_credentials.id"],
            ondelete="CASCADE",
            name="fk_access_tokens_credential_id",
        ),
        Index("idx_access_tokens_user_id", "user_id"),
        Index("idx_access_tokens_session_id", "session_id"),
    )

    # Raw token value (secret - never log in full)
    token: str = Field(primary_key=True, max_length=128)

    user_id: str = Field(max_length=128)
    credential_id: str = Field(max_length=64)
    session_id: str = Field(max_length=32)

    scopes: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    token_type: str = Field(default="Bearer", max_length=16)

    expires_at: datetime = Field(sa_type=DateTime)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
    is_revoked: bool = Field(default=False)
