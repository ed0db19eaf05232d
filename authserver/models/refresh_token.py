"""
SQLModel-based RefreshTokens model for OAuth token rotation.

Security features:
- Single use: redeeming marks the row used and revokes the paired access token
- replaced_by links each token to its successor (rotation chain for audit)
- Auto-expiration via expires_at (30 days by default)
"""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKeyConstraint, Index
from sqlmodel import Field, SQLModel

from authserver.utils.dates import utcnow


class RefreshTokens(SQLModel, table=True):
    """Database table for refresh tokens."""

    __tablename__ = "refresh_tokens"

    __table_args__ = (
        ForeignKeyConstraint(
            ["credential_id"],
            ["api_credentials.id"],
            ondelete="CASCADE",
            name="fk_refresh_tokens_credential_id",
        ),
        Index("idx_refresh_tokens_user_id", "user_id"),
        Index("idx_refresh_tokens_session_id", "session_id"),
    )

    # Raw token value (secret - never log in full)
    token: str = Field(primary_key=True, max_length=128)

    user_id: str = Field(max_length=128)
    credential_id: str = Field(max_length=64)
    session_id: str = Field(max_length=32)

    # The access token issued alongside this refresh token
    access_token_id: str = Field(max_length=128)

    expires_at: datetime = Field(sa_type=DateTime)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)

    # Rotation
    used: bool = Field(default=False)
    replaced_by: str | None = Field(default=None, max_length=128)
