"""
SQLModel-based User models with inheritance for security

UserBase (shared public fields)
    ├─> Users (database table, adds internal fields)
    └─> profile payloads (dashboard session data)

End users are never created with a password here: identity is verified by the
external sign-in collaborator, which then calls `/auth/complete`. That call
upserts the row by email.
"""

from datetime import datetime

from sqlalchemy import DateTime, Index
from sqlmodel import Field, SQLModel

from authserver.utils.dates import utcnow


class UserBase(SQLModel):
    """
    Base model with fields safe to return to the user themselves.
    """

    email: str = Field(max_length=255)
    display_name: str | None = Field(default=None, max_length=255)
    photo_url: str | None = Field(default=None, max_length=1024)
    provider: str = Field(default="email", max_length=32)  # 'google' or 'email'
    email_verified: bool = Field(default=False)


class Users(UserBase, table=True):
    """
    Database table for end users.

    Internal fields (should NOT be exposed via public API):
    - is_active: Access control
    - last_sign_in_time / last_refresh_time: Activity tracking
    """

    __tablename__ = "users"

    __table_args__ = (Index("idx_users_email", "email", unique=True),)

    # Primary key (identifier assigned by the sign-in collaborator)
    id: str = Field(primary_key=True, max_length=128)

    is_active: bool = Field(default=True)

    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
    last_sign_in_time: datetime | None = Field(default=None, sa_type=DateTime)
    last_refresh_time: datetime | None = Field(default=None, sa_type=DateTime)
