"""
SQLModel-based ApiCredentials model.

A registered client application. Every protocol call resolves the caller's
credential by client_id and threads the same record through the handler.

Security notes:
- client_id is globally unique and never changes after creation
- client_secret is only shown once at creation and compared in constant time
- Credentials are deactivated (is_active=False), never deleted, to revoke issuance
"""

from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, Index
from sqlmodel import Field, SQLModel

from authserver.utils.dates import utcnow


class ApiCredentials(SQLModel, table=True):
    """Database table for OAuth client applications."""

    __tablename__ = "api_credentials"

    __table_args__ = (
        Index("idx_api_credentials_client_id", "client_id", unique=True),
        Index("idx_api_credentials_api_key", "api_key", unique=True),
        Index("idx_api_credentials_user_id", "user_id"),
    )

    # Primary key
    id: str = Field(primary_key=True, max_length=64)

    # Owning developer account
    user_id: str = Field(max_length=128)

    # Client authentication (client_secret is highly sensitive - never expose)
    client_id: str = Field(max_length=64)
    client_secret: str = Field(max_length=128)
    api_key: str = Field(max_length=64)

    # Presentation
    name: str = Field(max_length=100)
    description: str | None = Field(default=None, max_length=500)

    # Registered URIs and scopes
    redirect_uris: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    allowed_origins: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    scopes: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))

    is_active: bool = Field(default=True)

    # Rate limit policy
    rate_limit_max_requests: int = Field(default=100)
    rate_limit_window_ms: int = Field(default=900_000)
    rate_limit_enabled: bool = Field(default=True)

    # Per-credential authorization counter (login_number on sessions)
    login_counter: int = Field(default=0)

    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
    last_used: datetime | None = Field(default=None, sa_type=DateTime)
