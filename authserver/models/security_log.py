"""
SQLModel-based SecurityLogs model.

Append-only audit trail: one row per protocol decision point, success or
failure. Rows are never updated.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Column, DateTime, Index
from sqlmodel import Field, SQLModel

from authserver.utils.dates import utcnow


class SecurityLogs(SQLModel, table=True):
    """Database table for security audit events."""

    __tablename__ = "security_logs"

    __table_args__ = (
        Index("idx_security_logs_action", "action"),
        Index("idx_security_logs_credential_id", "credential_id"),
        Index("idx_security_logs_timestamp", "timestamp"),
    )

    id: int | None = Field(default=None, primary_key=True)

    action: str = Field(max_length=64)
    success: bool

    # Request origin
    ip: str = Field(default="unknown", max_length=45)  # Supports IPv6
    user_agent: str = Field(default="unknown", max_length=512)

    user_id: str | None = Field(default=None, max_length=128)
    credential_id: str | None = Field(default=None, max_length=64)
    error: str | None = Field(default=None, max_length=512)

    # "metadata" is reserved on declarative models
    details: dict[str, Any] | None = Field(default=None, sa_column=Column("metadata", JSON))

    timestamp: datetime = Field(default_factory=utcnow, sa_type=DateTime)
