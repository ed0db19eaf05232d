"""
SQLModel-based UsageStats model.

Daily request counters per credential. The primary key is
`{credential_id}_{YYYY-MM-DD}` so each day has exactly one row.
"""

from datetime import datetime

from sqlalchemy import DateTime, Index
from sqlmodel import Field, SQLModel


class UsageStats(SQLModel, table=True):
    """Database table for per-credential daily usage."""

    __tablename__ = "usage_stats"

    __table_args__ = (Index("idx_usage_stats_credential_date", "credential_id", "date"),)

    id: str = Field(primary_key=True, max_length=80)

    credential_id: str = Field(max_length=64)
    date: str = Field(max_length=10)  # YYYY-MM-DD (UTC)

    requests: int = Field(default=0)
    errors: int = Field(default=0)
    successful_auths: int = Field(default=0)
    failed_auths: int = Field(default=0)

    last_request: datetime | None = Field(default=None, sa_type=DateTime)
