"""Timestamp columns store naive UTC values."""

import pytest
from sqlalchemy import DateTime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel

from authserver.models.user import Users
from authserver.utils.dates import utcnow


def _datetime_columns():
    for table in SQLModel.metadata.sorted_tables:
        for column in table.columns:
            if isinstance(column.type, DateTime):
                yield column


@pytest.mark.unit
class TestDatetimeColumns:
    def test_every_timestamp_is_plain_naive_datetime(self):
        columns = list(_datetime_columns())

        assert len(columns) >= 19
        for column in columns:
            assert type(column.type) is DateTime, column
            assert column.type.timezone is False, column

    def test_known_timestamps_mapped(self):
        names = {f"{column.table.name}.{column.name}" for column in _datetime_columns()}

        assert {
            "access_tokens.expires_at",
            "authorization_codes.expires_at",
            "oauth_sessions.expires_at",
            "refresh_tokens.expires_at",
            "security_logs.timestamp",
            "usage_stats.last_request",
        } <= names

    async def test_naive_utc_value_persists(self, db_session: AsyncSession):
        now = utcnow()
        user = Users(id="user-naive", email="naive@example.com", provider="email", last_sign_in_time=now)
        db_session.add(user)
        await db_session.commit()

        await db_session.refresh(user)
        assert user.last_sign_in_time == now
        assert user.last_sign_in_time.tzinfo is None
