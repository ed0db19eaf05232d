"""
Database models.

All models use SQLModel. Importing this package registers every table with
SQLModel.metadata (used by tests and by Alembic autogeneration).

For modifications:
1. Edit the appropriate model file in authserver/models/
2. Create an Alembic migration to reflect the changes
"""

from authserver.models.access_token import AccessTokens
from authserver.models.api_credential import ApiCredentials
from authserver.models.authorization_code import AuthorizationCodes
from authserver.models.oauth_session import OAuthSessions
from authserver.models.refresh_token import RefreshTokens
from authserver.models.security_log import SecurityLogs
from authserver.models.usage_stat import UsageStats
from authserver.models.user import UserBase, Users

__all__ = [
    "AccessTokens",
    "ApiCredentials",
    "AuthorizationCodes",
    "OAuthSessions",
    "RefreshTokens",
    "SecurityLogs",
    "UsageStats",
    "UserBase",
    "Users",
]
