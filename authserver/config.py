"""
Application Configuration
Uses Pydantic Settings for environment-based configuration
"""

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    PROJECT_NAME: str = "GLAStudio OAuth"
    VERSION: str = "1.0.0"
    ENVIRONMENT: str = Field(default="development", pattern="^(development|staging|production)$")
    DEBUG: bool = Field(default=False)

    # Security (dashboard session signing)
    SECRET_KEY: str
    ALGORITHM: str = "HS256"

    # CORS
    # Allow str because it can be a comma-separated string in .env
    CORS_ORIGINS: str | list[str] = Field(default=["*"])

    # Database
    DATABASE_URL: str
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10
    DB_ECHO: bool = False

    # Redis
    REDIS_URL: str = Field(default="redis://localhost:6379/0")

    # Arq (session sweep worker)
    ARQ_REDIS_URL: str = Field(default="redis://localhost:6379/1")
    ARQ_KEEP_RESULT: int = 3600  # 1 hour

    # OAuth surface
    APP_DOMAIN: str = "auth-GLAstudio.auth"
    LOGIN_PAGE_PATH: str = "/auth/login"

    # OAuth artifact lifetimes
    OAUTH_SESSION_EXPIRE_MINUTES: int = 10
    AUTHORIZATION_CODE_EXPIRE_MINUTES: int = 10
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    REFRESH_TOKEN_EXPIRE_DAYS: int = 30
    USERINFO_CACHE_SECONDS: int = 300  # 5 minutes

    # Rate Limiting
    RATE_LIMIT_BACKEND: str = Field(default="memory", pattern="^(memory|redis)$")
    RATE_LIMIT_MAX_REQUESTS: int = 100
    RATE_LIMIT_WINDOW_MS: int = 900_000  # 15 minutes
    GLOBAL_RATE_LIMIT_MAX_REQUESTS: int = 1000
    GLOBAL_RATE_LIMIT_WINDOW_MS: int = 3_600_000  # 1 hour
    USER_RATE_LIMIT_MAX_REQUESTS: int = 500
    USER_RATE_LIMIT_WINDOW_MS: int = 3_600_000  # 1 hour

    # Dashboard session cookies
    DASHBOARD_SESSION_HOURS: int = 24
    DASHBOARD_REFRESH_DAYS: int = 7
    SESSION_COOKIE_NAME: str = "glasstudio_session"
    REFRESH_COOKIE_NAME: str = "glasstudio_refresh"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: str | list[str]) -> list[str]:
        """Parse CORS origins from comma-separated string"""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",")]
        return v


# Create global settings instance

load_dotenv()
settings = Settings()  # type: ignore[call-arg]


# Protocol constants
class OAuthScope:
    """Recognized OAuth scopes"""

    PROFILE = "profile"
    EMAIL = "email"
    OPENID = "openid"
    READ_USER = "read:user"
    WRITE_USER = "write:user"

    SUPPORTED = (PROFILE, EMAIL, OPENID, READ_USER, WRITE_USER)

    # Used on refresh when the originating session is gone
    REFRESH_FALLBACK = (OPENID, PROFILE, EMAIL)

    # At least one of these is needed to call userinfo
    USERINFO = (OPENID, PROFILE)

    DESCRIPTIONS = {
        OPENID: "Basic profile identification",
        PROFILE: "Your profile information (name, photo)",
        EMAIL: "Your email address",
        READ_USER: "Read your user data",
        WRITE_USER: "Modify your user data",
    }


class SessionStatus:
    """OAuth session status constants"""

    PENDING = "pending"
    AUTHORIZED = "authorized"
    EXPIRED = "expired"
    REVOKED = "revoked"


class GrantType:
    """Supported token grant types"""

    AUTHORIZATION_CODE = "authorization_code"
    REFRESH_TOKEN = "refresh_token"

    SUPPORTED = (AUTHORIZATION_CODE, REFRESH_TOKEN)


class ResponseType:
    """Supported authorize response types"""

    CODE = "code"


class PKCEMethod:
    """PKCE code challenge methods"""

    S256 = "S256"
    PLAIN = "plain"

    SUPPORTED = (S256, PLAIN)


class RateLimitOperation:
    """Operation names used in per-credential rate limit identifiers"""

    AUTHORIZE = "authorize"
    TOKEN = "token"
    USERINFO = "userinfo"
    GENERAL = "general"


class SecurityAction:
    """Security log action names"""

    OAUTH_AUTHORIZE = "oauth_authorize"
    AUTH_COMPLETE = "auth_complete"
    OAUTH_TOKEN = "oauth_token"
    OAUTH_USERINFO = "oauth_userinfo"
    OAUTH_VALIDATE = "oauth_validate"
    OAUTH_LOGOUT = "oauth_logout"
