"""
Client credential management.

There is no HTTP surface for registering clients here; seeding scripts and
tests create credentials through this service.
"""

import uuid

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from authserver.config import settings
from authserver.core.logging import get_logger
from authserver.core.security import generate_api_key, generate_client_id, generate_client_secret
from authserver.models.api_credential import ApiCredentials
from authserver.utils.dates import utcnow
from authserver.utils.scopes import validate_scopes
from authserver.utils.urls import sanitize_origin_list, sanitize_uri_list

logger = get_logger(__name__)

MIN_WINDOW_MS = 60_000  # 1 minute
MAX_WINDOW_MS = 86_400_000  # 24 hours
MAX_REQUESTS_CEILING = 10_000


class CredentialError(ValueError):
    """Rejected credential registration input."""


async def get_credential_by_client_id(db: AsyncSession, client_id: str) -> ApiCredentials | None:
    result = await db.execute(select(ApiCredentials).where(ApiCredentials.client_id == client_id))  # type: ignore[arg-type]
    return result.scalar_one_or_none()


async def get_active_credential(db: AsyncSession, client_id: str) -> ApiCredentials | None:
    """Credential for `client_id`, or None when it is unknown or deactivated."""
    credential = await get_credential_by_client_id(db, client_id)
    if credential is None or not credential.is_active:
        return None
    return credential


async def create_credential(
    db: AsyncSession,
    user_id: str,
    name: str,
    redirect_uris: str | list[str],
    scopes: list[str],
    description: str | None = None,
    allowed_origins: str | list[str] | None = None,
    max_requests: int | None = None,
    window_ms: int | None = None,
) -> ApiCredentials:
    """
    Register a client application.

    Args:
        db: Database session
        user_id: Owning developer
        name: Display name (1-100 chars)
        redirect_uris: Comma-separated string or list; invalid URIs are dropped
        scopes: Requested scopes; unrecognized ones are dropped
        description: Optional description (max 500 chars)
        allowed_origins: Optional CORS origins
        max_requests: Rate limit ceiling (1-10,000)
        window_ms: Rate limit window (1 minute to 24 hours)

    Returns:
        The new credential. Its client_secret is only ever returned here.

    Raises:
        CredentialError: If the input leaves nothing usable
    """
    name = name.strip()
    if not 1 <= len(name) <= 100:
        raise CredentialError("Name must be between 1 and 100 characters")

    if description and len(description) > 500:
        raise CredentialError("Description must be less than 500 characters")

    uris = sanitize_uri_list(redirect_uris)
    if not uris:
        raise CredentialError("At least one valid redirect URI is required")

    valid_scopes = validate_scopes(scopes)
    if not valid_scopes:
        raise CredentialError("At least one valid scope is required")

    max_requests = max_requests or settings.RATE_LIMIT_MAX_REQUESTS
    window_ms = window_ms or settings.RATE_LIMIT_WINDOW_MS
    if not 1 <= max_requests <= MAX_REQUESTS_CEILING:
        raise CredentialError("Max requests must be between 1 and 10,000")
    if not MIN_WINDOW_MS <= window_ms <= MAX_WINDOW_MS:
        raise CredentialError("Window must be between 1 minute and 24 hours")

    credential = ApiCredentials(
        id=uuid.uuid4().hex,
        user_id=user_id,
        client_id=generate_client_id(),
        client_secret=generate_client_secret(),
        api_key=generate_api_key(),
        name=name,
        description=description.strip() if description else None,
        redirect_uris=uris,
        allowed_origins=sanitize_origin_list(allowed_origins or []),
        scopes=valid_scopes,
        rate_limit_max_requests=max_requests,
        rate_limit_window_ms=window_ms,
    )
    db.add(credential)
    await db.flush()

    logger.info(
        "credential_created",
        credential_id=credential.id,
        client_id=credential.client_id,
        user_id=user_id,
        scopes=valid_scopes,
    )
    return credential


async def deactivate_credential(db: AsyncSession, credential_id: str) -> bool:
    """
    Revoke a credential's ability to obtain new grants.

    The row is kept; only is_active is cleared.

    Returns:
        True if a credential was deactivated
    """
    result = await db.execute(
        update(ApiCredentials)
        .where(ApiCredentials.id == credential_id)  # type: ignore[arg-type]
        .values(is_active=False, updated_at=utcnow())
    )
    if result.rowcount:  # type: ignore[attr-defined]
        logger.info("credential_deactivated", credential_id=credential_id)
        return True
    return False


async def next_login_number(db: AsyncSession, credential: ApiCredentials) -> int:
    """
    Atomically advance the credential's login counter and return the new value.
    """
    await db.execute(
        update(ApiCredentials)
        .where(ApiCredentials.id == credential.id)  # type: ignore[arg-type]
        .values(login_counter=ApiCredentials.login_counter + 1)
    )
    result = await db.execute(
        select(ApiCredentials.login_counter).where(ApiCredentials.id == credential.id)  # type: ignore[arg-type]
    )
    return int(result.scalar_one())
