"""End user records, keyed by the identity the sign-in collaborator verified."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from authserver.core.logging import get_logger
from authserver.models.user import Users
from authserver.utils.dates import utcnow

logger = get_logger(__name__)


async def get_user(db: AsyncSession, user_id: str) -> Users | None:
    return await db.get(Users, user_id)


async def get_user_by_email(db: AsyncSession, email: str) -> Users | None:
    result = await db.execute(select(Users).where(Users.email == email))  # type: ignore[arg-type]
    return result.scalar_one_or_none()


async def upsert_user(
    db: AsyncSession,
    user_id: str,
    email: str,
    display_name: str | None = None,
    photo_url: str | None = None,
    provider: str | None = None,
    existing: Users | None = None,
) -> Users:
    """
    Create or refresh the user signing in with `email`.

    An existing user keeps their id; the collaborator's user_id only names new
    users. Display fields are only overwritten when a new value is supplied.

    Args:
        db: Database session
        user_id: Identifier verified by the sign-in collaborator
        email: Verified email address (the upsert key)
        display_name: Optional display name
        photo_url: Optional avatar URL
        provider: Sign-in provider tag ('google' or 'email')
        existing: The row for `email` if the caller already loaded it

    Returns:
        The created or updated user
    """
    now = utcnow()
    user = existing if existing is not None else await get_user_by_email(db, email)

    if user is not None:
        user.display_name = display_name or user.display_name
        user.photo_url = photo_url or user.photo_url
        user.email_verified = True
        user.is_active = True
        user.last_sign_in_time = now
        user.last_refresh_time = now
        user.updated_at = now
        db.add(user)
        logger.info("user_signed_in", user_id=user.id, provider=provider or user.provider)
    else:
        user = Users(
            id=user_id,
            email=email,
            display_name=display_name,
            photo_url=photo_url,
            provider=provider or "email",
            email_verified=True,
            is_active=True,
            created_at=now,
            updated_at=now,
            last_sign_in_time=now,
            last_refresh_time=now,
        )
        db.add(user)
        logger.info("user_created", user_id=user_id, provider=user.provider)

    await db.flush()
    return user
