"""User and subscription CRUD operations."""
from datetime import datetime, timezone
from typing import Optional
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bytegate.app.db.models import User, UserSubscription


async def lookup_user_by_hash(
    session: AsyncSession,
    api_key_hash: str
) -> Optional[User]:
    """Find a user by their API key hash.

    Args:
        session: Database session from FastAPI dependency
        api_key_hash: The hashed API key to look up

    Returns:
        User object if found, None otherwise
    """
    result = await session.execute(
        select(User).where(User.api_key_hash == api_key_hash)
    )
    return result.scalar_one_or_none()


async def get_user_by_id(session: AsyncSession, user_id: str) -> Optional[User]:
    result = await session.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def create_user(
    session: AsyncSession,
    name: str,
    api_key_hash: str,
    email: Optional[str] = None,
    user_id: Optional[str] = None,
) -> User:
    """Create a user. The caller is responsible for committing."""
    user = User(
        id=user_id or uuid.uuid4().hex,
        name=name,
        email=email.strip().lower() if email else None,
        api_key_hash=api_key_hash,
        created_at=datetime.now(timezone.utc),
    )
    session.add(user)
    await session.flush()
    return user


async def get_subscription(
    session: AsyncSession,
    user_id: str
) -> Optional[UserSubscription]:
    """Get the subscription record for a user, if any."""
    result = await session.execute(
        select(UserSubscription).where(UserSubscription.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def upsert_subscription(
    session: AsyncSession,
    user_id: str,
    current_period_end: datetime,
    plan_name: str = "premium",
    status: str = "active",
    is_active: bool = True,
) -> UserSubscription:
    """Create or replace the subscription record for a user."""
    subscription = await get_subscription(session, user_id)
    if subscription is None:
        subscription = UserSubscription(
            user_id=user_id,
            current_period_start=datetime.now(timezone.utc),
            created_at=datetime.now(timezone.utc),
        )
        session.add(subscription)

    subscription.plan_name = plan_name
    subscription.status = status
    subscription.is_active = is_active
    subscription.current_period_end = current_period_end
    await session.flush()
    return subscription
