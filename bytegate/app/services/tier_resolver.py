"""Resolve a caller's rate limit tier from stored role and subscription state.

admin: e-mail listed in the ADMIN_EMAILS setting
premium: subscription is active and its paid period has not ended
free: everyone else
"""

from datetime import datetime
from typing import Iterable, Optional

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from bytegate.app.core.config import settings
from bytegate.app.core.logging import get_log_context, get_logger
from bytegate.app.db.async_session import SessionDep
from bytegate.app.db.crud import get_subscription
from bytegate.app.middleware.auth import AuthUser, require_user
from bytegate.app.middleware.rate_limit import Tier

logger = get_logger(__name__)


def is_admin(user: AuthUser, admin_emails: Optional[Iterable[str]] = None) -> bool:
    if not user.email:
        return False
    emails = settings.admin_emails if admin_emails is None else admin_emails
    return user.email.strip().lower() in {e.strip().lower() for e in emails}


async def resolve_tier(
    session: AsyncSession,
    user: AuthUser,
    admin_emails: Optional[Iterable[str]] = None,
    now: Optional[datetime] = None,
) -> Tier:
    """Return the tier for a user.

    The result depends only on stored state, so repeated calls return the
    same tier until the role list or the subscription record changes.
    """
    if is_admin(user, admin_emails):
        return Tier.ADMIN

    subscription = await get_subscription(session, user.id)
    if subscription is not None and subscription.is_current(now):
        return Tier.PREMIUM

    return Tier.FREE


async def get_user_tier(
    session: SessionDep,
    user: AuthUser = Depends(require_user),
) -> Tier:
    """FastAPI dependency resolving the authenticated caller's tier.

    Ends the session's transaction before returning, so the pooled
    connection is not held while the endpoint awaits the AI provider.
    """
    tier = await resolve_tier(session, user)
    await session.commit()
    logger.debug(
        "Resolved rate limit tier",
        extra=get_log_context(user_id=user.id, tier=tier.value),
    )
    return tier
