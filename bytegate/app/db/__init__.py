"""Database package for the gateway.

This package provides:
- Database models (User, UserSubscription)
- Asynchronous session management
- CRUD operations for users and subscriptions
- FastAPI dependency injection support
"""

from bytegate.app.db.base import Base
from bytegate.app.db.models import User, UserSubscription
from bytegate.app.db.async_session import (
    SessionDep,
    close_async_engine,
    get_async_engine,
    get_async_session,
    get_async_session_maker,
    get_db,
    init_async_db,
)
from bytegate.app.db.crud import (
    create_user,
    get_subscription,
    get_user_by_id,
    lookup_user_by_hash,
    upsert_subscription,
)

__all__ = [
    "Base",
    "User",
    "UserSubscription",
    "SessionDep",
    "close_async_engine",
    "get_async_engine",
    "get_async_session",
    "get_async_session_maker",
    "get_db",
    "init_async_db",
    "create_user",
    "get_subscription",
    "get_user_by_id",
    "lookup_user_by_hash",
    "upsert_subscription",
]
