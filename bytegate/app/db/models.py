from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from bytegate.app.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_aware(value: datetime) -> datetime:
    # SQLite drops tzinfo on round trip; stored values are UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        Index("idx_users_email", "email"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True)
    email: Mapped[str | None] = mapped_column(String, unique=True, nullable=True)
    name: Mapped[str] = mapped_column(String)
    api_key_hash: Mapped[str] = mapped_column(String(64), unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class UserSubscription(Base):
    """A user's subscription record, as written by the billing side."""

    __tablename__ = "user_subscriptions"
    __table_args__ = (
        Index("idx_user_subscriptions_period_end", "current_period_end"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), unique=True)
    plan_name: Mapped[str] = mapped_column(String, default="premium")
    status: Mapped[str] = mapped_column(String, default="active")  # active | canceled | past_due
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    current_period_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    current_period_end: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    def is_current(self, now: datetime | None = None) -> bool:
        """Active and not yet past the end of the paid period."""
        now = now or _utcnow()
        return bool(self.is_active) and _as_aware(self.current_period_end) > now
