"""SQLAlchemy table for day-trip plans."""

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, Index, JSON, String

from app.database import Base

PLAN_STATUS_DRAFT = "draft"
PLAN_STATUS_CONFIRMED = "confirmed"
PLAN_STATUS_EXPIRED = "expired"


def utcnow() -> datetime:
    """Naive UTC timestamp (SQLite drops tzinfo on round-trip)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Plan(Base):
    __tablename__ = "plans"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String, nullable=False, index=True)
    title = Column(String, nullable=True)
    vineyards = Column(JSON, nullable=False, default=list)
    restaurant = Column(JSON, nullable=True)
    custom_order = Column(JSON, nullable=False, default=list)
    status = Column(String, nullable=False, default=PLAN_STATUS_DRAFT, index=True)  # draft, confirmed, expired
    is_active = Column(Boolean, nullable=False, default=True)
    expires_at = Column(DateTime, nullable=True)
    confirmed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_plans_user_active", "user_id", "is_active"),
        Index("ix_plans_user_status_active", "user_id", "status", "is_active"),
    )

    def __repr__(self) -> str:
        return f"<Plan id={self.id} user={self.user_id} status={self.status}>"
