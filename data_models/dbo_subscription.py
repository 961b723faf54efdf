"""Data model for payment-processor subscription snapshots."""

from datetime import datetime
from typing import Any

from sqlalchemy import String, ForeignKey, Integer, Boolean, Index
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin, new_uuid
from .growth_enums import SubscriptionStatus, enum_column


class Subscription(Base, TimestampMixin):
    __tablename__ = "subscription"
    __table_args__ = (
        Index("idx_subscription_person", "person_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    person_id: Mapped[str] = mapped_column(
        ForeignKey("person.id", ondelete="CASCADE"), nullable=False
    )
    stripe_subscription_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    stripe_customer_id: Mapped[str] = mapped_column(String(255), nullable=False)

    status: Mapped[SubscriptionStatus] = mapped_column(
        enum_column(SubscriptionStatus, "subscription_status"), nullable=False
    )
    plan_name: Mapped[str | None] = mapped_column(String(255))
    plan_interval: Mapped[str | None] = mapped_column(String(50))
    # Monthly recurring revenue in cents
    mrr: Mapped[int | None] = mapped_column(Integer)

    current_period_start: Mapped[datetime | None]
    current_period_end: Mapped[datetime | None]
    cancel_at_period_end: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    metadata_: Mapped[dict[str, Any] | None] = mapped_column("metadata")
