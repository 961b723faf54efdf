"""Data model for derived behavioral features (one row per person)."""

from datetime import datetime

from sqlalchemy import String, ForeignKey, Integer
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, new_uuid, utcnow

FEATURE_FIELDS = ("active_days", "core_actions", "pricing_views", "email_opens", "email_clicks")


class PersonFeatures(Base):
    """
    Cache of values derived from the Event and EmailEvent history.
    Always reconstructible with a full recompute.
    """

    __tablename__ = "person_features"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    person_id: Mapped[str] = mapped_column(
        ForeignKey("person.id", ondelete="CASCADE"), unique=True, nullable=False
    )

    active_days: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    core_actions: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    pricing_views: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    email_opens: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    email_clicks: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_active_at: Mapped[datetime | None]

    first_seen_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    def as_dict(self) -> dict:
        return {
            "person_id": self.person_id,
            "active_days": self.active_days,
            "core_actions": self.core_actions,
            "pricing_views": self.pricing_views,
            "email_opens": self.email_opens,
            "email_clicks": self.email_clicks,
            "last_active_at": self.last_active_at.isoformat() if self.last_active_at else None,
        }
