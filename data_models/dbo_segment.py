"""Data models for segment definitions and their last known membership."""

from datetime import datetime
from typing import Any

from sqlalchemy import String, ForeignKey, Boolean, Text, UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin, new_uuid, utcnow


class Segment(Base, TimestampMixin):
    __tablename__ = "segment"
    __table_args__ = (
        Index("idx_segment_active", "is_active"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)

    # Serialized SegmentCriteria / AutomationConfig (see segment_criteria.py)
    criteria: Mapped[dict[str, Any]] = mapped_column(nullable=False)
    automation_config: Mapped[dict[str, Any] | None]

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class SegmentMembership(Base):
    """
    Last evaluated membership of a person in a segment. Used only to detect
    enter/exit transitions; the criteria stay the source of truth.
    """

    __tablename__ = "segment_membership"
    __table_args__ = (
        UniqueConstraint("segment_id", "person_id", name="uq_segment_membership_segment_person"),
        Index("idx_segment_membership_person", "person_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    segment_id: Mapped[str] = mapped_column(
        ForeignKey("segment.id", ondelete="CASCADE"), nullable=False
    )
    person_id: Mapped[str] = mapped_column(
        ForeignKey("person.id", ondelete="CASCADE"), nullable=False
    )
    entered_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
