"""Data model for the append-only event log."""

from datetime import datetime
from typing import Any

from sqlalchemy import String, ForeignKey, Text, Index
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, new_uuid, utcnow
from .growth_enums import EventSource, enum_column


class Event(Base):
    """
    Immutable fact about a person's (or an anonymous actor's) activity.
    Rows are inserted once and never updated. person_id stays NULL when the
    sender could not be resolved, so the event can be joined later.
    """

    __tablename__ = "event"
    __table_args__ = (
        Index("idx_event_person_time", "person_id", "timestamp"),
        Index("idx_event_name", "event_name"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    person_id: Mapped[str | None] = mapped_column(
        ForeignKey("person.id", ondelete="SET NULL")
    )

    event_name: Mapped[str] = mapped_column(String(255), nullable=False)
    source: Mapped[EventSource] = mapped_column(
        enum_column(EventSource, "event_source"), nullable=False
    )
    properties: Mapped[dict[str, Any]] = mapped_column(default=dict)
    timestamp: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    session_id: Mapped[str | None] = mapped_column(String(255))
    device_id: Mapped[str | None] = mapped_column(String(255))
    user_agent: Mapped[str | None] = mapped_column(Text)
    ip_address: Mapped[str | None] = mapped_column(String(45))

    # Shared with the browser pixel so the ad platform can deduplicate
    event_id: Mapped[str | None] = mapped_column(String(255))
