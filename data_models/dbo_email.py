"""Data models for sent emails and their engagement log."""

from datetime import datetime
from typing import Any

from sqlalchemy import String, ForeignKey, Text, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, new_uuid, utcnow
from .growth_enums import EmailEventType, enum_column


class EmailMessage(Base):
    __tablename__ = "email_message"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    person_id: Mapped[str | None] = mapped_column(
        ForeignKey("person.id", ondelete="SET NULL")
    )
    # Email provider message id
    message_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    subject: Mapped[str | None] = mapped_column(String(500))
    template: Mapped[str | None] = mapped_column(String(255))
    tags: Mapped[dict[str, Any] | None]
    sent_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    events: Mapped[list["EmailEvent"]] = relationship(
        back_populates="email_message", cascade="all, delete-orphan"
    )


class EmailEvent(Base):
    __tablename__ = "email_event"
    __table_args__ = (
        Index("idx_email_event_message_type", "email_message_id", "event_type"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    email_message_id: Mapped[str] = mapped_column(
        ForeignKey("email_message.id", ondelete="CASCADE"), nullable=False
    )
    event_type: Mapped[EmailEventType] = mapped_column(
        enum_column(EmailEventType, "email_event_type"), nullable=False
    )
    link: Mapped[str | None] = mapped_column(String(1000))
    user_agent: Mapped[str | None] = mapped_column(Text)
    ip_address: Mapped[str | None] = mapped_column(String(45))
    timestamp: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    email_message: Mapped[EmailMessage] = relationship(back_populates="events")
