"""Repository for sent email messages and their engagement events."""

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from data_models.base import utcnow
from data_models.dbo_email import EmailEvent, EmailMessage
from data_models.growth_enums import EmailEventType


class EmailRepository:
    def __init__(self, session: Session):
        self.session = session

    def get_message(self, message_id: str) -> Optional[EmailMessage]:
        """Lookup by the email provider's message id."""
        stmt = select(EmailMessage).where(EmailMessage.message_id == message_id)
        return self.session.scalars(stmt).first()

    def create_message(
        self,
        message_id: str,
        person_id: Optional[str] = None,
        subject: Optional[str] = None,
        template: Optional[str] = None,
        tags: Optional[Dict[str, Any]] = None,
        sent_at: Optional[datetime] = None,
    ) -> EmailMessage:
        message = EmailMessage(
            message_id=message_id,
            person_id=person_id,
            subject=subject,
            template=template,
            tags=tags,
            sent_at=sent_at or utcnow(),
        )
        self.session.add(message)
        self.session.flush()
        return message

    def add_event(
        self,
        email_message_id: str,
        event_type: EmailEventType,
        link: Optional[str] = None,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> EmailEvent:
        email_event = EmailEvent(
            email_message_id=email_message_id,
            event_type=event_type,
            link=link,
            user_agent=user_agent,
            ip_address=ip_address,
            timestamp=timestamp or utcnow(),
        )
        self.session.add(email_event)
        self.session.flush()
        return email_event

    def count_events_for_person(self, person_id: str, event_type: EmailEventType) -> int:
        stmt = (
            select(func.count(EmailEvent.id))
            .join(EmailMessage, EmailEvent.email_message_id == EmailMessage.id)
            .where(
                EmailMessage.person_id == person_id,
                EmailEvent.event_type == event_type,
            )
        )
        return self.session.scalar(stmt) or 0
