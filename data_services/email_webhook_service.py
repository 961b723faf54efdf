"""Email engagement ingestion (Resend webhooks) and sent-message bookkeeping."""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from data_models.dbo_email import EmailMessage
from data_models.growth_enums import EmailEventType
from data_services.features_service import FeaturesService
from data_workers.email_repository import EmailRepository
from data_workers.person_repository import PersonRepository

logger = logging.getLogger(__name__)

# Provider event type -> stored EmailEvent type
WEBHOOK_EVENT_TYPES = {
    "email.delivered": EmailEventType.DELIVERED,
    "email.opened": EmailEventType.OPENED,
    "email.clicked": EmailEventType.CLICKED,
    "email.bounced": EmailEventType.BOUNCED,
    "email.complained": EmailEventType.COMPLAINED,
}

# Engagement types that bump a PersonFeatures counter
FEATURE_COUNTERS = {
    EmailEventType.OPENED: "email_opens",
    EmailEventType.CLICKED: "email_clicks",
}


class EmailWebhookService:
    def __init__(self, session: Session):
        self.session = session
        self.emails = EmailRepository(session)
        self.persons = PersonRepository(session)
        self.features = FeaturesService(session)

    def record_sent_message(
        self,
        message_id: str,
        person_id: Optional[str] = None,
        email: Optional[str] = None,
        subject: Optional[str] = None,
        template: Optional[str] = None,
        tags: Optional[Dict[str, Any]] = None,
        sent_at: Optional[datetime] = None,
    ) -> EmailMessage:
        """Track an outbound message so later engagement can be attributed."""
        existing = self.emails.get_message(message_id)
        if existing is not None:
            return existing

        if person_id is None and email:
            person = self.persons.get_by_email(email)
            person_id = person.id if person else None

        return self.emails.create_message(
            message_id=message_id,
            person_id=person_id,
            subject=subject,
            template=template,
            tags=tags,
            sent_at=sent_at,
        )

    def handle_webhook(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        event_type = payload.get("type")
        data = payload.get("data") or {}

        mapped = WEBHOOK_EVENT_TYPES.get(event_type)
        if mapped is None:
            logger.info("Unhandled email webhook event type: %s", event_type)
            return {"status": "ignored", "reason": "unhandled_type", "type": event_type}

        message_id = data.get("email_id")
        message = self.emails.get_message(message_id) if message_id else None
        if message is None:
            # Not every sent email is tracked
            logger.warning("Email message not found for provider id: %s", message_id)
            return {"status": "ignored", "reason": "unknown_message", "type": event_type}

        link = None
        if mapped == EmailEventType.CLICKED:
            link = data.get("link") or (data.get("click") or {}).get("link")

        self.emails.add_event(
            email_message_id=message.id,
            event_type=mapped,
            link=link,
            user_agent=data.get("user_agent"),
            ip_address=data.get("ip_address"),
        )

        counter = FEATURE_COUNTERS.get(mapped)
        if counter and message.person_id:
            self.features.increment_feature(message.person_id, counter)

        logger.info("Stored %s event for email %s", mapped.value, message_id)
        return {"status": "processed", "type": event_type, "person_id": message.person_id}
