"""
Event ingestion: resolve the sender to a person, persist the event, and
forward ad-channel events to the Meta Conversions API.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from sqlalchemy.orm import Session

from activation_channels.meta_capi import MetaConversionsClient, get_meta_standard_event
from data_models.dbo_event import Event
from data_models.growth_enums import IdentityProvider
from data_models.growth_events import (
    UTM_PROPERTY_KEY,
    AdEvent,
    AppEvent,
    BaseEventPayload,
    BookingEvent,
    EmailChannelEvent,
    PaymentEvent,
    WebEvent,
    parse_event_payload,
)
from data_services.identity_service import IdentityService
from data_workers.event_repository import EventRepository

logger = logging.getLogger(__name__)


class EventService:
    def __init__(
        self,
        session: Session,
        identity: Optional[IdentityService] = None,
        capi_client: Optional[MetaConversionsClient] = None,
    ):
        self.session = session
        self.identity = identity or IdentityService(session)
        self.events = EventRepository(session)
        self.capi_client = capi_client or MetaConversionsClient()

    def resolve_person_id(self, payload: BaseEventPayload) -> Optional[str]:
        if isinstance(payload, (AppEvent, BookingEvent)):
            return self.identity.resolve_person_from_external_id(IdentityProvider.APP, payload.user_id)

        if isinstance(payload, EmailChannelEvent):
            return self.identity.get_or_create_person(email=payload.email).id

        if isinstance(payload, PaymentEvent):
            return self.identity.resolve_person_from_external_id(
                IdentityProvider.PAYMENT, payload.stripe_customer_id
            )

        if isinstance(payload, AdEvent):
            return self.identity.resolve_person_from_external_id(IdentityProvider.AD, payload.external_id)

        if isinstance(payload, WebEvent):
            return payload.person_id

        return None

    def ingest_event(self, payload: Union[BaseEventPayload, Dict[str, Any]]) -> Event:
        """
        Persist one event. Unresolvable senders are stored with a NULL
        person_id. Returns once the row is flushed; ad forwarding failures
        never fail ingestion.
        """
        if isinstance(payload, dict):
            payload = parse_event_payload(payload)

        person_id = self.resolve_person_id(payload)

        properties = dict(payload.properties)
        if isinstance(payload, WebEvent) and payload.utm_params:
            properties[UTM_PROPERTY_KEY] = payload.utm_params.compact()

        event = self.events.insert(
            event_name=payload.event_name,
            source=payload.event_source,
            person_id=person_id,
            properties=properties,
            timestamp=payload.timestamp,
            session_id=payload.session_id,
            device_id=payload.device_id,
            user_agent=payload.user_agent,
            ip_address=payload.ip_address,
            event_id=payload.event_id,
        )
        logger.debug(
            "Ingested %s event %s for person %s", payload.event_source.value, payload.event_name, person_id
        )

        if isinstance(payload, AdEvent) and payload.event_id:
            self._forward_to_capi(payload, properties)

        return event

    def _forward_to_capi(self, payload: AdEvent, properties: Dict[str, Any]) -> None:
        try:
            result = self.capi_client.send_event(
                get_meta_standard_event(payload.event_name),
                event_id=payload.event_id,
                event_time=payload.timestamp,
                event_source_url=payload.event_source_url,
                email=payload.email,
                phone=payload.phone,
                first_name=payload.first_name,
                last_name=payload.last_name,
                city=payload.city,
                state=payload.state,
                zip=payload.zip,
                country=payload.country,
                external_id=payload.external_id,
                fbp=payload.fbp,
                fbc=payload.fbc,
                client_ip=payload.ip_address,
                client_user_agent=payload.user_agent,
                custom_data=properties,
            )
        except Exception:
            logger.exception("Failed to send Meta CAPI event %s", payload.event_id)
            return

        if result.get("status") != "success":
            logger.error("Meta CAPI rejected event %s: %s", payload.event_id, result.get("message"))

    # =========================================================================
    # Convenience wrappers
    # =========================================================================
    def track_web_event(self, event_name: str, **fields: Any) -> Event:
        return self.ingest_event(WebEvent(event_name=event_name, **fields))

    def track_app_event(self, event_name: str, user_id: str, **fields: Any) -> Event:
        return self.ingest_event(AppEvent(event_name=event_name, user_id=user_id, **fields))

    def track_email_event(self, event_name: str, email: str, **fields: Any) -> Event:
        return self.ingest_event(EmailChannelEvent(event_name=event_name, email=email, **fields))

    def track_payment_event(self, event_name: str, stripe_customer_id: str, **fields: Any) -> Event:
        return self.ingest_event(
            PaymentEvent(event_name=event_name, stripe_customer_id=stripe_customer_id, **fields)
        )

    def track_booking_event(self, event_name: str, user_id: str, **fields: Any) -> Event:
        return self.ingest_event(BookingEvent(event_name=event_name, user_id=user_id, **fields))

    def track_ad_event(self, event_name: str, **fields: Any) -> Event:
        return self.ingest_event(AdEvent(event_name=event_name, **fields))

    # =========================================================================
    # Reads
    # =========================================================================
    def get_person_events(self, person_id: str, limit: int = 100) -> List[Event]:
        return self.events.list_for_person(person_id, limit=limit)

    def get_person_events_by_date_range(
        self, person_id: str, start: datetime, end: datetime
    ) -> List[Event]:
        return self.events.list_for_person_between(person_id, start, end)
