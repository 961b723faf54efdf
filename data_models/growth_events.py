"""
Typed payloads for incoming events.

Every source carries its own identifying fields; `source` is the
discriminator. `properties` is the free-form escape hatch for event-specific
data that has no schema yet.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from typing_extensions import Annotated

from .growth_enums import EventSource, SubscriptionStatus

# Key under which campaign attribution is merged into Event.properties
UTM_PROPERTY_KEY = "utm"


def to_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Naive client timestamps are taken as UTC."""
    if value is None:
        return value
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class UtmParams(BaseModel):
    model_config = ConfigDict(extra="ignore")

    source: Optional[str] = None
    medium: Optional[str] = None
    campaign: Optional[str] = None
    term: Optional[str] = None
    content: Optional[str] = None

    def compact(self) -> Dict[str, str]:
        return self.model_dump(exclude_none=True)


class BaseEventPayload(BaseModel):
    event_name: str = Field(..., min_length=1)
    properties: Dict[str, Any] = Field(default_factory=dict)
    timestamp: Optional[datetime] = None

    session_id: Optional[str] = None
    device_id: Optional[str] = None
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None

    # Dedup id shared with the client-side pixel
    event_id: Optional[str] = None

    @field_validator("properties", mode="before")
    @classmethod
    def none_properties_to_empty(cls, v):
        return v or {}

    @field_validator("timestamp")
    @classmethod
    def timestamp_to_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_utc(v)

    @property
    def event_source(self) -> EventSource:
        return EventSource(getattr(self, "source"))


# =====================================================
# SOURCE VARIANTS
# =====================================================

class WebEvent(BaseEventPayload):
    source: Literal["web"] = "web"
    person_id: Optional[str] = None
    anonymous_id: Optional[str] = None
    utm_params: Optional[UtmParams] = None


class AppEvent(BaseEventPayload):
    source: Literal["app"] = "app"
    user_id: str


class EmailChannelEvent(BaseEventPayload):
    source: Literal["email"] = "email"
    email: EmailStr
    message_id: Optional[str] = None


class PaymentEvent(BaseEventPayload):
    source: Literal["payment"] = "payment"
    stripe_customer_id: str
    stripe_event_id: Optional[str] = None


class BookingEvent(BaseEventPayload):
    source: Literal["booking"] = "booking"
    user_id: str
    request_id: Optional[str] = None


class AdEvent(BaseEventPayload):
    source: Literal["ad"] = "ad"
    fbp: Optional[str] = None  # browser id cookie
    fbc: Optional[str] = None  # click id cookie
    external_id: Optional[str] = None  # hashed identifier
    email: Optional[str] = None
    phone: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    country: Optional[str] = None
    event_source_url: Optional[str] = None


EventPayload = Annotated[
    Union[WebEvent, AppEvent, EmailChannelEvent, PaymentEvent, BookingEvent, AdEvent],
    Field(discriminator="source"),
]


class TrackEventRequest(BaseModel):
    """Envelope used to parse a raw dict into the right variant."""

    event: EventPayload


def parse_event_payload(data: Dict[str, Any]) -> BaseEventPayload:
    return TrackEventRequest.model_validate({"event": data}).event


# =====================================================
# SUBSCRIPTION SNAPSHOTS
# =====================================================

class SubscriptionSnapshot(BaseModel):
    """
    Latest state of one payment-system subscription. The person is found
    through the payment customer link; `person_id` creates that link when
    it does not exist yet.
    """

    stripe_subscription_id: str = Field(..., min_length=1)
    stripe_customer_id: str = Field(..., min_length=1)
    status: SubscriptionStatus
    person_id: Optional[str] = None
    plan_name: Optional[str] = None
    plan_interval: Optional[str] = None
    mrr: Optional[int] = Field(default=None, ge=0)
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False
    metadata: Optional[Dict[str, Any]] = None

    @field_validator("current_period_start", "current_period_end")
    @classmethod
    def period_to_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_utc(v)
