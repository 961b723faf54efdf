"""
Meta Conversions API client.

Server-side events share their `event_id` with the browser pixel so Meta
collapses both into a single conversion.
"""

import hashlib
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import requests

from main_configs import GrowthConfigs

logger = logging.getLogger(__name__)

# Internal event taxonomy -> Meta standard events
META_STANDARD_EVENTS = {
    # Acquisition
    "landing_view": "PageView",
    "feature_preview": "ViewContent",
    # Activation
    "signup_complete": "CompleteRegistration",
    "login_success": "PageView",
    "activation_complete": "CompleteRegistration",
    # Core value
    "profile_created": "Lead",
    "date_request_sent": "InitiateCheckout",
    "date_request_approved": "AddToCart",
    # Monetization
    "checkout_started": "InitiateCheckout",
    "purchase_completed": "Purchase",
    "subscription_started": "Subscribe",
    "subscription_renewed": "Subscribe",
    # Retention
    "return_session": "PageView",
}

DEFAULT_META_EVENT = "CustomEvent"

# user_data key -> keyword argument of send_event
_HASHED_USER_FIELDS = (
    ("em", "email"),
    ("ph", "phone"),
    ("fn", "first_name"),
    ("ln", "last_name"),
    ("ct", "city"),
    ("st", "state"),
    ("zp", "zip"),
    ("country", "country"),
    ("external_id", "external_id"),
)


def hash_value(value: str) -> str:
    """Normalize (trim + lowercase) and SHA-256 a PII value."""
    return hashlib.sha256(value.strip().lower().encode("utf-8")).hexdigest()


def get_meta_standard_event(event_name: str) -> str:
    return META_STANDARD_EVENTS.get(event_name, DEFAULT_META_EVENT)


def build_user_data(
    client_ip: Optional[str] = None,
    client_user_agent: Optional[str] = None,
    fbp: Optional[str] = None,
    fbc: Optional[str] = None,
    **pii: Optional[str],
) -> Dict[str, Any]:
    user_data: Dict[str, Any] = {}
    for key, arg in _HASHED_USER_FIELDS:
        value = pii.get(arg)
        if value:
            user_data[key] = [hash_value(value)]

    # Browser identifiers are sent raw
    for key, value in (
        ("client_ip_address", client_ip),
        ("client_user_agent", client_user_agent),
        ("fbp", fbp),
        ("fbc", fbc),
    ):
        if value:
            user_data[key] = value
    return user_data


class MetaConversionsClient:
    def __init__(
        self,
        pixel_id: Optional[str] = None,
        access_token: Optional[str] = None,
        test_event_code: Optional[str] = None,
    ):
        self.pixel_id = pixel_id or GrowthConfigs.META_PIXEL_ID
        self.access_token = access_token or GrowthConfigs.META_CAPI_ACCESS_TOKEN
        self.test_event_code = test_event_code or GrowthConfigs.META_CAPI_TEST_CODE
        self.timeout = GrowthConfigs.HTTP_TIMEOUT_SECONDS

    @property
    def endpoint(self) -> str:
        return (
            f"{GrowthConfigs.META_GRAPH_API_URL}/{GrowthConfigs.META_GRAPH_API_VERSION}"
            f"/{self.pixel_id}/events"
        )

    def build_event(
        self,
        event_name: str,
        event_id: Optional[str] = None,
        event_time: Optional[datetime] = None,
        event_source_url: Optional[str] = None,
        action_source: str = "website",
        custom_data: Optional[Dict[str, Any]] = None,
        **user_fields: Optional[str],
    ) -> Dict[str, Any]:
        event_time = event_time or datetime.now(timezone.utc)
        if event_time.tzinfo is None:
            event_time = event_time.replace(tzinfo=timezone.utc)

        event: Dict[str, Any] = {
            "event_name": event_name,
            "event_time": int(event_time.timestamp()),
            "action_source": action_source,
            "user_data": build_user_data(**user_fields),
        }
        if event_id:
            event["event_id"] = event_id
        if event_source_url:
            event["event_source_url"] = event_source_url
        if custom_data:
            event["custom_data"] = custom_data
        return event

    def send_event(self, event_name: str, **kwargs: Any) -> Dict[str, Any]:
        """
        Send one server-side event.

        Returns {"status": "success", "response": ...} or
        {"status": "error", "message": ...}. Never raises for HTTP failures.
        """
        if not self.pixel_id or not self.access_token:
            logger.warning("Meta CAPI not configured: missing META_PIXEL_ID or META_CAPI_ACCESS_TOKEN")
            return {"status": "error", "channel": "meta_capi", "message": "Meta CAPI not configured"}

        event = self.build_event(event_name, **kwargs)
        body: Dict[str, Any] = {"data": [event], "access_token": self.access_token}
        if self.test_event_code:
            body["test_event_code"] = self.test_event_code

        try:
            resp = requests.post(self.endpoint, json=body, timeout=self.timeout)
            resp.raise_for_status()
            try:
                result = resp.json()
            except ValueError:
                result = {"status_code": resp.status_code, "text": resp.text}
        except requests.exceptions.RequestException as exc:
            logger.error("Meta CAPI request failed for %s: %s", event_name, exc)
            return {"status": "error", "channel": "meta_capi", "message": str(exc)}

        logger.info(
            "[Meta CAPI] Event sent: %s | event_id=%s | received=%s",
            event_name, event.get("event_id"), result.get("events_received"),
        )
        return {"status": "success", "channel": "meta_capi", "response": result}
