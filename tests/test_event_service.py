from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from activation_channels.meta_capi import MetaConversionsClient, hash_value
from data_models.growth_enums import EventSource, IdentityProvider
from data_models.growth_events import AdEvent, WebEvent, parse_event_payload
from data_services.event_service import EventService
from data_services.identity_service import IdentityService


class StubCapi:
    def __init__(self, result=None, error=None):
        self.result = result or {"status": "success"}
        self.error = error
        self.calls = []

    def send_event(self, event_name, **kwargs):
        self.calls.append((event_name, kwargs))
        if self.error:
            raise self.error
        return self.result


def test_parse_event_payload_picks_variant():
    event = parse_event_payload({"source": "web", "event_name": "landing_view", "properties": None})
    assert isinstance(event, WebEvent)
    assert event.properties == {}

    with pytest.raises(ValidationError):
        parse_event_payload({"source": "app", "event_name": "login_success"})  # user_id required

    with pytest.raises(ValidationError):
        parse_event_payload({"source": "carrier_pigeon", "event_name": "x"})


def test_app_event_resolves_through_link(session, make_person):
    person = make_person(email="app@example.com", user_id="u-1")

    event = EventService(session).track_app_event("profile_created", user_id="u-1")

    assert event.person_id == person.id
    assert event.source == EventSource.APP


def test_unresolvable_event_is_stored_without_person(session):
    events = EventService(session)

    app_event = events.track_app_event("profile_created", user_id="ghost")
    payment_event = events.track_payment_event("payment_completed", stripe_customer_id="cus_unknown")

    assert app_event.person_id is None
    assert payment_event.person_id is None
    assert app_event.id is not None


def test_email_event_creates_person(session):
    event = EventService(session).track_email_event("newsletter_signup", email="New@Example.com")

    person = IdentityService(session).get_person(event.person_id)
    assert person.email == "new@example.com"


def test_payment_and_booking_resolution(session, make_person):
    person = make_person(email="pay@example.com", user_id="u-2")
    IdentityService(session).link_identity(person.id, IdentityProvider.PAYMENT, "cus_2")

    events = EventService(session)
    assert events.track_payment_event("payment_completed", stripe_customer_id="cus_2").person_id == person.id
    assert events.track_booking_event("date_confirmed", user_id="u-2").person_id == person.id


def test_web_event_keeps_utm_under_its_own_key(session, make_person):
    person = make_person(email="web@example.com")

    event = EventService(session).track_web_event(
        "landing_view",
        person_id=person.id,
        properties={"path": "/pricing"},
        utm_params={"source": "google", "campaign": "spring", "medium": None},
    )

    assert event.person_id == person.id
    assert event.properties == {"path": "/pricing", "utm": {"source": "google", "campaign": "spring"}}


def test_explicit_timestamp_is_kept(session):
    ts = datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc)
    event = EventService(session).ingest_event(
        {"source": "web", "event_name": "landing_view", "timestamp": ts.isoformat()}
    )
    assert event.timestamp == ts


def test_ad_event_with_event_id_is_forwarded(session, make_person):
    person = make_person(email="ad@example.com")
    IdentityService(session).link_identity(person.id, IdentityProvider.AD, "ext-1")
    capi = StubCapi()

    event = EventService(session, capi_client=capi).track_ad_event(
        "purchase_completed",
        event_id="evt-1",
        external_id="ext-1",
        email="ad@example.com",
        fbp="fb.1.123",
        properties={"value": 30},
    )

    assert event.person_id == person.id
    assert len(capi.calls) == 1
    name, kwargs = capi.calls[0]
    assert name == "Purchase"
    assert kwargs["event_id"] == "evt-1"
    assert kwargs["fbp"] == "fb.1.123"
    assert kwargs["custom_data"] == {"value": 30}


def test_ad_event_without_event_id_is_not_forwarded(session):
    capi = StubCapi()
    EventService(session, capi_client=capi).track_ad_event("landing_view")
    assert capi.calls == []


def test_forwarding_failure_never_fails_ingestion(session):
    capi = StubCapi(error=RuntimeError("graph api down"))

    event = EventService(session, capi_client=capi).ingest_event(
        AdEvent(event_name="signup_complete", event_id="evt-2")
    )

    assert event.id is not None
    assert len(capi.calls) == 1


def test_unconfigured_capi_client_is_a_noop(session, http):
    event = EventService(session, capi_client=MetaConversionsClient()).track_ad_event(
        "signup_complete", event_id="evt-3"
    )
    assert event.id is not None
    assert http.calls == []


def test_capi_payload_hashes_pii(http):
    client = MetaConversionsClient(pixel_id="px1", access_token="tok")

    result = client.send_event(
        "Purchase",
        event_id="evt-9",
        email=" Buyer@Example.com ",
        fbp="fb.1.1",
        client_ip="1.2.3.4",
    )

    assert result["status"] == "success"
    call = http.calls[0]
    assert call["url"].endswith("/px1/events")
    body = call["json"]
    assert body["access_token"] == "tok"
    sent = body["data"][0]
    assert sent["event_id"] == "evt-9"
    assert sent["user_data"]["em"] == [hash_value("buyer@example.com")]
    assert sent["user_data"]["fbp"] == "fb.1.1"
    assert sent["user_data"]["client_ip_address"] == "1.2.3.4"


def test_get_person_events_newest_first(session, make_person):
    person = make_person(email="reader@example.com")
    events = EventService(session)
    for day in (1, 3, 2):
        events.track_web_event(
            f"view_{day}", person_id=person.id, timestamp=datetime(2024, 1, day, tzinfo=timezone.utc)
        )
    session.commit()

    names = [e.event_name for e in events.get_person_events(person.id)]
    assert names == ["view_3", "view_2", "view_1"]
    assert len(events.get_person_events(person.id, limit=2)) == 2

    ranged = events.get_person_events_by_date_range(
        person.id,
        datetime(2024, 1, 2, tzinfo=timezone.utc),
        datetime(2024, 1, 3, 23, tzinfo=timezone.utc),
    )
    assert [e.event_name for e in ranged] == ["view_2", "view_3"]


def test_timestamps_are_normalized_to_utc():
    shifted = WebEvent(event_name="landing_view", timestamp="2024-01-01T23:30:00-05:00")
    naive = WebEvent(event_name="landing_view", timestamp=datetime(2024, 1, 2, 4, 30))

    assert shifted.timestamp == datetime(2024, 1, 2, 4, 30, tzinfo=timezone.utc)
    assert shifted.timestamp.utcoffset().total_seconds() == 0
    assert naive.timestamp.tzinfo is timezone.utc
    assert WebEvent(event_name="landing_view").timestamp is None
