import json

import pytest
from fastapi.testclient import TestClient

from api.app_factory import create_app
from data_services.email_webhook_service import EmailWebhookService
from data_utils.signatures import signature_headers
from main_configs import GrowthConfigs


@pytest.fixture
def client(engine, monkeypatch):
    monkeypatch.setattr("api.handlers.GROWTH_API_KEY", None)
    return TestClient(create_app())


def test_ping(client):
    assert client.get("/ping").json() == {"status": "ok"}


def test_api_key_is_enforced(engine, monkeypatch):
    monkeypatch.setattr("api.handlers.GROWTH_API_KEY", "secret-key")
    client = TestClient(create_app())

    assert client.get("/growth/segments").status_code == 401
    assert client.get("/growth/segments", headers={"x-api-key": "secret-key"}).status_code == 200


def test_identify_then_track_app_event(client):
    identified = client.post(
        "/growth/identity/identify",
        json={"user_id": "u-1", "email": "api@example.com", "traits": {"role": "host"}},
    )
    assert identified.status_code == 200
    person_id = identified.json()["person"]["id"]
    assert identified.json()["identities"]["app"]["external_id"] == "u-1"

    tracked = client.post(
        "/growth/events/track",
        json={"source": "app", "event_name": "profile_created", "user_id": "u-1"},
        headers={"user-agent": "pytest-agent"},
    )
    body = tracked.json()
    assert tracked.status_code == 200
    assert body["success"] is True
    assert body["person_id"] == person_id
    assert body["features"]["core_actions"] == 1

    events = client.get(f"/growth/events/{person_id}").json()
    assert [e["event_name"] for e in events] == ["profile_created"]
    assert events[0]["source"] == "app"


def test_track_rejects_invalid_payload(client):
    response = client.post("/growth/events/track", json={"source": "app", "event_name": "x"})
    assert response.status_code == 400


def test_link_identity_routes(client):
    person_id = client.post(
        "/growth/identity/identify", json={"user_id": "u-2", "email": "link@example.com"}
    ).json()["person"]["id"]

    linked = client.post(
        "/growth/identity/link",
        json={"person_id": person_id, "provider": "payment", "external_id": "cus_2"},
    )
    assert linked.json() == {"result": "Linked", "person_id": person_id}

    missing = client.post(
        "/growth/identity/link", json={"person_id": "nope", "provider": "payment", "external_id": "cus_3"}
    )
    assert missing.status_code == 404

    identities = client.get(f"/growth/identity/{person_id}").json()["identities"]
    assert set(identities) == {"app", "payment"}
    assert client.get("/growth/identity/nope").status_code == 404


def test_segment_lifecycle(client):
    created = client.post(
        "/growth/segments",
        json={
            "name": "Engaged",
            "criteria": {"features": {"coreActions": {"min": 1}}},
            "automation_config": {"webhook": {"url": "https://hooks.example.com/engaged"}},
        },
    )
    assert created.status_code == 201
    segment_id = created.json()["id"]

    assert client.post("/growth/segments", json={"name": "Bad", "criteria": {"clauses": [{"kind": "?"}]}}).status_code == 400

    person_id = client.post(
        "/growth/identity/identify", json={"user_id": "u-3", "email": "seg@example.com"}
    ).json()["person"]["id"]
    client.post("/growth/features/compute", json={"person_id": person_id})
    assert client.post("/growth/segments/evaluate", json={"person_id": person_id}).json()["entered"] == []

    patched = client.patch(f"/growth/segments/{segment_id}", json={"criteria": {}, "automation_config": {}})
    assert patched.status_code == 200
    assert patched.json()["criteria"] == {"clauses": []}

    evaluation = client.post("/growth/segments/evaluate", json={"person_id": person_id}).json()
    assert evaluation["entered"] == [segment_id]

    detail = client.get(f"/growth/segments/{segment_id}").json()
    assert detail["stored_member_count"] == 1
    assert client.get(f"/growth/segments/{segment_id}/stats").json()["member_count"] == 1
    members = client.get(f"/growth/segments/{segment_id}/members").json()
    assert [m["person_id"] for m in members] == [person_id]
    assert client.get("/growth/segments/nope").status_code == 404
    assert client.patch("/growth/segments/nope", json={"name": "x"}).status_code == 404


def test_batch_evaluate_and_compute(client):
    for i in range(3):
        client.post("/growth/identity/identify", json={"user_id": f"b-{i}", "email": f"b{i}@example.com"})
    client.post("/growth/segments", json={"name": "Everyone", "criteria": {}})

    report = client.post("/growth/segments/evaluate", json={"batch_all": True}).json()
    assert report == {"total": 3, "succeeded": 3, "failed": {}}

    assert client.post("/growth/features/compute", json={}).status_code == 400
    recent = client.post("/growth/features/compute", json={"recent_activity": True}).json()
    assert recent["total"] == 0


def test_email_webhook_flow(client, session, make_person, monkeypatch):
    person = make_person(email="hook@example.com")
    EmailWebhookService(session).record_sent_message("re_1", person_id=person.id)
    session.commit()

    body = json.dumps({"type": "email.opened", "data": {"email_id": "re_1"}}).encode()
    monkeypatch.setattr(GrowthConfigs, "RESEND_WEBHOOK_SECRET", "whsec")

    rejected = client.post("/growth/webhooks/email", content=body)
    assert rejected.status_code == 401

    accepted = client.post("/growth/webhooks/email", content=body, headers=signature_headers("whsec", body))
    assert accepted.status_code == 200
    assert accepted.json() == {
        "received": True,
        "status": "processed",
        "type": "email.opened",
        "person_id": person.id,
    }


def test_email_webhook_invalid_json(client):
    response = client.post("/growth/webhooks/email", content=b"not json")
    assert response.status_code == 400


def test_record_sent_email(client):
    response = client.post("/growth/emails/sent", json={"message_id": "re_9", "email": "nobody@example.com"})
    assert response.status_code == 201
    assert response.json()["person_id"] is None


def test_subscription_snapshots_drive_segments(client):
    person_id = client.post(
        "/growth/identity/identify", json={"user_id": "u-9", "email": "payer@example.com"}
    ).json()["person"]["id"]
    segment_id = client.post(
        "/growth/segments",
        json={"name": "Paying", "criteria": {"subscription": {"status": ["active"], "mrrMin": 1000}}},
    ).json()["id"]

    started = client.post(
        "/growth/subscriptions",
        json={
            "stripe_subscription_id": "sub_1",
            "stripe_customer_id": "cus_9",
            "status": "active",
            "plan_name": "pro",
            "mrr": 2900,
            "person_id": person_id,
        },
    )
    assert started.status_code == 200
    assert started.json()["person_id"] == person_id
    assert started.json()["segments"]["entered"] == [segment_id]

    identities = client.get(f"/growth/identity/{person_id}").json()["identities"]
    assert identities["payment"]["external_id"] == "cus_9"

    # Later deliveries resolve the person through the payment link alone
    canceled = client.post(
        "/growth/subscriptions",
        json={"stripe_subscription_id": "sub_1", "stripe_customer_id": "cus_9", "status": "canceled"},
    )
    assert canceled.json()["status"] == "canceled"
    assert canceled.json()["segments"]["exited"] == [segment_id]
    assert client.get(f"/growth/segments/{segment_id}/members").json() == []


def test_subscription_for_unknown_customer_is_rejected(client):
    unknown = client.post(
        "/growth/subscriptions",
        json={"stripe_subscription_id": "sub_x", "stripe_customer_id": "cus_x", "status": "active"},
    )
    assert unknown.status_code == 404

    invalid = client.post(
        "/growth/subscriptions",
        json={"stripe_subscription_id": "sub_y", "stripe_customer_id": "cus_y", "status": "sleeping"},
    )
    assert invalid.status_code == 422
