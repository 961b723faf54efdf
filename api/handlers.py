"""
API Route Handlers for the Growth Data Plane.
"""

import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Header, HTTPException, Query, Request
from pydantic import BaseModel, Field, ValidationError
from sqlalchemy.orm import Session

from data_models.dbo_event import Event
from data_models.dbo_person import Person
from data_models.dbo_segment import Segment
from data_models.growth_enums import IdentityProvider
from data_models.growth_events import SubscriptionSnapshot, parse_event_payload
from data_models.identity_models import ConflictWithOtherPerson, IdentifyPayload, LinkResult
from data_services.email_webhook_service import EmailWebhookService
from data_services.errors import PersonNotResolved, WebhookSignatureError
from data_services.event_service import EventService
from data_services.features_service import FeaturesService
from data_services.growth_pipeline import GrowthPipeline
from data_services.identity_service import IdentityService
from data_services.segment_engine import SegmentEngine
from data_utils.db_factory import get_db_context
from data_utils.signatures import SIGNATURE_HEADER, TIMESTAMP_HEADER, verify_signature
from data_workers import growth_jobs
from main_configs import GROWTH_API_KEY, GrowthConfigs

logger = logging.getLogger("Growth Data Plane API")


# --- Database Dependency ---
def get_db():
    with get_db_context() as session:
        yield session


def require_api_key(x_api_key: Optional[str] = Header(None)):
    if GROWTH_API_KEY and x_api_key != GROWTH_API_KEY:
        raise HTTPException(status_code=401, detail="Invalid API key")


# ============================================================
# Data Models (Schemas)
# ============================================================

class LinkIdentityRequest(BaseModel):
    person_id: str
    provider: IdentityProvider
    external_id: str = Field(..., min_length=1)
    metadata: Optional[Dict[str, Any]] = None

class ComputeFeaturesRequest(BaseModel):
    person_id: Optional[str] = None
    person_ids: Optional[List[str]] = None
    recent_activity: bool = False
    days_back: int = Field(7, gt=0)

class SegmentCreateRequest(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    criteria: Dict[str, Any] = Field(default_factory=dict)
    automation_config: Optional[Dict[str, Any]] = None
    is_active: bool = True

class SegmentUpdateRequest(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    criteria: Optional[Dict[str, Any]] = None
    automation_config: Optional[Dict[str, Any]] = None
    is_active: Optional[bool] = None

class EvaluateSegmentsRequest(BaseModel):
    person_id: Optional[str] = None
    person_ids: Optional[List[str]] = None
    batch_all: bool = False

class SentEmailRequest(BaseModel):
    message_id: str = Field(..., min_length=1)
    person_id: Optional[str] = None
    email: Optional[str] = None
    subject: Optional[str] = None
    template: Optional[str] = None
    tags: Optional[Dict[str, Any]] = None


# ============================================================
# Serializers
# ============================================================

def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def event_to_dict(event: Event) -> Dict[str, Any]:
    return {
        "id": event.id,
        "person_id": event.person_id,
        "event_name": event.event_name,
        "source": event.source.value,
        "properties": event.properties,
        "timestamp": _iso(event.timestamp),
        "session_id": event.session_id,
        "event_id": event.event_id,
    }


def person_to_dict(person: Person) -> Dict[str, Any]:
    return {
        "id": person.id,
        "email": person.email,
        "phone": person.phone,
        "name": person.name,
        "traits": person.traits,
        "created_at": _iso(person.created_at),
    }


def segment_to_dict(segment: Segment) -> Dict[str, Any]:
    return {
        "id": segment.id,
        "name": segment.name,
        "description": segment.description,
        "criteria": segment.criteria,
        "automation_config": segment.automation_config,
        "is_active": segment.is_active,
    }


def link_result_to_dict(result: LinkResult) -> Dict[str, Any]:
    body = {"result": type(result).__name__, "person_id": result.person_id}
    if isinstance(result, ConflictWithOtherPerson):
        body["requested_person_id"] = result.requested_person_id
    return body


# ============================================================
# Router Setup
# ============================================================

def create_api_router() -> APIRouter:
    router = APIRouter(prefix="/growth")
    protected = APIRouter(dependencies=[Depends(require_api_key)])

    # --------------------------------------------------------
    # 1. Events
    # --------------------------------------------------------
    @protected.post("/events/track")
    def track_event(request: Request, body: Dict[str, Any] = Body(...), session: Session = Depends(get_db)):
        try:
            payload = parse_event_payload(body)
        except ValidationError as e:
            raise HTTPException(status_code=400, detail=json.loads(e.json()))

        # Fall back to request metadata when the producer did not send it
        payload.user_agent = payload.user_agent or request.headers.get("user-agent")
        payload.ip_address = (
            payload.ip_address
            or request.headers.get("x-forwarded-for")
            or request.headers.get("x-real-ip")
        )
        result = GrowthPipeline(session).handle_event(payload)
        return {"success": True, **result.to_dict()}

    @protected.get("/events/{person_id}")
    def list_person_events(
        person_id: str,
        limit: int = Query(100, gt=0, le=1000),
        session: Session = Depends(get_db),
    ):
        events = EventService(session).get_person_events(person_id, limit=limit)
        return [event_to_dict(e) for e in events]

    # --------------------------------------------------------
    # 2. Identity
    # --------------------------------------------------------
    @protected.post("/identity/identify")
    def identify(payload: IdentifyPayload, session: Session = Depends(get_db)):
        identity = IdentityService(session)
        person = identity.identify_user(payload)
        return {
            "person": person_to_dict(person),
            "identities": identity.get_person_identities(person.id),
        }

    @protected.post("/identity/link")
    def link_identity(payload: LinkIdentityRequest, session: Session = Depends(get_db)):
        identity = IdentityService(session)
        if identity.get_person(payload.person_id) is None:
            raise HTTPException(status_code=404, detail="Person not found")
        result = identity.link_identity(
            payload.person_id, payload.provider, payload.external_id, payload.metadata
        )
        return link_result_to_dict(result)

    @protected.get("/identity/{person_id}")
    def get_identities(person_id: str, session: Session = Depends(get_db)):
        identity = IdentityService(session)
        person = identity.get_person(person_id)
        if person is None:
            raise HTTPException(status_code=404, detail="Person not found")
        return {
            "person": person_to_dict(person),
            "identities": identity.get_person_identities(person_id),
        }

    # --------------------------------------------------------
    # 3. Features
    # --------------------------------------------------------
    @protected.post("/features/compute")
    def compute_features(payload: ComputeFeaturesRequest, session: Session = Depends(get_db)):
        features = FeaturesService(session)
        if payload.person_id:
            return features.compute_person_features(payload.person_id).as_dict()
        if payload.person_ids:
            return features.batch_compute_person_features(payload.person_ids).to_dict()
        if payload.recent_activity:
            return features.compute_features_for_recent_activity(payload.days_back).to_dict()
        raise HTTPException(status_code=400, detail="Provide person_id, person_ids or recent_activity")

    # --------------------------------------------------------
    # 4. Segments
    # --------------------------------------------------------
    @protected.get("/segments")
    def list_segments(active_only: bool = False, session: Session = Depends(get_db)):
        return [segment_to_dict(s) for s in SegmentEngine(session).list_segments(active_only=active_only)]

    @protected.post("/segments", status_code=201)
    def create_segment(payload: SegmentCreateRequest, session: Session = Depends(get_db)):
        try:
            segment = SegmentEngine(session).create_segment(**payload.model_dump())
        except ValidationError as e:
            raise HTTPException(status_code=400, detail=json.loads(e.json()))
        return segment_to_dict(segment)

    @protected.get("/segments/{segment_id}")
    def get_segment(segment_id: str, session: Session = Depends(get_db)):
        engine = SegmentEngine(session)
        segment = engine.get_segment(segment_id)
        if segment is None:
            raise HTTPException(status_code=404, detail="Segment not found")
        return {**segment_to_dict(segment), "stored_member_count": engine.segments.count_members(segment_id)}

    @protected.patch("/segments/{segment_id}")
    def update_segment(segment_id: str, payload: SegmentUpdateRequest, session: Session = Depends(get_db)):
        try:
            segment = SegmentEngine(session).update_segment(segment_id, **payload.model_dump(exclude_unset=True))
        except ValidationError as e:
            raise HTTPException(status_code=400, detail=json.loads(e.json()))
        if segment is None:
            raise HTTPException(status_code=404, detail="Segment not found")
        return segment_to_dict(segment)

    @protected.get("/segments/{segment_id}/stats")
    def segment_stats(segment_id: str, session: Session = Depends(get_db)):
        return SegmentEngine(session).get_segment_stats(segment_id)

    @protected.get("/segments/{segment_id}/members")
    def segment_members(
        segment_id: str,
        limit: int = Query(1000, gt=0, le=10000),
        session: Session = Depends(get_db),
    ):
        members = SegmentEngine(session).list_segment_members(segment_id, limit=limit)
        return [{"person_id": m.person_id, "entered_at": _iso(m.entered_at)} for m in members]

    @protected.post("/segments/evaluate")
    async def evaluate_segments(payload: EvaluateSegmentsRequest, session: Session = Depends(get_db)):
        if payload.person_id:
            return SegmentEngine(session).evaluate_segments_after_event(payload.person_id).to_dict()
        if payload.person_ids or payload.batch_all:
            # Session per person on the worker pool
            report = await growth_jobs.run_job_async(growth_jobs.evaluate_segments, payload.person_ids)
            return report.to_dict()
        raise HTTPException(status_code=400, detail="Provide person_id, person_ids or batch_all")

    # --------------------------------------------------------
    # 5. Subscriptions
    # --------------------------------------------------------
    @protected.post("/subscriptions")
    def sync_subscription(payload: SubscriptionSnapshot, session: Session = Depends(get_db)):
        try:
            result = GrowthPipeline(session).handle_subscription(payload)
        except PersonNotResolved as e:
            raise HTTPException(status_code=404, detail=str(e))
        return result.to_dict()

    # --------------------------------------------------------
    # 6. Email bookkeeping
    # --------------------------------------------------------
    @protected.post("/emails/sent", status_code=201)
    def record_sent_email(payload: SentEmailRequest, session: Session = Depends(get_db)):
        message = EmailWebhookService(session).record_sent_message(**payload.model_dump())
        return {"id": message.id, "message_id": message.message_id, "person_id": message.person_id}

    router.include_router(protected)

    # --------------------------------------------------------
    # 7. Email provider webhook (signature instead of API key)
    # --------------------------------------------------------
    @router.post("/webhooks/email")
    async def email_webhook(request: Request, session: Session = Depends(get_db)):
        body = await request.body()

        secret = GrowthConfigs.RESEND_WEBHOOK_SECRET
        if secret:
            try:
                verify_signature(
                    body,
                    request.headers.get(TIMESTAMP_HEADER),
                    request.headers.get(SIGNATURE_HEADER),
                    secret,
                )
            except WebhookSignatureError as e:
                logger.warning("Rejected email webhook: %s", e)
                raise HTTPException(status_code=401, detail=str(e))

        try:
            payload = json.loads(body)
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid JSON body")

        result = EmailWebhookService(session).handle_webhook(payload)
        return {"received": True, **result}

    return router
