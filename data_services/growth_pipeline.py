"""
Pipeline orchestration: resolve -> persist -> derive -> evaluate -> act.

The event is committed before any feature or segment work reads it, and the
segment engine commits membership changes before automations are dispatched.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from sqlalchemy.orm import Session

from activation_channels.meta_capi import MetaConversionsClient
from data_models.dbo_event import Event
from data_models.dbo_features import PersonFeatures
from data_models.dbo_subscription import Subscription
from data_models.growth_enums import IdentityProvider
from data_models.growth_events import BaseEventPayload, SubscriptionSnapshot
from data_models.identity_models import ConflictWithOtherPerson
from data_services.automation_queue import AutomationDispatcher
from data_services.errors import PersonNotResolved
from data_services.event_service import EventService
from data_services.features_service import FeaturesService
from data_services.identity_service import IdentityService
from data_services.segment_engine import SegmentEngine, SegmentEvaluation
from data_workers.subscription_repository import SubscriptionRepository

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    event: Event
    features: Optional[PersonFeatures] = None
    evaluation: Optional[SegmentEvaluation] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event.id,
            "person_id": self.event.person_id,
            "features": self.features.as_dict() if self.features else None,
            "segments": self.evaluation.to_dict() if self.evaluation else None,
        }


@dataclass
class SubscriptionSyncResult:
    subscription: Subscription
    evaluation: SegmentEvaluation

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subscription_id": self.subscription.id,
            "stripe_subscription_id": self.subscription.stripe_subscription_id,
            "person_id": self.subscription.person_id,
            "status": self.subscription.status.value,
            "segments": self.evaluation.to_dict(),
        }


class GrowthPipeline:
    def __init__(
        self,
        session: Session,
        dispatcher: Optional[AutomationDispatcher] = None,
        capi_client: Optional[MetaConversionsClient] = None,
    ):
        self.session = session
        self.identity = IdentityService(session)
        self.events = EventService(session, identity=self.identity, capi_client=capi_client)
        self.features = FeaturesService(session)
        self.segments = SegmentEngine(session, dispatcher=dispatcher)
        self.subscriptions = SubscriptionRepository(session)

    def handle_event(self, payload: Union[BaseEventPayload, Dict[str, Any]]) -> PipelineResult:
        event = self.events.ingest_event(payload)
        self.session.commit()

        result = PipelineResult(event=event)
        if event.person_id is None:
            logger.debug("Event %s has no person, skipping derive/evaluate", event.id)
            return result

        result.features = self.features.incremental_update_features(
            event.person_id, event.event_name, event.timestamp
        )
        self.session.commit()

        result.evaluation = self.segments.evaluate_segments_after_event(event.person_id)
        return result

    def handle_subscription(self, snapshot: Union[SubscriptionSnapshot, Dict[str, Any]]) -> SubscriptionSyncResult:
        """
        Store the latest subscription state, then re-evaluate the owner's
        segments since subscription clauses may now match differently.
        """
        if isinstance(snapshot, dict):
            snapshot = SubscriptionSnapshot.model_validate(snapshot)

        person_id = self._resolve_payment_customer(snapshot)
        subscription = self.subscriptions.upsert_subscription(
            person_id=person_id,
            stripe_subscription_id=snapshot.stripe_subscription_id,
            stripe_customer_id=snapshot.stripe_customer_id,
            status=snapshot.status,
            plan_name=snapshot.plan_name,
            plan_interval=snapshot.plan_interval,
            mrr=snapshot.mrr,
            current_period_start=snapshot.current_period_start,
            current_period_end=snapshot.current_period_end,
            cancel_at_period_end=snapshot.cancel_at_period_end,
            metadata=snapshot.metadata,
        )
        self.session.commit()

        evaluation = self.segments.evaluate_segments_after_event(person_id)
        return SubscriptionSyncResult(subscription=subscription, evaluation=evaluation)

    def _resolve_payment_customer(self, snapshot: SubscriptionSnapshot) -> str:
        person_id = self.identity.resolve_person_from_external_id(
            IdentityProvider.PAYMENT, snapshot.stripe_customer_id
        )
        if person_id:
            return person_id

        if snapshot.person_id and self.identity.get_person(snapshot.person_id):
            result = self.identity.link_identity(
                snapshot.person_id, IdentityProvider.PAYMENT, snapshot.stripe_customer_id
            )
            if not isinstance(result, ConflictWithOtherPerson):
                return snapshot.person_id

        raise PersonNotResolved(f"No person for payment customer {snapshot.stripe_customer_id}")
