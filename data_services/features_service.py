"""
Feature engine: derives per-person behavioral features from the event log
and the email engagement log.

PersonFeatures is a cache; compute_person_features always converges to the
same values for the same history.
"""

import logging
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from data_models.base import utcnow
from data_models.dbo_features import FEATURE_FIELDS, PersonFeatures
from data_models.growth_enums import EmailEventType
from data_workers.batch_runner import BatchReport, in_savepoint, run_per_person
from data_workers.email_repository import EmailRepository
from data_workers.event_repository import EventRepository
from data_workers.features_repository import FeaturesRepository

logger = logging.getLogger(__name__)

# High-value product actions
CORE_ACTION_EVENTS = frozenset({
    "profile_created",
    "profile_completed",
    "date_request_created",
    "date_request_approved",
    "date_confirmed",
    "payment_completed",
    "message_sent",
    "verification_completed",
    "signup_completed",
})

PRICING_EVENTS = frozenset({
    "pricing_view",
    "pricing_page_view",
})


class FeaturesService:
    def __init__(self, session: Session):
        self.session = session
        self.events = EventRepository(session)
        self.emails = EmailRepository(session)
        self.features = FeaturesRepository(session)

    # =========================================================================
    # Single feature computations
    # =========================================================================
    def compute_active_days(self, person_id: str) -> int:
        return self.events.count_active_days(person_id)

    def compute_core_actions(self, person_id: str) -> int:
        return self.events.count_named(person_id, CORE_ACTION_EVENTS)

    def compute_pricing_views(self, person_id: str) -> int:
        return self.events.count_named(person_id, PRICING_EVENTS)

    def compute_email_opens(self, person_id: str) -> int:
        return self.emails.count_events_for_person(person_id, EmailEventType.OPENED)

    def compute_email_clicks(self, person_id: str) -> int:
        return self.emails.count_events_for_person(person_id, EmailEventType.CLICKED)

    def compute_last_active_at(self, person_id: str) -> Optional[datetime]:
        return self.events.last_event_at(person_id)

    # =========================================================================
    # Full + incremental
    # =========================================================================
    def compute_person_features(self, person_id: str) -> PersonFeatures:
        """Recompute every feature from scratch and upsert the row."""
        values = {
            "active_days": self.compute_active_days(person_id),
            "core_actions": self.compute_core_actions(person_id),
            "pricing_views": self.compute_pricing_views(person_id),
            "email_opens": self.compute_email_opens(person_id),
            "email_clicks": self.compute_email_clicks(person_id),
            "last_active_at": self.compute_last_active_at(person_id),
        }
        features = self.features.upsert(person_id, **values)
        logger.debug("Computed features for %s: %s", person_id, values)
        return features

    def incremental_update_features(
        self, person_id: str, event_name: str, timestamp: Optional[datetime] = None
    ) -> PersonFeatures:
        """
        On-write path for one new (already persisted) event. Counters are
        bumped; active_days is recomputed since the event may fall on an
        already counted day.
        """
        features = self.features.get_or_create(person_id)

        if event_name in CORE_ACTION_EVENTS:
            features.core_actions = (features.core_actions or 0) + 1
        if event_name in PRICING_EVENTS:
            features.pricing_views = (features.pricing_views or 0) + 1

        features.last_active_at = timestamp or utcnow()
        features.active_days = self.compute_active_days(person_id)

        self.session.flush()
        return features

    def increment_feature(self, person_id: str, feature: str, amount: int = 1) -> PersonFeatures:
        if feature not in FEATURE_FIELDS:
            raise ValueError(f"Unknown feature: {feature}")
        features = self.features.get_or_create(person_id)
        setattr(features, feature, (getattr(features, feature) or 0) + amount)
        self.session.flush()
        return features

    def get_person_features(self, person_id: str) -> Optional[PersonFeatures]:
        return self.features.get(person_id)

    # =========================================================================
    # Batch
    # =========================================================================
    def batch_compute_person_features(self, person_ids: Iterable[str]) -> BatchReport:
        # Sequential: every computation shares this service's session
        return run_per_person(
            person_ids, in_savepoint(self.session, self.compute_person_features), label="compute_features"
        )

    def person_ids_with_recent_activity(self, days_back: int) -> List[str]:
        cutoff = utcnow() - timedelta(days=days_back)
        return self.events.person_ids_active_since(cutoff)

    def compute_features_for_recent_activity(self, days_back: int = 7) -> BatchReport:
        person_ids = self.person_ids_with_recent_activity(days_back)
        logger.info("Recomputing features for %d persons active in the last %d days", len(person_ids), days_back)
        return self.batch_compute_person_features(person_ids)
