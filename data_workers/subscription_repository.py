"""Repository for payment-processor subscription snapshots."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from data_models.dbo_subscription import Subscription
from data_models.growth_enums import SubscriptionStatus

logger = logging.getLogger(__name__)


class SubscriptionRepository:
    def __init__(self, session: Session):
        self.session = session

    def get_by_stripe_id(self, stripe_subscription_id: str) -> Optional[Subscription]:
        stmt = select(Subscription).where(
            Subscription.stripe_subscription_id == stripe_subscription_id
        )
        return self.session.scalars(stmt).first()

    def upsert_subscription(
        self,
        person_id: str,
        stripe_subscription_id: str,
        stripe_customer_id: str,
        status: SubscriptionStatus,
        plan_name: Optional[str] = None,
        plan_interval: Optional[str] = None,
        mrr: Optional[int] = None,
        current_period_start: Optional[datetime] = None,
        current_period_end: Optional[datetime] = None,
        cancel_at_period_end: bool = False,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Subscription:
        """
        Insert or refresh the snapshot keyed by the payment system's
        subscription id. The latest webhook delivery wins.
        """
        subscription = self.get_by_stripe_id(stripe_subscription_id)
        if subscription is None:
            subscription = Subscription(stripe_subscription_id=stripe_subscription_id)
            self.session.add(subscription)
            logger.info("New subscription %s for person %s", stripe_subscription_id, person_id)

        subscription.person_id = person_id
        subscription.stripe_customer_id = stripe_customer_id
        subscription.status = SubscriptionStatus(status)
        subscription.plan_name = plan_name
        subscription.plan_interval = plan_interval
        subscription.mrr = mrr
        subscription.current_period_start = current_period_start
        subscription.current_period_end = current_period_end
        subscription.cancel_at_period_end = cancel_at_period_end
        subscription.metadata_ = metadata

        self.session.flush()
        return subscription

    def list_for_person(self, person_id: str) -> List[Subscription]:
        stmt = select(Subscription).where(Subscription.person_id == person_id)
        return list(self.session.scalars(stmt))
