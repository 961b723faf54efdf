"""
Segment & automation engine.

Criteria are interpreted clause by clause (AND semantics) against a person's
features, subscriptions, event counts and attributes. Stored memberships are
the last evaluated result and only serve to detect enter/exit transitions;
each transition plans one automation work item per configured channel.
"""

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Optional, Union

from sqlalchemy.orm import Session

from activation_channels.base import AutomationContext, PersonSnapshot
from activation_channels.registry import AD_AUDIENCE, EMAIL_AUDIENCE, WEBHOOK, AutomationChannels
from data_models.base import utcnow
from data_models.dbo_features import PersonFeatures
from data_models.dbo_person import Person
from data_models.dbo_segment import Segment, SegmentMembership
from data_models.growth_enums import Transition
from data_models.segment_criteria import (
    AutomationConfig,
    Clause,
    EventCountClause,
    FeatureClause,
    PersonAttributeClause,
    SegmentCriteria,
    SubscriptionClause,
)
from data_services.automation_queue import AutomationDispatcher, AutomationWorkItem, build_dispatcher
from data_workers.batch_runner import BatchReport, rollback_on_error, run_per_person
from data_workers.event_repository import EventRepository
from data_workers.features_repository import FeaturesRepository
from data_workers.person_repository import PersonRepository
from data_workers.segment_repository import SegmentRepository
from data_workers.subscription_repository import SubscriptionRepository

logger = logging.getLogger(__name__)

CriteriaInput = Union[SegmentCriteria, Dict[str, Any]]


@dataclass
class SegmentEvaluation:
    person_id: str
    entered: List[str] = field(default_factory=list)
    exited: List[str] = field(default_factory=list)
    automations: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "person_id": self.person_id,
            "entered": self.entered,
            "exited": self.exited,
            "automations": self.automations,
        }


class _PersonFacts:
    """Lazily loaded inputs for one interpreter run."""

    _UNSET = object()

    def __init__(self, engine: "SegmentEngine", person: Person):
        self.engine = engine
        self.person = person
        self._features = self._UNSET
        self._subscriptions = None

    @property
    def features(self) -> Optional[PersonFeatures]:
        if self._features is self._UNSET:
            self._features = self.engine.features.get(self.person.id)
        return self._features

    @property
    def subscriptions(self):
        if self._subscriptions is None:
            self._subscriptions = self.engine.subscriptions.list_for_person(self.person.id)
        return self._subscriptions


class SegmentEngine:
    def __init__(self, session: Session, dispatcher: Optional[AutomationDispatcher] = None):
        self.session = session
        self.segments = SegmentRepository(session)
        self.persons = PersonRepository(session)
        self.events = EventRepository(session)
        self.features = FeaturesRepository(session)
        self.subscriptions = SubscriptionRepository(session)
        self.dispatcher = dispatcher or build_dispatcher(self.run_automation)

    # =========================================================================
    # Criteria interpreter
    # =========================================================================
    def evaluate_segment_membership(self, person_id: str, criteria: CriteriaInput) -> bool:
        """Pure check: does the person match every clause? No writes."""
        if not isinstance(criteria, SegmentCriteria):
            criteria = SegmentCriteria.parse(criteria)

        person = self.persons.get_by_id(person_id)
        if person is None:
            return False

        facts = _PersonFacts(self, person)
        return all(self._clause_matches(clause, facts) for clause in criteria.clauses)

    def _clause_matches(self, clause: Clause, facts: _PersonFacts) -> bool:
        if isinstance(clause, FeatureClause):
            if facts.features is None:
                return False
            return clause.matches(getattr(facts.features, clause.feature))

        if isinstance(clause, SubscriptionClause):
            return any(
                clause.matches_subscription(s.status, s.plan_name, s.mrr)
                for s in facts.subscriptions
            )

        if isinstance(clause, EventCountClause):
            since = None
            if clause.within_days:
                since = utcnow() - timedelta(days=clause.within_days)
            count = self.events.count_event(facts.person.id, clause.event_name, since=since)
            return clause.matches(count)

        if isinstance(clause, PersonAttributeClause):
            return clause.matches(facts.person.email, facts.person.phone)

        raise TypeError(f"Unknown criteria clause: {clause!r}")

    def get_person_segments(self, person_id: str) -> List[str]:
        """Ids of every active segment the person currently matches."""
        return [
            segment.id
            for segment in self.segments.list_segments(active_only=True)
            if self.evaluate_segment_membership(person_id, segment.criteria)
        ]

    # =========================================================================
    # Transition detection
    # =========================================================================
    def evaluate_segments_after_event(self, person_id: str) -> SegmentEvaluation:
        """
        Diff current membership against the stored one, persist the diff,
        commit, then dispatch on_enter/on_exit automations.

        Running it twice with unchanged inputs yields an empty diff.
        """
        current = set(self.get_person_segments(person_id))
        previous = self.segments.member_segment_ids(person_id)

        evaluation = SegmentEvaluation(
            person_id=person_id,
            entered=sorted(current - previous),
            exited=sorted(previous - current),
        )
        if not evaluation.entered and not evaluation.exited:
            return evaluation

        work_items: List[AutomationWorkItem] = []
        for segment_id in evaluation.entered:
            self.segments.add_membership(segment_id, person_id)
            work_items.extend(self._plan_for(segment_id, person_id, Transition.ON_ENTER))
        for segment_id in evaluation.exited:
            self.segments.remove_membership(segment_id, person_id)
            work_items.extend(self._plan_for(segment_id, person_id, Transition.ON_EXIT))

        self.session.commit()
        logger.info(
            "Person %s entered %s, exited %s", person_id, evaluation.entered, evaluation.exited
        )

        if work_items:
            evaluation.automations = self.dispatcher.dispatch(work_items)
        return evaluation

    def _plan_for(self, segment_id: str, person_id: str, transition: Transition) -> List[AutomationWorkItem]:
        segment = self.segments.get(segment_id)
        if segment is None:
            return []
        return self.plan_automations(segment, person_id, transition)

    # =========================================================================
    # Automations
    # =========================================================================
    def plan_automations(
        self, segment: Segment, person_id: str, transition: Transition
    ) -> List[AutomationWorkItem]:
        """One work item per configured channel that applies to this transition."""
        if not segment.automation_config:
            return []
        config = AutomationConfig.parse(segment.automation_config)

        channels = []
        if config.email_audience is not None and config.email_audience.trigger == transition:
            channels.append(EMAIL_AUDIENCE)
        if config.ad_audience is not None:
            channels.append(AD_AUDIENCE)
        if config.webhook is not None:
            channels.append(WEBHOOK)

        return [
            AutomationWorkItem(
                segment_id=segment.id,
                person_id=person_id,
                transition=transition,
                channel=channel,
            )
            for channel in channels
        ]

    def run_automation(self, item: AutomationWorkItem) -> Dict[str, Any]:
        """
        Execute exactly one automation. Raises AutomationError on downstream
        failure. Items whose membership state has since changed are skipped.
        """
        segment = self.segments.get(item.segment_id)
        person = self.persons.get_by_id(item.person_id)
        if segment is None or person is None:
            logger.warning("Skipping automation %s: segment or person no longer exists", item.to_dict())
            return {"status": "skipped", "channel": item.channel, "reason": "not_found"}

        is_member = item.segment_id in self.segments.member_segment_ids(item.person_id)
        if is_member != (item.transition == Transition.ON_ENTER):
            logger.info("Skipping stale automation %s", item.to_dict())
            return {"status": "skipped", "channel": item.channel, "reason": "stale"}

        context = AutomationContext(
            person=PersonSnapshot.from_person(person),
            segment_id=segment.id,
            segment_name=segment.name,
            transition=item.transition,
            config=AutomationConfig.parse(segment.automation_config),
        )
        return AutomationChannels.execute(item.channel, context)

    def trigger_segment_automations(
        self, segment_id: str, person_id: str, transition: Transition
    ) -> List[Dict[str, Any]]:
        """Run every planned automation now, each one best-effort."""
        segment = self.segments.get(segment_id)
        if segment is None:
            return []

        outcomes = []
        for item in self.plan_automations(segment, person_id, Transition(transition)):
            try:
                outcomes.append(self.run_automation(item))
            except Exception as exc:
                logger.exception(
                    "Automation %s failed for segment %s / person %s", item.channel, segment_id, person_id
                )
                outcomes.append({"status": "error", "channel": item.channel, "message": str(exc)})
        return outcomes

    # =========================================================================
    # Batch + stats
    # =========================================================================
    def batch_evaluate_segments(self, person_ids: Optional[Iterable[str]] = None) -> BatchReport:
        if person_ids is None:
            person_ids = self.persons.list_ids()
        # Each person commits its own membership diff
        return run_per_person(
            person_ids, rollback_on_error(self.session, self.evaluate_segments_after_event), label="evaluate_segments"
        )

    def get_segment_stats(self, segment_id: str) -> Dict[str, Any]:
        """Live member count by re-evaluating every person. O(persons)."""
        segment = self.segments.get(segment_id)
        if segment is None:
            return {"segment_id": segment_id, "member_count": 0}

        criteria = SegmentCriteria.parse(segment.criteria)
        member_count = sum(
            1 for person_id in self.persons.list_ids()
            if self.evaluate_segment_membership(person_id, criteria)
        )
        return {"segment_id": segment_id, "member_count": member_count}

    # =========================================================================
    # Segment administration
    # =========================================================================
    def create_segment(
        self,
        name: str,
        criteria: CriteriaInput,
        description: Optional[str] = None,
        automation_config: Optional[Dict[str, Any]] = None,
        is_active: bool = True,
    ) -> Segment:
        if not isinstance(criteria, SegmentCriteria):
            criteria = SegmentCriteria.parse(criteria)
        config = AutomationConfig.parse(automation_config) if automation_config else None
        return self.segments.create(
            name=name,
            description=description,
            criteria=criteria.to_storage(),
            automation_config=config.to_storage() if config else None,
            is_active=is_active,
        )

    def get_segment(self, segment_id: str) -> Optional[Segment]:
        return self.segments.get(segment_id)

    def list_segments(self, active_only: bool = False) -> List[Segment]:
        return self.segments.list_segments(active_only=active_only)

    def update_segment(self, segment_id: str, **fields: Any) -> Optional[Segment]:
        segment = self.segments.get(segment_id)
        if segment is None:
            return None
        if fields.get("criteria") is not None:
            fields["criteria"] = SegmentCriteria.parse(fields["criteria"]).to_storage()
        if "automation_config" in fields and fields["automation_config"] is not None:
            fields["automation_config"] = AutomationConfig.parse(fields["automation_config"]).to_storage()
        return self.segments.update(segment, **fields)

    def list_segment_members(self, segment_id: str, limit: int = 1000) -> List[SegmentMembership]:
        return self.segments.list_members(segment_id, limit=limit)
