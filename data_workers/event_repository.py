"""Repository for the append-only event log."""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import distinct, func, select
from sqlalchemy.orm import Session

from data_models.base import utcnow
from data_models.dbo_event import Event
from data_models.growth_enums import EventSource


class EventRepository:
    def __init__(self, session: Session):
        self.session = session

    def insert(
        self,
        event_name: str,
        source: EventSource,
        person_id: Optional[str] = None,
        properties: Optional[Dict[str, Any]] = None,
        timestamp: Optional[datetime] = None,
        session_id: Optional[str] = None,
        device_id: Optional[str] = None,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
        event_id: Optional[str] = None,
    ) -> Event:
        event = Event(
            person_id=person_id,
            event_name=event_name,
            source=source,
            properties=properties or {},
            timestamp=timestamp or utcnow(),
            session_id=session_id,
            device_id=device_id,
            user_agent=user_agent,
            ip_address=ip_address,
            event_id=event_id,
        )
        self.session.add(event)
        self.session.flush()
        return event

    # =========================================================================
    # Reads
    # =========================================================================
    def list_for_person(self, person_id: str, limit: int = 100) -> List[Event]:
        stmt = (
            select(Event)
            .where(Event.person_id == person_id)
            .order_by(Event.timestamp.desc())
            .limit(limit)
        )
        return list(self.session.scalars(stmt))

    def list_for_person_between(self, person_id: str, start: datetime, end: datetime) -> List[Event]:
        stmt = (
            select(Event)
            .where(
                Event.person_id == person_id,
                Event.timestamp >= start,
                Event.timestamp <= end,
            )
            .order_by(Event.timestamp)
        )
        return list(self.session.scalars(stmt))

    # =========================================================================
    # Aggregates (feature engine + segment criteria)
    # =========================================================================
    def count_active_days(self, person_id: str) -> int:
        stmt = select(func.count(distinct(func.date(Event.timestamp)))).where(
            Event.person_id == person_id
        )
        return self.session.scalar(stmt) or 0

    def count_named(self, person_id: str, event_names: Iterable[str]) -> int:
        stmt = select(func.count(Event.id)).where(
            Event.person_id == person_id,
            Event.event_name.in_(list(event_names)),
        )
        return self.session.scalar(stmt) or 0

    def count_event(self, person_id: str, event_name: str, since: Optional[datetime] = None) -> int:
        stmt = select(func.count(Event.id)).where(
            Event.person_id == person_id,
            Event.event_name == event_name,
        )
        if since is not None:
            stmt = stmt.where(Event.timestamp >= since)
        return self.session.scalar(stmt) or 0

    def last_event_at(self, person_id: str) -> Optional[datetime]:
        stmt = select(func.max(Event.timestamp)).where(Event.person_id == person_id)
        return self.session.scalar(stmt)

    def person_ids_active_since(self, cutoff: datetime) -> List[str]:
        stmt = select(distinct(Event.person_id)).where(
            Event.person_id.is_not(None),
            Event.timestamp >= cutoff,
        )
        return list(self.session.scalars(stmt))
