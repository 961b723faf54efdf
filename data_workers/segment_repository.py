"""Repository for segment definitions and stored memberships."""

from typing import Any, Dict, List, Optional, Set

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from data_models.dbo_segment import Segment, SegmentMembership


class SegmentRepository:
    def __init__(self, session: Session):
        self.session = session

    # =========================================================================
    # Segments
    # =========================================================================
    def get(self, segment_id: str) -> Optional[Segment]:
        return self.session.get(Segment, segment_id)

    def list_segments(self, active_only: bool = True) -> List[Segment]:
        stmt = select(Segment).order_by(Segment.created_at)
        if active_only:
            stmt = stmt.where(Segment.is_active.is_(True))
        return list(self.session.scalars(stmt))

    def create(
        self,
        name: str,
        criteria: Dict[str, Any],
        description: Optional[str] = None,
        automation_config: Optional[Dict[str, Any]] = None,
        is_active: bool = True,
    ) -> Segment:
        segment = Segment(
            name=name,
            description=description,
            criteria=criteria,
            automation_config=automation_config,
            is_active=is_active,
        )
        self.session.add(segment)
        self.session.flush()
        return segment

    def update(self, segment: Segment, **fields: Any) -> Segment:
        for key, value in fields.items():
            setattr(segment, key, value)
        self.session.flush()
        return segment

    # =========================================================================
    # Memberships
    # =========================================================================
    def member_segment_ids(self, person_id: str) -> Set[str]:
        stmt = select(SegmentMembership.segment_id).where(SegmentMembership.person_id == person_id)
        return set(self.session.scalars(stmt))

    def add_membership(self, segment_id: str, person_id: str) -> SegmentMembership:
        membership = SegmentMembership(segment_id=segment_id, person_id=person_id)
        self.session.add(membership)
        self.session.flush()
        return membership

    def remove_membership(self, segment_id: str, person_id: str) -> int:
        result = self.session.execute(
            delete(SegmentMembership).where(
                SegmentMembership.segment_id == segment_id,
                SegmentMembership.person_id == person_id,
            )
        )
        return result.rowcount

    def list_members(self, segment_id: str, limit: int = 1000) -> List[SegmentMembership]:
        stmt = (
            select(SegmentMembership)
            .where(SegmentMembership.segment_id == segment_id)
            .order_by(SegmentMembership.entered_at)
            .limit(limit)
        )
        return list(self.session.scalars(stmt))

    def count_members(self, segment_id: str) -> int:
        stmt = select(func.count(SegmentMembership.id)).where(
            SegmentMembership.segment_id == segment_id
        )
        return self.session.scalar(stmt) or 0
