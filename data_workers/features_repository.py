"""Repository for the per-person derived feature row."""

from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from data_models.dbo_features import FEATURE_FIELDS, PersonFeatures


class FeaturesRepository:
    def __init__(self, session: Session):
        self.session = session

    def get(self, person_id: str) -> Optional[PersonFeatures]:
        stmt = select(PersonFeatures).where(PersonFeatures.person_id == person_id)
        return self.session.scalars(stmt).first()

    def get_or_create(self, person_id: str) -> PersonFeatures:
        features = self.get(person_id)
        if features is None:
            features = PersonFeatures(
                person_id=person_id,
                **{name: 0 for name in FEATURE_FIELDS},
            )
            self.session.add(features)
            self.session.flush()
        return features

    def upsert(self, person_id: str, **values: Any) -> PersonFeatures:
        features = self.get_or_create(person_id)
        for key, value in values.items():
            setattr(features, key, value)
        self.session.flush()
        return features
