"""Repository for persons and their external identity links."""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from data_models.dbo_person import IdentityLink, Person
from data_models.growth_enums import IdentityProvider

logger = logging.getLogger(__name__)


def normalize_email(email: Optional[str]) -> Optional[str]:
    if not email:
        return None
    email = email.strip().lower()
    return email or None


class PersonRepository:
    """
    SQLAlchemy repository for Person and IdentityLink rows.
    Methods flush but never commit; the caller's session context owns the transaction.
    """

    def __init__(self, session: Session):
        self.session = session

    # =========================================================================
    # Person
    # =========================================================================
    def get_by_id(self, person_id: str) -> Optional[Person]:
        return self.session.get(Person, person_id)

    def get_by_email(self, email: str) -> Optional[Person]:
        email = normalize_email(email)
        if not email:
            return None
        stmt = select(Person).where(Person.email == email)
        return self.session.scalars(stmt).first()

    def create(
        self,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        name: Optional[str] = None,
        traits: Optional[Dict[str, Any]] = None,
    ) -> Person:
        person = Person(
            email=normalize_email(email),
            phone=phone,
            name=name,
            traits=dict(traits or {}),
        )
        self.session.add(person)
        self.session.flush()
        return person

    def merge_traits(self, person: Person, traits: Dict[str, Any]) -> Person:
        """Shallow merge; new keys win. Assigns a new dict so the JSON change is tracked."""
        if traits:
            person.traits = {**(person.traits or {}), **traits}
            self.session.flush()
        return person

    def list_ids(self) -> List[str]:
        return list(self.session.scalars(select(Person.id).order_by(Person.created_at)))

    # =========================================================================
    # Identity links
    # =========================================================================
    def find_link(self, provider: IdentityProvider, external_id: str) -> Optional[IdentityLink]:
        stmt = select(IdentityLink).where(
            IdentityLink.provider == provider,
            IdentityLink.external_id == external_id,
        )
        return self.session.scalars(stmt).first()

    def create_link(
        self,
        person_id: str,
        provider: IdentityProvider,
        external_id: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> IdentityLink:
        link = IdentityLink(
            person_id=person_id,
            provider=provider,
            external_id=external_id,
            metadata_=metadata,
        )
        self.session.add(link)
        self.session.flush()
        return link

    def list_links(self, person_id: str) -> List[IdentityLink]:
        stmt = (
            select(IdentityLink)
            .where(IdentityLink.person_id == person_id)
            .order_by(IdentityLink.created_at)
        )
        return list(self.session.scalars(stmt))
