"""
Identity resolver: owns the canonical Person and the mapping from external
provider ids to persons.

Lookups never raise for "not found"; they return None or an empty result.
Storage errors propagate to the caller.
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from data_models.dbo_person import Person
from data_models.growth_enums import IdentityProvider
from data_models.identity_models import (
    AlreadyLinkedToSelf,
    ConflictWithOtherPerson,
    IdentifyPayload,
    Linked,
    LinkResult,
)
from data_workers.person_repository import PersonRepository

logger = logging.getLogger(__name__)


class IdentityService:
    def __init__(self, session: Session):
        self.session = session
        self.persons = PersonRepository(session)

    def get_or_create_person(
        self,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        name: Optional[str] = None,
        traits: Optional[Dict[str, Any]] = None,
    ) -> Person:
        """
        Returns the person owning `email` with `traits` merged in, or a new
        person when no email is given or none matches.
        """
        if email:
            existing = self.persons.get_by_email(email)
            if existing is not None:
                return self.persons.merge_traits(existing, traits or {})

        person = self.persons.create(email=email, phone=phone, name=name, traits=traits)
        logger.info("Created person %s", person.id)
        return person

    def link_identity(
        self,
        person_id: str,
        provider: IdentityProvider,
        external_id: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> LinkResult:
        provider = IdentityProvider(provider)
        existing = self.persons.find_link(provider, external_id)

        if existing is None:
            self.persons.create_link(person_id, provider, external_id, metadata)
            return Linked(person_id=person_id)

        if existing.person_id == person_id:
            return AlreadyLinkedToSelf(person_id=person_id)

        logger.warning(
            "Identity conflict: %s:%s is linked to person %s, requested for person %s",
            provider.value, external_id, existing.person_id, person_id,
        )
        return ConflictWithOtherPerson(
            requested_person_id=person_id,
            existing_person_id=existing.person_id,
        )

    def resolve_person_from_external_id(
        self, provider: IdentityProvider, external_id: Optional[str]
    ) -> Optional[str]:
        if not external_id:
            return None
        link = self.persons.find_link(IdentityProvider(provider), external_id)
        return link.person_id if link else None

    def get_person_identities(self, person_id: str) -> Dict[str, Dict[str, Any]]:
        """provider -> {external_id, metadata, linked_at}"""
        identities: Dict[str, Dict[str, Any]] = {}
        for link in self.persons.list_links(person_id):
            identities[link.provider.value] = {
                "external_id": link.external_id,
                "metadata": link.metadata_,
                "linked_at": link.created_at,
            }
        return identities

    # =========================================================================
    # Producer side helpers
    # =========================================================================
    def identify_user(self, payload: IdentifyPayload) -> Person:
        """
        Login/signup "identify": get or create the person by email, merge
        traits and link the product's user id.
        """
        traits = payload.traits.to_dict()
        person = self.get_or_create_person(
            email=payload.email,
            phone=payload.phone,
            name=payload.name,
            traits=traits,
        )

        result = self.link_identity(
            person.id,
            IdentityProvider.APP,
            payload.user_id,
            metadata={"role": traits.get("role")} if traits.get("role") else None,
        )
        if isinstance(result, ConflictWithOtherPerson):
            # The user id keeps pointing at the person it was first linked to
            return self.persons.get_by_id(result.existing_person_id) or person
        return person

    def get_person_id_from_user_id(self, user_id: str) -> Optional[str]:
        return self.resolve_person_from_external_id(IdentityProvider.APP, user_id)

    def get_person(self, person_id: str) -> Optional[Person]:
        return self.persons.get_by_id(person_id)
