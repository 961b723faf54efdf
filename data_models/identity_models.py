"""Identity payloads and the tagged result of linking an external id."""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class PersonTraits(BaseModel):
    """
    Known traits supplied by the marketplace on identify.
    Unknown keys are kept as-is for forward compatibility.
    """

    model_config = ConfigDict(extra="allow")

    role: Optional[str] = None
    verification_status: Optional[str] = None
    account_status: Optional[str] = None
    signed_up_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class IdentifyPayload(BaseModel):
    """The producer side "identify" call made on login/signup."""

    user_id: str = Field(..., min_length=1)
    email: Optional[str] = None
    phone: Optional[str] = None
    name: Optional[str] = None
    traits: PersonTraits = Field(default_factory=PersonTraits)

    @field_validator("traits", mode="before")
    @classmethod
    def none_traits_to_empty(cls, v):
        return v or {}


# =====================================================
# LINK RESULT
# =====================================================

@dataclass(frozen=True)
class Linked:
    """A new link was created for the requested person."""
    person_id: str


@dataclass(frozen=True)
class AlreadyLinkedToSelf:
    """The external id was already linked to the requested person."""
    person_id: str


@dataclass(frozen=True)
class ConflictWithOtherPerson:
    """
    The external id belongs to another person. Nothing was created or
    merged; callers decide whether to merge, alert or ignore.
    """
    requested_person_id: str
    existing_person_id: str

    @property
    def person_id(self) -> str:
        # The external id keeps resolving to the existing link
        return self.existing_person_id


LinkResult = Union[Linked, AlreadyLinkedToSelf, ConflictWithOtherPerson]
