from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from data_models.growth_enums import Transition
from data_models.segment_criteria import AutomationConfig


@dataclass(frozen=True)
class PersonSnapshot:
    """Detached copy of the person fields automations need."""

    id: str
    email: Optional[str] = None
    phone: Optional[str] = None
    name: Optional[str] = None
    traits: Dict[str, Any] = field(default_factory=dict)

    @property
    def first_name(self) -> Optional[str]:
        if not self.name:
            return None
        return self.name.split()[0]

    @classmethod
    def from_person(cls, person) -> "PersonSnapshot":
        return cls(
            id=person.id,
            email=person.email,
            phone=person.phone,
            name=person.name,
            traits=dict(person.traits or {}),
        )


@dataclass(frozen=True)
class AutomationContext:
    person: PersonSnapshot
    segment_id: str
    segment_name: str
    transition: Transition
    config: AutomationConfig


class AutomationChannel(ABC):
    """Base strategy for all segment automation channels."""

    @abstractmethod
    def execute(self, context: AutomationContext) -> Dict[str, Any]:
        """Run the automation for one person and one transition.

        Returns a dict with at least a `status` key. Raises AutomationError
        when the downstream system fails so the caller can retry.
        """
        pass
