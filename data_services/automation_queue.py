"""
Automation work items and the dispatchers that run them.

A work item is one (segment, person, transition, channel) side effect. Items
are dispatched only after the membership change they describe is committed,
so a retried item always sees the membership state that produced it.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from data_models.growth_enums import Transition
from main_configs import GrowthConfigs

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AutomationWorkItem:
    segment_id: str
    person_id: str
    transition: Transition
    channel: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "segment_id": self.segment_id,
            "person_id": self.person_id,
            "transition": self.transition.value,
            "channel": self.channel,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AutomationWorkItem":
        return cls(
            segment_id=data["segment_id"],
            person_id=data["person_id"],
            transition=Transition(data["transition"]),
            channel=data["channel"],
        )


class AutomationDispatcher(ABC):
    @abstractmethod
    def dispatch(self, items: List[AutomationWorkItem]) -> List[Dict[str, Any]]:
        """Hand the items off. Never raises for a failing automation."""
        pass


class InlineAutomationDispatcher(AutomationDispatcher):
    """Runs each item immediately in-process; failures are logged and suppressed."""

    def __init__(self, runner: Callable[[AutomationWorkItem], Dict[str, Any]]):
        self.runner = runner

    def dispatch(self, items: List[AutomationWorkItem]) -> List[Dict[str, Any]]:
        outcomes = []
        for item in items:
            try:
                outcome = self.runner(item)
            except Exception as exc:
                logger.exception(
                    "Automation %s failed for segment %s / person %s (%s)",
                    item.channel, item.segment_id, item.person_id, item.transition.value,
                )
                outcome = {"status": "error", "channel": item.channel, "message": str(exc)}
            outcomes.append(outcome)
        return outcomes


class CeleryAutomationDispatcher(AutomationDispatcher):
    """Enqueues one Celery task per item; the task owns the retry policy."""

    def dispatch(self, items: List[AutomationWorkItem]) -> List[Dict[str, Any]]:
        from data_workers.tasks import run_segment_automation

        outcomes = []
        for item in items:
            try:
                result = run_segment_automation.delay(item.to_dict())
                outcomes.append({"status": "queued", "channel": item.channel, "task_id": result.id})
            except Exception as exc:
                # Membership is already committed; this transition will not be planned again
                logger.exception("Failed to enqueue automation %s", item.to_dict())
                outcomes.append({"status": "error", "channel": item.channel, "message": str(exc)})
        return outcomes


def build_dispatcher(
    runner: Callable[[AutomationWorkItem], Dict[str, Any]],
    mode: Optional[str] = None,
) -> AutomationDispatcher:
    mode = (mode or GrowthConfigs.AUTOMATION_DISPATCH_MODE).lower()
    if mode == "celery":
        return CeleryAutomationDispatcher()
    return InlineAutomationDispatcher(runner)
