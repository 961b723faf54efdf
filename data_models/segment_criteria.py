"""
Segment criteria and automation configuration.

Criteria are an explicit list of clauses (AND semantics). Each clause is one
of four variants discriminated by `kind`; the segment engine interprets them.
Both models are stored as JSON on the `segment` row.
"""

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from typing_extensions import Annotated

from .growth_enums import SubscriptionStatus, Transition

FeatureName = Literal["active_days", "core_actions", "pricing_views", "email_opens", "email_clicks"]

# camelCase feature keys accepted in the nested criteria form
_FEATURE_ALIASES = {
    "activeDays": "active_days",
    "coreActions": "core_actions",
    "pricingViews": "pricing_views",
    "emailOpens": "email_opens",
    "emailClicks": "email_clicks",
}


def _bounds_ok(value: float, min_: Optional[float], max_: Optional[float], eq: Optional[float] = None) -> bool:
    if eq is not None and value != eq:
        return False
    if min_ is not None and value < min_:
        return False
    if max_ is not None and value > max_:
        return False
    return True


# =====================================================
# CLAUSES
# =====================================================

class FeatureClause(BaseModel):
    """Threshold on one PersonFeatures column."""

    kind: Literal["feature"] = "feature"
    feature: FeatureName
    min: Optional[float] = None
    max: Optional[float] = None
    eq: Optional[float] = None

    def matches(self, value: Optional[float]) -> bool:
        if value is None:
            return False
        return _bounds_ok(value, self.min, self.max, self.eq)


class SubscriptionClause(BaseModel):
    """Satisfied when at least one of the person's subscriptions matches."""

    model_config = ConfigDict(populate_by_name=True)

    kind: Literal["subscription"] = "subscription"
    statuses: Optional[List[SubscriptionStatus]] = Field(
        default=None, validation_alias=AliasChoices("statuses", "status")
    )
    plan_names: Optional[List[str]] = Field(
        default=None, validation_alias=AliasChoices("plan_names", "planName", "plan_name")
    )
    mrr_min: Optional[int] = Field(default=None, validation_alias=AliasChoices("mrr_min", "mrrMin"))
    mrr_max: Optional[int] = Field(default=None, validation_alias=AliasChoices("mrr_max", "mrrMax"))

    def matches_subscription(self, status: SubscriptionStatus, plan_name: Optional[str], mrr: Optional[int]) -> bool:
        if self.statuses is not None and status not in self.statuses:
            return False
        if self.plan_names is not None and (not plan_name or plan_name not in self.plan_names):
            return False
        if self.mrr_min is not None and (mrr is None or mrr < self.mrr_min):
            return False
        if self.mrr_max is not None and (mrr is None or mrr > self.mrr_max):
            return False
        return True


class EventCountClause(BaseModel):
    """Count of a named event, optionally within a trailing window of days."""

    model_config = ConfigDict(populate_by_name=True)

    kind: Literal["event_count"] = "event_count"
    event_name: str = Field(..., validation_alias=AliasChoices("event_name", "eventName"))
    min: Optional[int] = None
    max: Optional[int] = None
    # 0 or None: no window
    within_days: Optional[int] = Field(
        default=None, ge=0, validation_alias=AliasChoices("within_days", "within")
    )

    def matches(self, count: int) -> bool:
        return _bounds_ok(count, self.min, self.max)


class PersonAttributeClause(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    kind: Literal["person_attribute"] = "person_attribute"
    has_email: Optional[bool] = Field(default=None, validation_alias=AliasChoices("has_email", "hasEmail"))
    has_phone: Optional[bool] = Field(default=None, validation_alias=AliasChoices("has_phone", "hasPhone"))

    def matches(self, email: Optional[str], phone: Optional[str]) -> bool:
        if self.has_email is not None and bool(email) != self.has_email:
            return False
        if self.has_phone is not None and bool(phone) != self.has_phone:
            return False
        return True


Clause = Annotated[
    Union[FeatureClause, SubscriptionClause, EventCountClause, PersonAttributeClause],
    Field(discriminator="kind"),
]


class SegmentCriteria(BaseModel):
    clauses: List[Clause] = Field(default_factory=list)

    @classmethod
    def parse(cls, data: Optional[Dict[str, Any]]) -> "SegmentCriteria":
        """
        Accepts either the clause list form ``{"clauses": [...]}`` or the
        nested form ``{"features": {...}, "subscription": {...},
        "events": [...], "person": {...}}``.
        """
        if not data:
            return cls()
        if "clauses" in data:
            return cls.model_validate(data)
        return cls.model_validate({"clauses": _clauses_from_nested(data)})

    def to_storage(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


def _clauses_from_nested(data: Dict[str, Any]) -> List[Dict[str, Any]]:
    clauses: List[Dict[str, Any]] = []

    for name, condition in (data.get("features") or {}).items():
        clauses.append({
            "kind": "feature",
            "feature": _FEATURE_ALIASES.get(name, name),
            **(condition or {}),
        })

    # An empty object still requires at least one subscription
    if data.get("subscription") is not None:
        clauses.append({"kind": "subscription", **data["subscription"]})

    for event_criteria in data.get("events") or []:
        count = event_criteria.get("count") or {}
        clauses.append({
            "kind": "event_count",
            "event_name": event_criteria.get("eventName") or event_criteria.get("event_name"),
            "min": count.get("min"),
            "max": count.get("max"),
            "within_days": event_criteria.get("within") or event_criteria.get("within_days"),
        })

    if data.get("person"):
        clauses.append({"kind": "person_attribute", **data["person"]})

    return clauses


# =====================================================
# AUTOMATION CONFIG
# =====================================================

class EmailAudienceAutomation(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    audience_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("audience_id", "audienceId"))
    campaign_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("campaign_id", "campaignId"))
    trigger: Transition = Transition.ON_ENTER


class AdAudienceAutomation(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    custom_audience_id: str = Field(
        ..., validation_alias=AliasChoices("custom_audience_id", "customAudienceId")
    )
    action: Literal["add", "remove"] = "add"

    def should_add(self, transition: Transition) -> bool:
        """
        "add" mirrors the segment (add on enter, remove on exit);
        "remove" inverts it (remove on enter, add on exit).
        """
        return (transition == Transition.ON_ENTER and self.action == "add") or (
            transition == Transition.ON_EXIT and self.action == "remove"
        )


class WebhookAutomation(BaseModel):
    url: str = Field(..., min_length=1)
    method: Literal["POST", "PUT"] = "POST"
    headers: Dict[str, str] = Field(default_factory=dict)
    # Per-segment signing secret; falls back to WEBHOOK_SIGNING_SECRET
    secret: Optional[str] = None


class AutomationConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email_audience: Optional[EmailAudienceAutomation] = Field(
        default=None, validation_alias=AliasChoices("email_audience", "resend")
    )
    ad_audience: Optional[AdAudienceAutomation] = Field(
        default=None, validation_alias=AliasChoices("ad_audience", "meta")
    )
    webhook: Optional[WebhookAutomation] = None

    @classmethod
    def parse(cls, data: Optional[Dict[str, Any]]) -> "AutomationConfig":
        return cls.model_validate(data or {})

    def to_storage(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)
