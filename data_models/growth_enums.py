"""Enumerations shared by the ORM tables and the pydantic payloads."""

import enum

from sqlalchemy import Enum


class EventSource(str, enum.Enum):
    WEB = "web"
    APP = "app"
    EMAIL = "email"
    PAYMENT = "payment"
    BOOKING = "booking"
    AD = "ad"


class IdentityProvider(str, enum.Enum):
    APP = "app"
    ANALYTICS = "analytics"
    PAYMENT = "payment"
    AD = "ad"


class EmailEventType(str, enum.Enum):
    DELIVERED = "delivered"
    OPENED = "opened"
    CLICKED = "clicked"
    BOUNCED = "bounced"
    COMPLAINED = "complained"
    UNSUBSCRIBED = "unsubscribed"


class SubscriptionStatus(str, enum.Enum):
    ACTIVE = "active"
    CANCELED = "canceled"
    PAST_DUE = "past_due"
    TRIALING = "trialing"
    PAUSED = "paused"


class Transition(str, enum.Enum):
    ON_ENTER = "on_enter"
    ON_EXIT = "on_exit"


def enum_column(enum_cls: type[enum.Enum], name: str) -> Enum:
    """Store the enum *value* (lowercase), not the member name."""
    return Enum(
        enum_cls,
        name=name,
        native_enum=False,
        length=32,
        values_callable=lambda members: [m.value for m in members],
    )
