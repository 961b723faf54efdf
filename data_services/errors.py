"""Exceptions raised by the growth services and integrations."""


class GrowthError(Exception):
    """Base class for growth data plane errors."""


class AutomationError(GrowthError):
    """An external automation (email audience, ad audience, webhook) failed. Retryable."""


class IntegrationNotConfigured(AutomationError):
    """Credentials or target ids for an integration are missing."""


class WebhookSignatureError(GrowthError):
    """An inbound webhook failed signature verification."""


class PersonNotResolved(GrowthError):
    """No person could be found for an inbound record's identifiers."""
