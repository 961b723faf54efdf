import logging
from typing import Any, Dict, Type

from activation_channels.base import AutomationChannel, AutomationContext
from activation_channels.meta_audience import AdAudienceChannel
from activation_channels.resend_audience import EmailAudienceChannel
from activation_channels.webhook import WebhookChannel

logger = logging.getLogger(__name__)

EMAIL_AUDIENCE = "email_audience"
AD_AUDIENCE = "ad_audience"
WEBHOOK = "webhook"


class AutomationChannels:
    """Factory + registry for segment automation channels.

    Use `register_channel` to swap in replacements in tests or at runtime.
    """

    _channels: Dict[str, Type[AutomationChannel]] = {
        EMAIL_AUDIENCE: EmailAudienceChannel,
        AD_AUDIENCE: AdAudienceChannel,
        WEBHOOK: WebhookChannel,
    }

    @classmethod
    def register_channel(cls, key: str, channel_cls: Type[AutomationChannel]):
        """Register or override a channel handler by key."""
        cls._channels[key.lower()] = channel_cls
        logger.debug("Registered automation channel '%s' -> %s", key, channel_cls)

    @classmethod
    def list_channels(cls) -> Dict[str, Type[AutomationChannel]]:
        return dict(cls._channels)

    @classmethod
    def execute(cls, channel_key: str, context: AutomationContext) -> Dict[str, Any]:
        """Run one channel. Errors propagate; retry policy belongs to the caller."""
        channel_cls = cls._channels.get((channel_key or "").lower().strip())
        if channel_cls is None:
            raise ValueError(f"Unsupported automation channel: {channel_key}")
        return channel_cls().execute(context)
