"""Generic outbound webhook for segment transitions."""

import json
import logging
from typing import Any, Dict, Optional

import requests

from activation_channels.base import AutomationChannel, AutomationContext
from data_models.base import utcnow
from data_services.errors import AutomationError, IntegrationNotConfigured
from data_utils.signatures import signature_headers
from main_configs import GrowthConfigs

logger = logging.getLogger(__name__)


def build_webhook_payload(context: AutomationContext) -> Dict[str, Any]:
    person = context.person
    return {
        "personId": person.id,
        "email": person.email,
        "phone": person.phone,
        "name": person.name,
        "traits": person.traits,
        "segment": {
            "segmentId": context.segment_id,
            "segmentName": context.segment_name,
            "action": context.transition.value,
        },
        "timestamp": utcnow().isoformat(),
    }


class WebhookChannel(AutomationChannel):
    def __init__(self, timeout: Optional[int] = None):
        self.timeout = timeout or GrowthConfigs.HTTP_TIMEOUT_SECONDS

    def deliver(
        self,
        url: str,
        payload: Dict[str, Any],
        method: str = "POST",
        headers: Optional[Dict[str, str]] = None,
        secret: Optional[str] = None,
    ) -> int:
        """Send the JSON payload; returns the HTTP status. Non-2xx raises AutomationError."""
        body = json.dumps(payload, default=str).encode("utf-8")
        request_headers = {"Content-Type": "application/json", **(headers or {})}
        if secret:
            request_headers.update(signature_headers(secret, body))

        try:
            resp = requests.request(
                method, url, data=body, headers=request_headers, timeout=self.timeout
            )
        except requests.exceptions.RequestException as exc:
            raise AutomationError(f"Webhook {method} {url} failed: {exc}") from exc

        if not resp.ok:
            raise AutomationError(f"Webhook {method} {url} failed: {resp.status_code}")
        return resp.status_code

    def execute(self, context: AutomationContext) -> Dict[str, Any]:
        config = context.config.webhook
        if config is None:
            raise IntegrationNotConfigured("segment has no webhook configured")

        status_code = self.deliver(
            config.url,
            build_webhook_payload(context),
            method=config.method,
            headers=config.headers,
            secret=config.secret or GrowthConfigs.WEBHOOK_SIGNING_SECRET,
        )
        logger.info(
            "[Webhook] %s %s for person %s (%s)",
            config.method, config.url, context.person.id, context.transition.value,
        )
        return {"status": "success", "channel": "webhook", "status_code": status_code}
