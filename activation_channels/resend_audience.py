"""Resend audiences: enrolls segment members as email contacts."""

import logging
from typing import Any, Dict, Optional

import requests

from activation_channels.base import AutomationChannel, AutomationContext
from data_services.errors import AutomationError, IntegrationNotConfigured
from main_configs import GrowthConfigs

logger = logging.getLogger(__name__)


class ResendAudienceClient:
    def __init__(self, api_key: Optional[str] = None):
        self.api_key = api_key or GrowthConfigs.RESEND_API_KEY
        self.timeout = GrowthConfigs.HTTP_TIMEOUT_SECONDS

    def add_contact(
        self,
        audience_id: str,
        email: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> Dict[str, Any]:
        if not self.api_key:
            raise IntegrationNotConfigured("RESEND_API_KEY not configured")

        url = f"{GrowthConfigs.RESEND_API_URL}/audiences/{audience_id}/contacts"
        body: Dict[str, Any] = {"email": email, "unsubscribed": False}
        if first_name:
            body["first_name"] = first_name
        if last_name:
            body["last_name"] = last_name

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        try:
            resp = requests.post(url, json=body, headers=headers, timeout=self.timeout)
        except requests.exceptions.RequestException as exc:
            raise AutomationError(f"Resend add contact failed: {exc}") from exc

        if not resp.ok:
            raise AutomationError(f"Resend add contact failed: {resp.status_code} {resp.text}")
        try:
            return resp.json()
        except ValueError:
            return {"status_code": resp.status_code}


class EmailAudienceChannel(AutomationChannel):
    def __init__(self, client: Optional[ResendAudienceClient] = None):
        self.client = client or ResendAudienceClient()

    def execute(self, context: AutomationContext) -> Dict[str, Any]:
        config = context.config.email_audience
        if config is None:
            raise IntegrationNotConfigured("segment has no email audience configured")
        if config.trigger != context.transition:
            return {"status": "skipped", "channel": "email_audience", "reason": "trigger_mismatch"}
        if not context.person.email:
            logger.info("[Email Audience] Person %s has no email, skipping", context.person.id)
            return {"status": "skipped", "channel": "email_audience", "reason": "no_email"}
        if not config.audience_id:
            raise IntegrationNotConfigured(
                f"segment {context.segment_id} email automation has no audience_id"
            )

        response = self.client.add_contact(
            config.audience_id,
            context.person.email,
            first_name=context.person.first_name,
        )
        logger.info(
            "[Email Audience] Added person %s to audience %s (campaign=%s)",
            context.person.id, config.audience_id, config.campaign_id,
        )
        return {
            "status": "success",
            "channel": "email_audience",
            "audience_id": config.audience_id,
            "campaign_id": config.campaign_id,
            "response": response,
        }
