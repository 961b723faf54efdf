"""Meta custom audience membership, keyed by hashed email."""

import logging
from typing import Any, Dict, List, Optional

import requests

from activation_channels.base import AutomationChannel, AutomationContext
from activation_channels.meta_capi import hash_value
from data_services.errors import AutomationError, IntegrationNotConfigured
from main_configs import GrowthConfigs

logger = logging.getLogger(__name__)


class MetaAudienceClient:
    def __init__(self, access_token: Optional[str] = None):
        self.access_token = access_token or GrowthConfigs.META_ACCESS_TOKEN
        self.timeout = GrowthConfigs.HTTP_TIMEOUT_SECONDS

    def _endpoint(self, audience_id: str) -> str:
        return (
            f"{GrowthConfigs.META_GRAPH_API_URL}/{GrowthConfigs.META_GRAPH_API_VERSION}"
            f"/{audience_id}/users"
        )

    def _post_users(self, audience_id: str, emails: List[str], removal: bool) -> Dict[str, Any]:
        if not self.access_token:
            raise IntegrationNotConfigured("META_ACCESS_TOKEN not configured")

        payload: Dict[str, Any] = {
            "schema": ["EMAIL"],
            "data": [[hash_value(email)] for email in emails if email],
        }
        if removal:
            payload["is_removal"] = True

        action = "remove from" if removal else "add to"
        try:
            resp = requests.post(
                self._endpoint(audience_id),
                json={"access_token": self.access_token, "payload": payload},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as exc:
            raise AutomationError(f"Failed to {action} custom audience {audience_id}: {exc}") from exc

        if not resp.ok:
            raise AutomationError(
                f"Failed to {action} custom audience {audience_id}: {resp.status_code} {resp.text}"
            )
        try:
            return resp.json()
        except ValueError:
            return {"status_code": resp.status_code}

    def add_members(self, audience_id: str, emails: List[str]) -> Dict[str, Any]:
        return self._post_users(audience_id, emails, removal=False)

    def remove_members(self, audience_id: str, emails: List[str]) -> Dict[str, Any]:
        return self._post_users(audience_id, emails, removal=True)


class AdAudienceChannel(AutomationChannel):
    def __init__(self, client: Optional[MetaAudienceClient] = None):
        self.client = client or MetaAudienceClient()

    def execute(self, context: AutomationContext) -> Dict[str, Any]:
        config = context.config.ad_audience
        if config is None:
            raise IntegrationNotConfigured("segment has no ad audience configured")
        if not context.person.email:
            logger.info("[Ad Audience] Person %s has no email, skipping", context.person.id)
            return {"status": "skipped", "channel": "ad_audience", "reason": "no_email"}

        add = config.should_add(context.transition)
        if add:
            self.client.add_members(config.custom_audience_id, [context.person.email])
        else:
            self.client.remove_members(config.custom_audience_id, [context.person.email])

        logger.info(
            "[Ad Audience] %s person %s %s audience %s",
            "Added" if add else "Removed", context.person.id,
            "to" if add else "from", config.custom_audience_id,
        )
        return {
            "status": "success",
            "channel": "ad_audience",
            "action": "add" if add else "remove",
            "audience_id": config.custom_audience_id,
        }
