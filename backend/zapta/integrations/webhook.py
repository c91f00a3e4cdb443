from __future__ import annotations

import hashlib
import hmac
import json
import logging
from typing import Any

import httpx

from zapta.integrations.base import IntegrationClient, IntegrationError
from zapta.persistence.models import Integration

logger = logging.getLogger(__name__)

DEFAULT_EVENT_TYPES = ["agent.completed", "agent.failed"]
USER_AGENT = "Zapta-Webhook/1.0"


def sign_payload(body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


class WebhookIntegration(IntegrationClient):
    """Outbound HTTP POST of agent events to a tenant-configured URL."""

    provider = "webhook"

    def __init__(self, record: Integration, timeout: float = 10.0) -> None:
        super().__init__(record)
        creds = self.credentials
        self.webhook_url: str | None = creds.get("webhook_url")
        self.webhook_secret: str | None = creds.get("webhook_secret")
        self.event_types: list[str] = creds.get("event_types") or list(DEFAULT_EVENT_TYPES)
        self.agent_ids: list[str] = [str(a) for a in creds.get("agent_ids") or []]
        self.status_filter: str = creds.get("status_filter") or "all"
        self.timeout = timeout

    def should_send(self, event_type: str, agent_id: Any, success: bool) -> bool:
        if event_type not in self.event_types:
            logger.debug("Webhook %s skips event type %s", self.integration_id, event_type)
            return False
        # empty list means every agent
        if self.agent_ids and str(agent_id) not in self.agent_ids:
            logger.debug("Webhook %s skips agent %s", self.integration_id, agent_id)
            return False
        if self.status_filter == "success" and not success:
            return False
        if self.status_filter == "failure" and success:
            return False
        return True

    def send(self, payload: dict[str, Any]) -> int:
        if not self.webhook_url:
            raise IntegrationError("Webhook URL not configured")

        body = json.dumps(payload, default=str).encode("utf-8")
        headers = {"Content-Type": "application/json", "User-Agent": USER_AGENT}
        if self.webhook_secret:
            headers["X-Webhook-Signature"] = f"sha256={sign_payload(body, self.webhook_secret)}"

        try:
            with httpx.Client(timeout=self.timeout) as client:
                resp = client.post(self.webhook_url, content=body, headers=headers)
                resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise IntegrationError(
                f"Webhook failed: {exc.response.status_code} {exc.response.reason_phrase}"
            ) from exc
        except httpx.RequestError as exc:
            raise IntegrationError(f"Webhook request failed: {exc}") from exc

        logger.info("Webhook %s delivered (%s)", self.integration_id, resp.status_code)
        return resp.status_code

    def execute_action(self, action: str, params: dict[str, Any]) -> Any:
        if action == "send":
            return self.send(params["payload"])
        if action == "should_send":
            return self.should_send(params["event_type"], params.get("agent_id"), params["success"])
        raise IntegrationError(f"Unknown webhook action: {action}")
