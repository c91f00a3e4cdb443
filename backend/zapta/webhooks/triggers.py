"""
Outbound event webhooks (`agent.completed`, `agent.failed`).

Every connected webhook integration of the tenant is offered the event and
decides through its own filters whether to receive it. Delivery is
best-effort: nothing here raises.
"""
from __future__ import annotations

import logging
import uuid
from typing import Any

from zapta.integrations.registry import IntegrationRegistry
from zapta.persistence.models import now_utc

logger = logging.getLogger(__name__)

AGENT_COMPLETED = "agent.completed"
AGENT_FAILED = "agent.failed"


class WebhookNotifier:
    def __init__(self, registry: IntegrationRegistry) -> None:
        self.registry = registry

    def trigger_webhook_event(
        self, tenant_id: uuid.UUID | str, event_type: str, data: dict[str, Any]
    ) -> int:
        """Returns the number of endpoints the event was delivered to."""
        logger.info("Webhook event %s for tenant %s", event_type, tenant_id)
        try:
            webhooks = self.registry.get_clients(tenant_id, "webhook")
        except Exception:
            logger.error("Could not load webhook integrations", exc_info=True)
            return 0
        if not webhooks:
            logger.debug("No webhook integrations configured for tenant %s", tenant_id)
            return 0

        delivered = 0
        for webhook in webhooks:
            try:
                wanted = webhook.execute_action(
                    "should_send",
                    {
                        "event_type": event_type,
                        "agent_id": data.get("agent_id"),
                        "success": data.get("success"),
                    },
                )
                if not wanted:
                    continue
                webhook.execute_action(
                    "send",
                    {
                        "payload": {
                            "event_type": event_type,
                            "timestamp": now_utc().isoformat(),
                            "tenant_id": str(tenant_id),
                            "integration_id": webhook.integration_id,
                            "data": data,
                        }
                    },
                )
                delivered += 1
            except Exception:
                logger.warning(
                    "Failed to send %s webhook %s", event_type, webhook.integration_id, exc_info=True
                )
        return delivered

    def trigger_agent_completed_event(
        self,
        tenant_id: uuid.UUID | str,
        agent_id: Any,
        agent_name: str,
        input: Any,
        output: dict[str, Any],
        duration_ms: int | None = None,
    ) -> int:
        return self.trigger_webhook_event(
            tenant_id,
            AGENT_COMPLETED,
            {
                "agent_id": str(agent_id),
                "agent_name": agent_name,
                "input_type": input.type,
                "message": output.get("message"),
                "actions_count": len(output.get("actions") or []),
                "duration_ms": duration_ms,
                "success": True,
            },
        )

    def trigger_agent_failed_event(
        self,
        tenant_id: uuid.UUID | str,
        agent_id: Any,
        agent_name: str,
        input: Any,
        error: str,
    ) -> int:
        return self.trigger_webhook_event(
            tenant_id,
            AGENT_FAILED,
            {
                "agent_id": str(agent_id),
                "agent_name": agent_name,
                "input_type": input.type,
                "error_message": error,
                "success": False,
            },
        )
