"""
Post-generation actions for customer assistants triggered by email/SMS.

These run after the model has answered and only add entries to the returned
`actions` list; a failing action is recorded as `success: False` and never
fails the execution.
"""
from __future__ import annotations

import logging
import re
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from zapta.agents.tools import EMAIL, HUBSPOT
from zapta.integrations.base import IntegrationClient
from zapta.integrations.registry import IntegrationRegistry
from zapta.persistence.models import Agent
from zapta.schemas.agent import ChatInput, EmailInput

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")


def _input_text(agent_input: Any) -> str:
    parts = []
    for attr in ("from_", "subject", "body", "message"):
        value = getattr(agent_input, attr, None)
        if isinstance(value, str) and value:
            parts.append(value)
    return "\n".join(parts)


def _email_reply(client: IntegrationClient, agent_input: EmailInput, response: str) -> dict[str, Any]:
    try:
        client.execute_action(
            "send_email",
            {
                "to": agent_input.from_,
                "subject": f"Re: {agent_input.subject or 'Your message'}",
                "body": response,
            },
        )
    except Exception:
        logger.warning("Email auto-reply to %s failed", agent_input.from_, exc_info=True)
        return {
            "type": "email",
            "action": "send_email",
            "error": "Failed to send email response",
            "success": False,
        }
    return {
        "type": "email",
        "action": "send_email",
        "result": {"to": agent_input.from_},
        "success": True,
    }


def _contact_capture(client: IntegrationClient, email: str) -> dict[str, Any]:
    try:
        result = client.execute_action("create_contact", {"email": email})
    except Exception:
        logger.warning("Contact capture for %s failed", email, exc_info=True)
        return {
            "type": "crm",
            "action": "create_contact",
            "error": "Failed to create contact",
            "success": False,
        }
    return {"type": "crm", "action": "create_contact", "result": result, "success": True}


def process_agent_actions(
    registry: IntegrationRegistry, agent: Agent, agent_input: Any, response: str
) -> list[dict[str, Any]]:
    actions: list[dict[str, Any]] = []
    # widget chat never touches integrations
    if isinstance(agent_input, ChatInput):
        return actions

    try:
        integration_map = registry.get_integration_map(agent.tenant_id, agent.id)
    except SQLAlchemyError:
        logger.error("Error processing agent actions", exc_info=True)
        return actions
    logger.info(
        "Available integrations for triggered agent %s: %s", agent.id, ", ".join(sorted(integration_map))
    )

    if isinstance(agent_input, EmailInput) and EMAIL in integration_map and agent_input.from_:
        actions.append(_email_reply(integration_map[EMAIL], agent_input, response))

    if "contact" in response.lower() and HUBSPOT in integration_map:
        found = EMAIL_PATTERN.search(_input_text(agent_input))
        if found:
            actions.append(_contact_capture(integration_map[HUBSPOT], found.group(0)))

    return actions
