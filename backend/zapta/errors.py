"""Exception taxonomy shared by the billing, knowledge and agent layers.

Messages of the policy errors are shown to end users verbatim.
"""
from __future__ import annotations


class ZaptaError(RuntimeError):
    """Base class for domain errors."""


class NotFoundError(ZaptaError):
    pass


class AgentNotFoundError(NotFoundError):
    def __init__(self, agent_id: object) -> None:
        super().__init__(f"Agent not found: {agent_id}")
        self.agent_id = agent_id


class TenantNotFoundError(NotFoundError):
    def __init__(self) -> None:
        super().__init__("Tenant not found")


class PolicyViolationError(ZaptaError):
    """A plan, subscription or quota rule rejected the request."""


_SUBSCRIPTION_MESSAGES = {
    "canceled": "This service is currently unavailable (subscription canceled).",
    "past_due": "This service is currently unavailable (payment overdue).",
    "incomplete": "This service is currently unavailable (payment incomplete).",
    "expired": "This service is currently unavailable (subscription expired).",
}


class SubscriptionInvalidError(PolicyViolationError):
    def __init__(self, status: str | None, reason: str | None = None) -> None:
        message = _SUBSCRIPTION_MESSAGES.get(status or "") or reason or "Service unavailable"
        super().__init__(message)
        self.status = status


class ModelNotAllowedError(PolicyViolationError):
    def __init__(self, model: str, plan_id: str, allowed: str) -> None:
        super().__init__(
            f"This agent uses {model} which is not available on your {plan_id} plan. "
            f"Available models: {allowed}. Please upgrade your plan or change the agent's model."
        )
        self.model = model
        self.plan_id = plan_id


class MessageLimitError(PolicyViolationError):
    def __init__(self, current: int, limit: int) -> None:
        super().__init__(
            f"Message limit reached ({current}/{limit}). Please upgrade your plan to continue."
        )
        self.current = current
        self.limit = limit


class IntegrationNotConnectedError(ZaptaError):
    def __init__(self, label: str) -> None:
        super().__init__(f"{label} integration not connected")
        self.label = label


class EmbeddingError(ZaptaError):
    """Every configured embedding provider failed."""
