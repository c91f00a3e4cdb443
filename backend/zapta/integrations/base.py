from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from zapta.errors import ZaptaError
from zapta.persistence.models import Integration


class IntegrationError(ZaptaError):
    """Integration-level execution exception."""


class IntegrationClient(ABC):
    """A connected third-party account exposing `execute_action(action, params)`.

    `provider` is the key the client is registered under in an integration
    map and the key tools look it up by (e.g. `google-calendar`).
    """

    provider: str = "integration"

    def __init__(self, record: Integration) -> None:
        self.record = record

    @property
    def integration_id(self) -> str:
        return str(self.record.id)

    @property
    def credentials(self) -> dict[str, Any]:
        return dict(self.record.credentials or {})

    @abstractmethod
    def execute_action(self, action: str, params: dict[str, Any]) -> Any:
        """Run one named action and return its provider result unmodified."""

    def handle_webhook(self, payload: dict[str, Any]) -> None:
        raise IntegrationError(f"{self.provider} does not accept inbound webhooks")
