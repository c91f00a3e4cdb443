"""
IntegrationRegistry: turns stored `connected` integration rows into live clients.

Concrete third-party clients (email, HubSpot, calendar, Drive, Notion,
Stripe, Twilio) are registered by the host process through `factories`,
keyed by the provider name stored on the integration row. Only the
outbound webhook client is built in.
"""
from __future__ import annotations

import logging
import uuid
from collections.abc import Callable

from sqlalchemy import select
from sqlalchemy.orm import Session

from zapta.config.settings import Settings, get_settings
from zapta.integrations.base import IntegrationClient
from zapta.integrations.webhook import WebhookIntegration
from zapta.persistence.models import Agent, Integration, IntegrationStatus

logger = logging.getLogger(__name__)

ClientFactory = Callable[[Integration], IntegrationClient]


def default_factories(settings: Settings | None = None) -> dict[str, ClientFactory]:
    timeout = (settings or get_settings()).webhook_timeout_seconds
    return {"webhook": lambda record: WebhookIntegration(record, timeout=timeout)}


class IntegrationRegistry:
    def __init__(self, db: Session, factories: dict[str, ClientFactory] | None = None) -> None:
        self.db = db
        self.factories = factories if factories is not None else default_factories()

    def register(self, provider: str, factory: ClientFactory) -> None:
        self.factories[provider] = factory

    def _connected(self, tenant_id: uuid.UUID) -> list[Integration]:
        return list(
            self.db.execute(
                select(Integration)
                .where(
                    Integration.tenant_id == tenant_id,
                    Integration.status == IntegrationStatus.connected,
                )
                .order_by(Integration.created_at)
            ).scalars()
        )

    def _build(self, record: Integration) -> IntegrationClient | None:
        factory = self.factories.get(record.provider)
        if factory is None:
            logger.warning("Unknown integration provider: %s", record.provider)
            return None
        try:
            return factory(record)
        except Exception:
            logger.warning(
                "Could not create %s integration %s", record.provider, record.id, exc_info=True
            )
            return None

    def _allowed_ids(self, agent_id: uuid.UUID | None) -> set[str] | None:
        """None means no restriction; an empty set means nothing is allowed."""
        if agent_id is None:
            return None
        agent = self.db.get(Agent, agent_id)
        if agent is None:
            return None
        ids = (agent.config or {}).get("integration_ids")
        if ids is None:
            return None
        return {str(i) for i in ids}

    def get_integration_map(
        self, tenant_id: uuid.UUID, agent_id: uuid.UUID | None = None
    ) -> dict[str, IntegrationClient]:
        records = self._connected(tenant_id)
        allowed = self._allowed_ids(agent_id)
        if allowed is not None:
            records = [r for r in records if str(r.id) in allowed]

        clients: dict[str, IntegrationClient] = {}
        for record in records:
            client = self._build(record)
            if client is not None:
                clients.setdefault(client.provider, client)
        logger.debug("Integration map for tenant %s: %s", tenant_id, sorted(clients))
        return clients

    def get_clients(self, tenant_id: uuid.UUID, provider: str) -> list[IntegrationClient]:
        """Every connected client of one stored provider (e.g. all webhook endpoints)."""
        clients = []
        for record in self._connected(tenant_id):
            if record.provider != provider:
                continue
            client = self._build(record)
            if client is not None:
                clients.append(client)
        return clients
