"""
Shared test fixtures for the Zapta backend.
"""
import os
import uuid
from typing import Any

import pytest
from sqlalchemy import JSON, create_engine
from sqlalchemy.orm import Session

# Force test settings before any zapta import
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite:///test.db")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret")

# Import Base and ALL models so they register with metadata
from zapta.persistence.database import Base
import zapta.persistence.models  # noqa: F401
from zapta.integrations.base import IntegrationClient


def _patch_vector_for_sqlite():
    """Store embedding vectors as JSON arrays when pgvector is installed."""
    column = Base.metadata.tables["documents"].columns["embedding"]
    if not isinstance(column.type, JSON):
        column.type = JSON()


_patch_vector_for_sqlite()


@pytest.fixture(scope="session")
def db_engine():
    """Create a test SQLite engine, shared across the session."""
    engine = create_engine(
        "sqlite:///test.db",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db_session(db_engine):
    """Per-test DB session with automatic rollback."""
    connection = db_engine.connect()
    transaction = connection.begin()
    session = Session(bind=connection)
    yield session
    session.close()
    transaction.rollback()
    connection.close()


# ── Factories ─────────────────────────────────────────────────────────────────


@pytest.fixture()
def make_tenant(db_session):
    from zapta.persistence.models import Tenant

    def _make(plan: str = "free", messages: int = 0, storage_bytes: int = 0, reset_at=None, name="Acme"):
        tenant = Tenant(
            id=uuid.uuid4(),
            name=name,
            slug=f"tenant-{uuid.uuid4().hex[:8]}",
            subscription_plan=plan,
            usage_messages_month=messages,
            usage_storage_bytes=storage_bytes,
            usage_reset_at=reset_at,
        )
        db_session.add(tenant)
        db_session.commit()
        return tenant

    return _make


@pytest.fixture()
def make_subscription(db_session):
    from zapta.persistence.models import Subscription, SubscriptionStatus

    def _make(
        tenant,
        plan_id: str = "pro",
        status: SubscriptionStatus = SubscriptionStatus.active,
        period_end=None,
        cancel_at_period_end: bool = False,
        created_at=None,
    ):
        subscription = Subscription(
            id=uuid.uuid4(),
            tenant_id=tenant.id,
            plan_id=plan_id,
            status=status,
            current_period_end=period_end,
            cancel_at_period_end=cancel_at_period_end,
        )
        if created_at is not None:
            subscription.created_at = created_at
        db_session.add(subscription)
        db_session.commit()
        return subscription

    return _make


@pytest.fixture()
def make_agent(db_session):
    from zapta.persistence.models import Agent, AgentStatus, AgentType

    def _make(
        tenant,
        type: AgentType = AgentType.customer_assistant,
        config: dict[str, Any] | None = None,
        status: AgentStatus = AgentStatus.active,
        name: str = "Ava",
    ):
        agent = Agent(
            id=uuid.uuid4(),
            tenant_id=tenant.id,
            name=name,
            type=type,
            config=config if config is not None else {"instructions": "Help customers."},
            status=status,
        )
        db_session.add(agent)
        db_session.commit()
        return agent

    return _make


@pytest.fixture()
def make_integration(db_session):
    from zapta.persistence.models import Integration, IntegrationStatus

    def _make(
        tenant,
        provider: str,
        credentials: dict[str, Any] | None = None,
        status: IntegrationStatus = IntegrationStatus.connected,
    ):
        integration = Integration(
            id=uuid.uuid4(),
            tenant_id=tenant.id,
            provider=provider,
            type="api",
            credentials=credentials or {},
            config={},
            status=status,
        )
        db_session.add(integration)
        db_session.commit()
        return integration

    return _make


class RecordingIntegration(IntegrationClient):
    """Integration client double: records every action, returns a canned result."""

    def __init__(self, record, provider: str, result: Any = None, error: Exception | None = None):
        super().__init__(record)
        self.provider = provider
        self.result = result if result is not None else {"ok": True}
        self.error = error
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def execute_action(self, action: str, params: dict[str, Any]) -> Any:
        self.calls.append((action, params))
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture()
def recording_factory():
    """Factory map entry building RecordingIntegration for one provider."""
    built: dict[str, RecordingIntegration] = {}

    def _factory(provider: str, **kwargs):
        def build(record):
            client = RecordingIntegration(record, provider, **kwargs)
            built[provider] = client
            return client

        return build

    _factory.built = built
    return _factory


@pytest.fixture()
def make_client():
    """Standalone RecordingIntegration not backed by a stored row."""
    from types import SimpleNamespace

    def _make(provider: str, **kwargs) -> RecordingIntegration:
        record = SimpleNamespace(id=uuid.uuid4(), credentials={})
        return RecordingIntegration(record, provider, **kwargs)

    return _make


@pytest.fixture()
def api_client(db_session):
    """FastAPI test client whose requests share the test's session."""
    from fastapi.testclient import TestClient
    from zapta.main import app
    from zapta.persistence.database import get_db

    app.dependency_overrides[get_db] = lambda: db_session
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture()
def auth_headers():
    """Bearer header for a token scoped to the given tenant."""
    from zapta.auth.security import create_access_token

    def _headers(tenant) -> dict[str, str]:
        tenant_id = getattr(tenant, "id", tenant)
        return {"Authorization": f"Bearer {create_access_token(tenant_id)}"}

    return _headers
