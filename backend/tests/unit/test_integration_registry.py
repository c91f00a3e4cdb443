from __future__ import annotations

import json
import uuid
from datetime import timedelta

import httpx
import pytest

from zapta.integrations.base import IntegrationError
from zapta.integrations.registry import IntegrationRegistry, default_factories
from zapta.integrations.webhook import WebhookIntegration, sign_payload
from zapta.persistence.models import IntegrationStatus, now_utc


@pytest.fixture()
def registry(db_session, recording_factory):
    factories = default_factories()
    factories["hubspot"] = recording_factory("hubspot")
    factories["email"] = recording_factory("email")
    return IntegrationRegistry(db_session, factories)


def test_map_contains_connected_known_providers(registry, make_tenant, make_integration):
    tenant = make_tenant()
    make_integration(tenant, "hubspot")
    make_integration(tenant, "email", status=IntegrationStatus.disconnected)
    make_integration(tenant, "fax-machine")

    clients = registry.get_integration_map(tenant.id)

    assert sorted(clients) == ["hubspot"]


def test_map_is_tenant_scoped(registry, make_tenant, make_integration):
    owner, other = make_tenant(), make_tenant()
    make_integration(owner, "hubspot")

    assert registry.get_integration_map(other.id) == {}


def test_first_connected_integration_wins(db_session, registry, make_tenant, make_integration):
    tenant = make_tenant()
    older = make_integration(tenant, "hubspot")
    newer = make_integration(tenant, "hubspot")
    older.created_at = now_utc() - timedelta(hours=1)
    db_session.commit()

    clients = registry.get_integration_map(tenant.id)

    assert clients["hubspot"].record.id == older.id
    assert clients["hubspot"].record.id != newer.id


@pytest.mark.parametrize("ids,expected", [(None, ["email", "hubspot"]), ([], []), ("hubspot", ["hubspot"])])
def test_agent_integration_ids_restrict_the_map(
    registry, make_tenant, make_agent, make_integration, ids, expected
):
    tenant = make_tenant()
    hubspot = make_integration(tenant, "hubspot")
    make_integration(tenant, "email")
    if ids == "hubspot":
        ids = [str(hubspot.id)]
    agent = make_agent(tenant, config={"integration_ids": ids})

    clients = registry.get_integration_map(tenant.id, agent.id)

    assert sorted(clients) == expected


def test_factory_failure_skips_integration(db_session, make_tenant, make_integration):
    def explode(record):
        raise ValueError("bad credentials")

    tenant = make_tenant()
    make_integration(tenant, "hubspot")
    registry = IntegrationRegistry(db_session, {"hubspot": explode})

    assert registry.get_integration_map(tenant.id) == {}


def test_get_clients_returns_every_endpoint(registry, make_tenant, make_integration):
    tenant = make_tenant()
    make_integration(tenant, "webhook", {"webhook_url": "https://a.example.com/hook"})
    make_integration(tenant, "webhook", {"webhook_url": "https://b.example.com/hook"})
    make_integration(tenant, "hubspot")

    clients = registry.get_clients(tenant.id, "webhook")

    assert sorted(c.webhook_url for c in clients) == [
        "https://a.example.com/hook",
        "https://b.example.com/hook",
    ]
    assert all(isinstance(c, WebhookIntegration) for c in clients)


# ── WebhookIntegration ───────────────────────────────────────────────────────


class _FakeHttp:
    status_code = 200
    requests: list[tuple[str, bytes, dict]] = []

    def __init__(self, *args, **kwargs):  # noqa: ANN002, ANN003
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):  # noqa: ANN001
        return False

    def post(self, url, content=None, headers=None):  # noqa: ANN001
        type(self).requests.append((url, content, headers))
        return httpx.Response(type(self).status_code, request=httpx.Request("POST", url))


@pytest.fixture()
def fake_http(monkeypatch):
    class Client(_FakeHttp):
        requests = []

    monkeypatch.setattr("zapta.integrations.webhook.httpx.Client", Client)
    return Client


def _webhook(make_tenant, make_integration, **credentials) -> WebhookIntegration:
    credentials.setdefault("webhook_url", "https://hooks.example.com/zapta")
    return WebhookIntegration(make_integration(make_tenant(), "webhook", credentials))


def test_should_send_filters(make_tenant, make_integration):
    agent_id = uuid.uuid4()
    hook = _webhook(
        make_tenant,
        make_integration,
        event_types=["agent.completed"],
        agent_ids=[str(agent_id)],
        status_filter="success",
    )

    assert hook.should_send("agent.completed", agent_id, True) is True
    assert hook.should_send("agent.failed", agent_id, False) is False
    assert hook.should_send("agent.completed", uuid.uuid4(), True) is False
    assert hook.should_send("agent.completed", agent_id, False) is False


def test_should_send_defaults_accept_everything(make_tenant, make_integration):
    hook = _webhook(make_tenant, make_integration)

    assert hook.should_send("agent.completed", uuid.uuid4(), True) is True
    assert hook.should_send("agent.failed", uuid.uuid4(), False) is True


def test_send_signs_body(fake_http, make_tenant, make_integration):
    hook = _webhook(make_tenant, make_integration, webhook_secret="s3cret")

    status = hook.execute_action("send", {"payload": {"event_type": "agent.completed"}})

    assert status == 200
    url, body, headers = fake_http.requests[0]
    assert url == "https://hooks.example.com/zapta"
    assert json.loads(body) == {"event_type": "agent.completed"}
    assert headers["X-Webhook-Signature"] == f"sha256={sign_payload(body, 's3cret')}"
    assert headers["User-Agent"] == "Zapta-Webhook/1.0"


def test_send_without_secret_has_no_signature(fake_http, make_tenant, make_integration):
    hook = _webhook(make_tenant, make_integration)

    hook.send({"event_type": "agent.failed"})

    assert "X-Webhook-Signature" not in fake_http.requests[0][2]


def test_send_http_error_raises(fake_http, make_tenant, make_integration):
    fake_http.status_code = 500
    hook = _webhook(make_tenant, make_integration)

    with pytest.raises(IntegrationError, match="Webhook failed: 500 Internal Server Error"):
        hook.send({})


def test_send_requires_url(make_tenant, make_integration):
    hook = WebhookIntegration(make_integration(make_tenant(), "webhook", {}))

    with pytest.raises(IntegrationError, match="Webhook URL not configured"):
        hook.send({})


def test_unknown_webhook_action(make_tenant, make_integration):
    hook = _webhook(make_tenant, make_integration)

    with pytest.raises(IntegrationError, match="Unknown webhook action"):
        hook.execute_action("explode", {})
