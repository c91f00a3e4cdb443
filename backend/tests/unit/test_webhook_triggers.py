from __future__ import annotations

import uuid
from typing import Any

from zapta.integrations.base import IntegrationError
from zapta.schemas.agent import ChatInput, EmailInput
from zapta.webhooks.triggers import AGENT_COMPLETED, AGENT_FAILED, WebhookNotifier


class _Endpoint:
    def __init__(self, wanted: bool = True, fail: bool = False) -> None:
        self.integration_id = str(uuid.uuid4())
        self.wanted = wanted
        self.fail = fail
        self.sent: list[dict[str, Any]] = []
        self.asked: list[dict[str, Any]] = []

    def execute_action(self, action: str, params: dict[str, Any]) -> Any:
        if action == "should_send":
            self.asked.append(params)
            return self.wanted
        if self.fail:
            raise IntegrationError("Webhook failed: 503 Service Unavailable")
        self.sent.append(params["payload"])
        return 200


class _Registry:
    def __init__(self, endpoints=None, error: Exception | None = None) -> None:
        self.endpoints = endpoints or []
        self.error = error
        self.requested: list[tuple[Any, str]] = []

    def get_clients(self, tenant_id, provider):  # noqa: ANN001
        self.requested.append((tenant_id, provider))
        if self.error is not None:
            raise self.error
        return self.endpoints


def test_completed_event_payload():
    tenant_id, agent_id = uuid.uuid4(), uuid.uuid4()
    endpoint = _Endpoint()
    registry = _Registry([endpoint])

    delivered = WebhookNotifier(registry).trigger_agent_completed_event(
        tenant_id,
        agent_id,
        "Ava",
        ChatInput(message="hi"),
        {"message": "hello", "actions": [{"type": "email"}]},
        duration_ms=42,
    )

    assert delivered == 1
    assert registry.requested == [(tenant_id, "webhook")]
    assert endpoint.asked == [
        {"event_type": AGENT_COMPLETED, "agent_id": str(agent_id), "success": True}
    ]
    payload = endpoint.sent[0]
    assert payload["event_type"] == AGENT_COMPLETED
    assert payload["tenant_id"] == str(tenant_id)
    assert payload["integration_id"] == endpoint.integration_id
    assert payload["timestamp"]
    assert payload["data"] == {
        "agent_id": str(agent_id),
        "agent_name": "Ava",
        "input_type": "chat",
        "message": "hello",
        "actions_count": 1,
        "duration_ms": 42,
        "success": True,
    }


def test_failed_event_payload():
    endpoint = _Endpoint()

    WebhookNotifier(_Registry([endpoint])).trigger_agent_failed_event(
        uuid.uuid4(), uuid.uuid4(), "Ava", EmailInput(subject="Hi"), "Model exploded"
    )

    data = endpoint.sent[0]["data"]
    assert endpoint.sent[0]["event_type"] == AGENT_FAILED
    assert data["input_type"] == "email"
    assert data["error_message"] == "Model exploded"
    assert data["success"] is False


def test_filtered_and_failing_endpoints_do_not_stop_delivery():
    skipped = _Endpoint(wanted=False)
    broken = _Endpoint(fail=True)
    healthy = _Endpoint()

    delivered = WebhookNotifier(_Registry([skipped, broken, healthy])).trigger_webhook_event(
        uuid.uuid4(), AGENT_COMPLETED, {"agent_id": "a", "success": True}
    )

    assert delivered == 1
    assert skipped.sent == []
    assert len(healthy.sent) == 1


def test_no_endpoints_and_load_failures_deliver_nothing():
    assert WebhookNotifier(_Registry([])).trigger_webhook_event(uuid.uuid4(), AGENT_FAILED, {}) == 0

    broken_registry = _Registry(error=RuntimeError("db is gone"))
    assert WebhookNotifier(broken_registry).trigger_webhook_event(uuid.uuid4(), AGENT_FAILED, {}) == 0
