from __future__ import annotations

import pytest

from zapta.billing.plans import (
    PLAN_LIMITS,
    UNLIMITED,
    can_create_agent,
    can_send_message,
    can_use_integration,
    can_use_model,
    format_allowed_models,
    get_plan_limits,
)


@pytest.mark.parametrize("plan_id", sorted(PLAN_LIMITS))
def test_message_limit_is_exclusive(plan_id):
    limit = get_plan_limits(plan_id).messages
    assert can_send_message(plan_id, limit - 1) is True
    assert can_send_message(plan_id, limit) is False


def test_unknown_plan_falls_back_to_free():
    assert get_plan_limits("platinum") is PLAN_LIMITS["free"]
    assert get_plan_limits(None) is PLAN_LIMITS["free"]


def test_unlimited_agents_on_enterprise():
    assert get_plan_limits("enterprise").agents == UNLIMITED
    assert can_create_agent("enterprise", 10_000) is True
    assert can_create_agent("free", 1) is False
    assert can_create_agent("free", 0) is True


def test_model_allowance():
    assert can_use_model("free", "gemini-2.0-flash") is True
    assert can_use_model("free", "gpt-5") is False
    assert can_use_model("pro", "gpt-5") is True
    assert format_allowed_models("free") == "gemini-2.0-flash, gemini-1.5-flash"
    assert format_allowed_models("business") == "all models"


def test_integration_allowance():
    assert can_use_integration("free", "email") is True
    assert can_use_integration("free", "sms") is False
    assert can_use_integration("starter", "calendar") is True
    assert can_use_integration("starter", "hubspot") is False
    assert can_use_integration("enterprise", "sms") is True
    assert can_use_integration("pro", "fax") is False
