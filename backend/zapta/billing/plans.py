"""
Plan limits and the pure policy checks built on them.

`-1` means unlimited wherever a numeric limit appears. Unknown plan ids
resolve to the free plan.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

ALL_MODELS: Literal["*"] = "*"
UNLIMITED = -1
DEFAULT_PLAN = "free"


@dataclass(frozen=True)
class IntegrationAllowance:
    email: int
    sms: int
    calendar: bool
    hubspot: bool
    webhooks: bool
    slack: bool


@dataclass(frozen=True)
class PlanLimits:
    plan_id: str
    name: str
    price: int
    agents: int
    messages: int
    storage_mb: int
    models: tuple[str, ...] | Literal["*"]
    integrations: IntegrationAllowance
    trigger_jobs: int
    team_seats: int


PLAN_LIMITS: dict[str, PlanLimits] = {
    "free": PlanLimits(
        plan_id="free",
        name="Free",
        price=0,
        agents=1,
        messages=100,
        storage_mb=10,
        models=("gemini-2.0-flash", "gemini-1.5-flash"),
        integrations=IntegrationAllowance(
            email=10, sms=0, calendar=False, hubspot=False, webhooks=False, slack=False
        ),
        trigger_jobs=100,
        team_seats=1,
    ),
    "starter": PlanLimits(
        plan_id="starter",
        name="Starter",
        price=19,
        agents=3,
        messages=1000,
        storage_mb=100,
        models=("gemini-2.0-flash", "gemini-1.5-flash", "gpt-3.5-turbo"),
        integrations=IntegrationAllowance(
            email=100, sms=20, calendar=True, hubspot=False, webhooks=False, slack=False
        ),
        trigger_jobs=1000,
        team_seats=1,
    ),
    "pro": PlanLimits(
        plan_id="pro",
        name="Pro",
        price=79,
        agents=10,
        messages=5000,
        storage_mb=1024,
        models=ALL_MODELS,
        integrations=IntegrationAllowance(
            email=500, sms=100, calendar=True, hubspot=True, webhooks=True, slack=False
        ),
        trigger_jobs=5000,
        team_seats=3,
    ),
    "business": PlanLimits(
        plan_id="business",
        name="Business",
        price=199,
        agents=50,
        messages=25000,
        storage_mb=5120,
        models=ALL_MODELS,
        integrations=IntegrationAllowance(
            email=2000, sms=500, calendar=True, hubspot=True, webhooks=True, slack=True
        ),
        trigger_jobs=20000,
        team_seats=5,
    ),
    "enterprise": PlanLimits(
        plan_id="enterprise",
        name="Enterprise",
        price=499,
        agents=UNLIMITED,
        messages=100000,
        storage_mb=51200,
        models=ALL_MODELS,
        integrations=IntegrationAllowance(
            email=UNLIMITED, sms=UNLIMITED, calendar=True, hubspot=True, webhooks=True, slack=True
        ),
        trigger_jobs=UNLIMITED,
        team_seats=UNLIMITED,
    ),
}


def get_plan_limits(plan_id: str | None) -> PlanLimits:
    return PLAN_LIMITS.get(plan_id or DEFAULT_PLAN, PLAN_LIMITS[DEFAULT_PLAN])


def _under_limit(limit: int, current: int) -> bool:
    return limit == UNLIMITED or current < limit


def can_send_message(plan_id: str | None, current_count: int) -> bool:
    return _under_limit(get_plan_limits(plan_id).messages, current_count)


def can_create_agent(plan_id: str | None, current_count: int) -> bool:
    """`current_count` must only include agents with status=active."""
    return _under_limit(get_plan_limits(plan_id).agents, current_count)


def can_use_model(plan_id: str | None, model_id: str) -> bool:
    models = get_plan_limits(plan_id).models
    return models == ALL_MODELS or model_id in models


def can_use_integration(plan_id: str | None, integration: str) -> bool:
    allowance = get_plan_limits(plan_id).integrations
    value = getattr(allowance, integration, None)
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    return value != 0


def format_allowed_models(plan_id: str | None) -> str:
    models = get_plan_limits(plan_id).models
    if models == ALL_MODELS:
        return "all models"
    return ", ".join(models)
