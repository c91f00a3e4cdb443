"""
UsageLedger: subscription validity and per-tenant message quotas.

Quota and validity outcomes come back as structured results; the only error
raised is TenantNotFoundError, so callers can turn results into user-facing
messages themselves.

The message counter is incremented under a row lock with a SQL-side
`x = x + 1`, so concurrent executions for one tenant never lose an increment.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

from dateutil.relativedelta import relativedelta
from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from zapta.billing.plans import DEFAULT_PLAN, can_create_agent, can_send_message, get_plan_limits
from zapta.errors import TenantNotFoundError
from zapta.persistence.models import (
    Agent,
    AgentStatus,
    Subscription,
    SubscriptionStatus,
    Tenant,
    as_utc,
    now_utc,
)

logger = logging.getLogger(__name__)

GRACE_PERIOD = timedelta(hours=24)
PAID_PERIOD_FALLBACK = timedelta(days=30)

_INVALID_STATUSES = {
    SubscriptionStatus.canceled: "Subscription canceled",
    SubscriptionStatus.past_due: "Payment past due",
    SubscriptionStatus.incomplete: "Payment incomplete",
}


@dataclass
class SubscriptionCheck:
    valid: bool
    reason: str | None = None
    subscription_status: str | None = None


@dataclass
class LimitCheck:
    allowed: bool
    current: int
    limit: int
    plan_id: str


def first_of_next_month(now: datetime) -> datetime:
    return (now + relativedelta(months=1)).replace(
        day=1, hour=0, minute=0, second=0, microsecond=0
    )


class UsageLedger:
    def __init__(self, db: Session) -> None:
        self.db = db

    # ── Lookups ───────────────────────────────────────────────────────────────

    def _get_tenant(self, tenant_id: uuid.UUID, *, for_update: bool = False) -> Tenant:
        stmt = select(Tenant).where(Tenant.id == tenant_id)
        if for_update:
            stmt = stmt.with_for_update()
        tenant = self.db.execute(stmt).scalar_one_or_none()
        if tenant is None:
            raise TenantNotFoundError()
        return tenant

    def latest_subscription(self, tenant_id: uuid.UUID) -> Subscription | None:
        return self.db.execute(
            select(Subscription)
            .where(Subscription.tenant_id == tenant_id)
            .order_by(Subscription.created_at.desc())
            .limit(1)
        ).scalar_one_or_none()

    def active_subscription(self, tenant_id: uuid.UUID) -> Subscription | None:
        return self.db.execute(
            select(Subscription)
            .where(
                Subscription.tenant_id == tenant_id,
                Subscription.status == SubscriptionStatus.active,
            )
            .order_by(Subscription.created_at.desc())
            .limit(1)
        ).scalar_one_or_none()

    def resolve_plan_id(self, tenant: Tenant) -> str:
        """The active subscription wins over the plan cached on the tenant row."""
        subscription = self.active_subscription(tenant.id)
        if subscription and subscription.plan_id:
            return subscription.plan_id
        return tenant.subscription_plan or DEFAULT_PLAN

    # ── Subscription validity ────────────────────────────────────────────────

    def validate_subscription(
        self, tenant_id: uuid.UUID, now: datetime | None = None
    ) -> SubscriptionCheck:
        tenant = self.db.get(Tenant, tenant_id)
        if tenant is None:
            return SubscriptionCheck(valid=False, reason="Tenant not found")

        now = now or now_utc()
        subscription = self.latest_subscription(tenant_id)
        plan_id = (
            (subscription.plan_id if subscription else None)
            or tenant.subscription_plan
            or DEFAULT_PLAN
        )
        if plan_id == DEFAULT_PLAN:
            return SubscriptionCheck(valid=True)

        if subscription is None:
            logger.info("Tenant %s on %s without subscription; downgrading to free", tenant_id, plan_id)
            tenant.subscription_plan = DEFAULT_PLAN
            self.db.commit()
            return SubscriptionCheck(valid=True)

        status = SubscriptionStatus(subscription.status)
        if status in _INVALID_STATUSES:
            return SubscriptionCheck(
                valid=False, reason=_INVALID_STATUSES[status], subscription_status=status.value
            )

        period_end = as_utc(subscription.current_period_end)
        if period_end and now > period_end and not subscription.cancel_at_period_end:
            if now > period_end + GRACE_PERIOD:
                return SubscriptionCheck(
                    valid=False, reason="Subscription expired", subscription_status="expired"
                )

        return SubscriptionCheck(valid=True, subscription_status=status.value)

    # ── Limits ────────────────────────────────────────────────────────────────

    def check_message_limit(self, tenant_id: uuid.UUID) -> LimitCheck:
        tenant = self._get_tenant(tenant_id)
        plan_id = self.resolve_plan_id(tenant)
        current = tenant.usage_messages_month or 0
        return LimitCheck(
            allowed=can_send_message(plan_id, current),
            current=current,
            limit=get_plan_limits(plan_id).messages,
            plan_id=plan_id,
        )

    def check_agent_limit(self, tenant_id: uuid.UUID) -> LimitCheck:
        tenant = self._get_tenant(tenant_id)
        plan_id = self.resolve_plan_id(tenant)
        current = self.db.execute(
            select(func.count(Agent.id)).where(
                Agent.tenant_id == tenant_id, Agent.status == AgentStatus.active
            )
        ).scalar_one()
        return LimitCheck(
            allowed=can_create_agent(plan_id, current),
            current=current,
            limit=get_plan_limits(plan_id).agents,
            plan_id=plan_id,
        )

    # ── Metering ──────────────────────────────────────────────────────────────

    def increment_message_usage(self, tenant_id: uuid.UUID, now: datetime | None = None) -> int:
        """Count one billable message, rolling the period over when it has ended.

        The boundary is exclusive: a call at exactly `usage_reset_at` still
        counts against the old period.
        """
        now = now or now_utc()
        tenant = self._get_tenant(tenant_id, for_update=True)
        plan_id = self.resolve_plan_id(tenant)
        is_paid = plan_id != DEFAULT_PLAN

        subscription = self.active_subscription(tenant_id) if is_paid else None
        period_end = as_utc(subscription.current_period_end) if subscription else None

        # the stored boundary marks the end of the period being counted; the
        # subscription period end only seeds it and becomes the next boundary
        reset_at = as_utc(tenant.usage_reset_at) or period_end or first_of_next_month(now)

        if now > reset_at:
            if is_paid:
                next_reset = period_end if period_end and period_end > now else now + PAID_PERIOD_FALLBACK
            else:
                next_reset = first_of_next_month(now)
            tenant.usage_messages_month = 1
            tenant.usage_reset_at = next_reset
            self.db.commit()
            logger.info(
                "Usage period rolled over for tenant %s (next reset %s)",
                tenant_id, next_reset.isoformat(),
            )
            return 1

        values: dict = {"usage_messages_month": Tenant.usage_messages_month + 1}
        if tenant.usage_reset_at is None:
            values["usage_reset_at"] = reset_at
        self.db.execute(
            update(Tenant)
            .where(Tenant.id == tenant_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        self.db.refresh(tenant)
        return tenant.usage_messages_month

    # ── Reporting ─────────────────────────────────────────────────────────────

    def get_usage_summary(self, tenant_id: uuid.UUID) -> dict:
        tenant = self._get_tenant(tenant_id)
        plan_id = self.resolve_plan_id(tenant)
        limits = get_plan_limits(plan_id)
        agents = self.check_agent_limit(tenant_id)
        return {
            "plan_id": plan_id,
            "plan_name": limits.name,
            "messages": {"used": tenant.usage_messages_month or 0, "limit": limits.messages},
            "agents": {"used": agents.current, "limit": limits.agents},
            "storage_mb": {
                "used": round((tenant.usage_storage_bytes or 0) / (1024 * 1024), 2),
                "limit": limits.storage_mb,
            },
            "reset_at": as_utc(tenant.usage_reset_at),
        }
