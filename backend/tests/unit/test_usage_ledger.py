from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

import pytest

from zapta.billing.usage import UsageLedger, first_of_next_month
from zapta.errors import TenantNotFoundError
from zapta.persistence.models import SubscriptionStatus, Tenant, as_utc, now_utc


def _reload(db_session, tenant_id) -> Tenant:
    db_session.expire_all()
    return db_session.get(Tenant, tenant_id)


# ── validate_subscription ────────────────────────────────────────────────────


def test_free_plan_is_always_valid(db_session, make_tenant, make_subscription):
    tenant = make_tenant("free")
    make_subscription(tenant, plan_id="free", status=SubscriptionStatus.canceled)

    check = UsageLedger(db_session).validate_subscription(tenant.id)

    assert check.valid is True


def test_paid_plan_without_subscription_is_downgraded(db_session, make_tenant):
    tenant = make_tenant("pro")

    check = UsageLedger(db_session).validate_subscription(tenant.id)

    assert check.valid is True
    assert _reload(db_session, tenant.id).subscription_plan == "free"


@pytest.mark.parametrize(
    "status,reason",
    [
        (SubscriptionStatus.canceled, "Subscription canceled"),
        (SubscriptionStatus.past_due, "Payment past due"),
        (SubscriptionStatus.incomplete, "Payment incomplete"),
    ],
)
def test_invalid_subscription_statuses(db_session, make_tenant, make_subscription, status, reason):
    tenant = make_tenant("pro")
    make_subscription(tenant, status=status)

    check = UsageLedger(db_session).validate_subscription(tenant.id)

    assert check.valid is False
    assert check.reason == reason
    assert check.subscription_status == status.value


def test_grace_window_after_period_end(db_session, make_tenant, make_subscription):
    now = now_utc()
    tenant = make_tenant("pro")
    make_subscription(tenant, period_end=now - timedelta(hours=10))
    ledger = UsageLedger(db_session)

    assert ledger.validate_subscription(tenant.id, now=now).valid is True

    expired = ledger.validate_subscription(tenant.id, now=now + timedelta(hours=15))
    assert expired.valid is False
    assert expired.subscription_status == "expired"


def test_cancel_at_period_end_skips_expiry(db_session, make_tenant, make_subscription):
    now = now_utc()
    tenant = make_tenant("pro")
    make_subscription(tenant, period_end=now - timedelta(days=3), cancel_at_period_end=True)

    assert UsageLedger(db_session).validate_subscription(tenant.id, now=now).valid is True


def test_unknown_tenant_is_invalid(db_session):
    check = UsageLedger(db_session).validate_subscription(uuid.uuid4())
    assert check.valid is False
    assert check.reason == "Tenant not found"


# ── limits ────────────────────────────────────────────────────────────────────


def test_message_limit_reached_on_free_plan(db_session, make_tenant):
    tenant = make_tenant("free", messages=100)

    check = UsageLedger(db_session).check_message_limit(tenant.id)

    assert (check.allowed, check.current, check.limit) == (False, 100, 100)


def test_active_subscription_plan_wins_over_tenant_plan(db_session, make_tenant, make_subscription):
    tenant = make_tenant("free", messages=100)
    make_subscription(tenant, plan_id="starter")

    check = UsageLedger(db_session).check_message_limit(tenant.id)

    assert check.plan_id == "starter"
    assert check.allowed is True


def test_agent_limit_counts_active_agents_only(db_session, make_tenant, make_agent):
    from zapta.persistence.models import AgentStatus

    tenant = make_tenant("free")
    make_agent(tenant, status=AgentStatus.paused)
    ledger = UsageLedger(db_session)

    assert ledger.check_agent_limit(tenant.id).allowed is True
    make_agent(tenant)
    assert ledger.check_agent_limit(tenant.id).allowed is False


def test_check_message_limit_unknown_tenant(db_session):
    with pytest.raises(TenantNotFoundError):
        UsageLedger(db_session).check_message_limit(uuid.uuid4())


# ── increment_message_usage ──────────────────────────────────────────────────


def test_first_increment_seeds_reset_boundary(db_session, make_tenant):
    now = datetime(2026, 3, 14, 12, 0, tzinfo=timezone.utc)
    tenant = make_tenant("free", messages=4)

    count = UsageLedger(db_session).increment_message_usage(tenant.id, now=now)

    assert count == 5
    reloaded = _reload(db_session, tenant.id)
    assert as_utc(reloaded.usage_reset_at) == datetime(2026, 4, 1, tzinfo=timezone.utc)


def test_increment_at_exact_boundary_does_not_reset(db_session, make_tenant):
    boundary = datetime(2026, 5, 1, tzinfo=timezone.utc)
    tenant = make_tenant("free", messages=42, reset_at=boundary)
    ledger = UsageLedger(db_session)

    assert ledger.increment_message_usage(tenant.id, now=boundary) == 43

    after = boundary + timedelta(microseconds=1)
    assert ledger.increment_message_usage(tenant.id, now=after) == 1
    assert as_utc(_reload(db_session, tenant.id).usage_reset_at) == datetime(
        2026, 6, 1, tzinfo=timezone.utc
    )


def test_paid_rollover_uses_subscription_period_end(db_session, make_tenant, make_subscription):
    now = now_utc()
    period_end = (now + timedelta(days=20)).replace(microsecond=0)
    tenant = make_tenant("pro", messages=900, reset_at=now - timedelta(days=1))
    make_subscription(tenant, plan_id="pro", period_end=period_end)

    count = UsageLedger(db_session).increment_message_usage(tenant.id, now=now)

    assert count == 1
    assert as_utc(_reload(db_session, tenant.id).usage_reset_at) == period_end


def test_paid_rollover_without_future_period_end(db_session, make_tenant, make_subscription):
    now = now_utc()
    tenant = make_tenant("pro", messages=10, reset_at=now - timedelta(days=2))
    make_subscription(tenant, plan_id="pro", period_end=now - timedelta(days=2))

    UsageLedger(db_session).increment_message_usage(tenant.id, now=now)

    reset_at = as_utc(_reload(db_session, tenant.id).usage_reset_at)
    assert reset_at == now + timedelta(days=30)


def test_sequential_increments_accumulate(db_session, make_tenant):
    tenant = make_tenant("free")
    ledger = UsageLedger(db_session)

    for _ in range(5):
        ledger.increment_message_usage(tenant.id)

    assert _reload(db_session, tenant.id).usage_messages_month == 5


def test_first_of_next_month_wraps_year():
    now = datetime(2026, 12, 31, 23, 59, tzinfo=timezone.utc)
    assert first_of_next_month(now) == datetime(2027, 1, 1, tzinfo=timezone.utc)


def test_usage_summary(db_session, make_tenant, make_agent):
    tenant = make_tenant("starter", messages=12, storage_bytes=3 * 1024 * 1024)
    make_agent(tenant)

    summary = UsageLedger(db_session).get_usage_summary(tenant.id)

    assert summary["plan_id"] == "starter"
    assert summary["messages"] == {"used": 12, "limit": 1000}
    assert summary["agents"] == {"used": 1, "limit": 3}
    assert summary["storage_mb"] == {"used": 3.0, "limit": 100}
