from __future__ import annotations

import uuid

import pytest

from zapta.billing.storage import BYTES_PER_MB, StorageLedger
from zapta.errors import TenantNotFoundError
from zapta.persistence.models import Tenant


def _bytes(db_session, tenant_id) -> int:
    db_session.expire_all()
    return db_session.get(Tenant, tenant_id).usage_storage_bytes


def test_storage_limit_check_is_inclusive(db_session, make_tenant):
    tenant = make_tenant("free", storage_bytes=9 * BYTES_PER_MB)
    ledger = StorageLedger(db_session)

    fits = ledger.check_storage_limit(tenant.id, BYTES_PER_MB)
    assert fits.allowed is True
    assert fits.current_mb == 9.0
    assert fits.limit_mb == 10

    assert ledger.check_storage_limit(tenant.id, BYTES_PER_MB + 1).allowed is False


def test_increment_and_decrement(db_session, make_tenant):
    tenant = make_tenant("free", storage_bytes=100)
    ledger = StorageLedger(db_session)

    ledger.increment_storage_usage(tenant.id, 50)
    assert _bytes(db_session, tenant.id) == 150

    ledger.decrement_storage_usage(tenant.id, 30)
    assert _bytes(db_session, tenant.id) == 120


def test_decrement_never_goes_negative(db_session, make_tenant):
    tenant = make_tenant("free", storage_bytes=10)

    StorageLedger(db_session).decrement_storage_usage(tenant.id, 500)

    assert _bytes(db_session, tenant.id) == 0


def test_unknown_tenant_raises(db_session):
    ledger = StorageLedger(db_session)
    with pytest.raises(TenantNotFoundError):
        ledger.check_storage_limit(uuid.uuid4(), 1)
    with pytest.raises(TenantNotFoundError):
        ledger.increment_storage_usage(uuid.uuid4(), 1)
