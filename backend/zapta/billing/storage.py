from __future__ import annotations

import uuid
from dataclasses import dataclass

from sqlalchemy import case, select, update
from sqlalchemy.orm import Session

from zapta.billing.plans import get_plan_limits
from zapta.billing.usage import UsageLedger
from zapta.errors import TenantNotFoundError
from zapta.persistence.models import Tenant

BYTES_PER_MB = 1024 * 1024


@dataclass
class StorageCheck:
    allowed: bool
    current_mb: float
    limit_mb: int
    plan_id: str


class StorageLedger:
    """Byte-accounted knowledge-base storage against the plan's MB limit."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def check_storage_limit(self, tenant_id: uuid.UUID, file_size_bytes: int) -> StorageCheck:
        tenant = self.db.get(Tenant, tenant_id)
        if tenant is None:
            raise TenantNotFoundError()
        plan_id = UsageLedger(self.db).resolve_plan_id(tenant)
        limit_mb = get_plan_limits(plan_id).storage_mb
        current_bytes = tenant.usage_storage_bytes or 0
        new_total_mb = (current_bytes + file_size_bytes) / BYTES_PER_MB
        return StorageCheck(
            allowed=new_total_mb <= limit_mb,
            current_mb=round(current_bytes / BYTES_PER_MB, 2),
            limit_mb=limit_mb,
            plan_id=plan_id,
        )

    def increment_storage_usage(self, tenant_id: uuid.UUID, size_bytes: int) -> None:
        self._apply(tenant_id, Tenant.usage_storage_bytes + size_bytes)

    def decrement_storage_usage(self, tenant_id: uuid.UUID, size_bytes: int) -> None:
        remaining = Tenant.usage_storage_bytes - size_bytes
        self._apply(tenant_id, case((remaining < 0, 0), else_=remaining))

    def _apply(self, tenant_id: uuid.UUID, expression) -> None:
        exists = self.db.execute(select(Tenant.id).where(Tenant.id == tenant_id)).scalar_one_or_none()
        if exists is None:
            raise TenantNotFoundError()
        self.db.execute(
            update(Tenant)
            .where(Tenant.id == tenant_id)
            .values(usage_storage_bytes=expression)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        self.db.expire_all()
