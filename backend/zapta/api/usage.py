from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends

from zapta.api.deps import LedgerDep
from zapta.auth.deps import require_tenant_access

router = APIRouter(
    prefix="/tenants", tags=["usage"], dependencies=[Depends(require_tenant_access)]
)


@router.get("/{tenant_id}/usage")
def tenant_usage(tenant_id: uuid.UUID, ledger: LedgerDep) -> dict:
    return ledger.get_usage_summary(tenant_id)
