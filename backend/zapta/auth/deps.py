import uuid
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from zapta.auth.security import decode_access_token
from zapta.persistence.database import get_db
from zapta.persistence.models import Agent

bearer_scheme = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> dict:
    if not credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing token")
    try:
        return decode_access_token(credentials.credentials)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from None


UserDep = Annotated[dict, Depends(get_current_user)]


def _check_tenant(user: dict, tenant_id: uuid.UUID) -> None:
    if user.get("tenant_id") != str(tenant_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access to this tenant is denied")


def require_tenant_access(tenant_id: uuid.UUID, user: UserDep) -> dict:
    """Path-scoped guard for routes under `/{tenant_id}`."""
    _check_tenant(user, tenant_id)
    return user


def require_agent_access(
    agent_id: uuid.UUID,
    user: UserDep,
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Guard for routes under `/{agent_id}`: the agent must belong to the token's tenant."""
    agent = db.get(Agent, agent_id)
    if agent is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Agent not found")
    _check_tenant(user, agent.tenant_id)
    return user
