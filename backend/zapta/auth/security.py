from datetime import datetime, timedelta, timezone
from uuid import UUID, uuid4

from jose import JWTError, jwt

from zapta.config.settings import get_settings


def create_access_token(tenant_id: UUID, subject: str | None = None) -> str:
    """Issue a bearer token scoped to one tenant.

    The host application mints these after its own sign-in; `subject` is
    whatever user id it wants echoed back on decode.
    """
    settings = get_settings()
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.access_token_ttl_minutes)
    payload = {
        "sub": subject or str(tenant_id),
        "tenant_id": str(tenant_id),
        "exp": expire,
        "type": "access",
        "jti": str(uuid4()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict:
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        raise ValueError("Invalid token") from exc
    if payload.get("type") != "access":
        raise ValueError("Invalid access token type")
    if not payload.get("tenant_id"):
        raise ValueError("Token is not scoped to a tenant")
    return payload
