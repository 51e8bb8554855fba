"""Bearer token helpers. Tokens are issued upstream; the engine trusts `sub` and `role`."""
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt

from videolearn.core.config import get_settings

ROLES = ("STUDENT", "TEACHER", "ADMIN")


def create_access_token(subject: str, role: str = "STUDENT", extra: dict[str, Any] | None = None) -> str:
    """Create a signed access token (used by tests and local tooling)."""
    settings = get_settings()
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.access_token_expire_minutes)
    to_encode = {"sub": str(subject), "role": role, "exp": expire, "type": "access"}
    if extra:
        to_encode.update(extra)
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: str) -> dict | None:
    """Return the claims of a valid access token; None otherwise."""
    settings = get_settings()
    try:
        claims = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None
    if not claims.get("sub"):
        return None
    if claims.get("role", "STUDENT") not in ROLES:
        return None
    return claims
