import hmac
from typing import Optional

from fastapi import Header

from .errors import AuthError, ForbiddenError
from .settings import settings

def keys_match(expected: str, supplied: str) -> bool:
    return hmac.compare_digest(expected.encode("utf-8"), supplied.encode("utf-8"))

def require_admin(x_admin_key: Optional[str] = Header(default=None)) -> None:
    if not settings.admin_api_key:
        raise ForbiddenError("Admin access is not configured")
    if not x_admin_key or not keys_match(settings.admin_api_key, x_admin_key):
        raise AuthError("Unauthorized")
