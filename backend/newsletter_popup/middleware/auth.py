"""
Authentication for the admin API.

Validates requests using either:
1. API key in X-API-Key header (operator access, every permission)
2. JWT bearer token carrying user_id, role and permissions
"""

import logging
from typing import Callable, Optional

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import APIKeyHeader, HTTPAuthorizationCredentials, HTTPBearer

from newsletter_popup.config import settings

logger = logging.getLogger(__name__)

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)
bearer_scheme = HTTPBearer(auto_error=False)

ADMIN_ROLE = "admin"

# Permissions checked by the admin routes
PERMISSIONS = (
    "stores:read",
    "stores:write",
    "popup:write",
    "subscribers:read",
    "subscribers:write",
    "integration:manage",
)


async def require_auth(
    api_key: Optional[str] = Depends(api_key_header),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> dict:
    """
    Require authentication via either API key or JWT token.

    Returns a dict with auth context:
    - {"type": "api_key", "role": "admin", ...} for operator calls
    - {"type": "jwt", "user_id": ..., "role": ..., "permissions": [...]} for users
    """
    if api_key and api_key == settings.admin_api_key:
        return {
            "type": "api_key",
            "user_id": None,
            "role": ADMIN_ROLE,
            "permissions": list(PERMISSIONS),
        }

    if credentials:
        try:
            payload = jwt.decode(
                credentials.credentials,
                settings.jwt_secret_key,
                algorithms=[settings.jwt_algorithm],
            )
        except jwt.ExpiredSignatureError:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Token has expired",
            )
        except jwt.InvalidTokenError as e:
            logger.debug(f"Rejected bearer token: {e}")
        else:
            user_id = payload.get("user_id")
            if user_id:
                return {
                    "type": "jwt",
                    "user_id": str(user_id),
                    "role": payload.get("role", "member"),
                    "permissions": list(payload.get("permissions") or []),
                }

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Valid API key or JWT token required",
        headers={"WWW-Authenticate": "Bearer"},
    )


def has_permission(auth: dict, permission: str) -> bool:
    """Admins hold every permission."""
    return auth.get("role") == ADMIN_ROLE or permission in auth.get("permissions", [])


def require_permission(permission: str) -> Callable:
    """Build a dependency that requires one permission."""

    async def checker(auth: dict = Depends(require_auth)) -> dict:
        if not has_permission(auth, permission):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Missing permission: {permission}",
            )
        return auth

    return checker
