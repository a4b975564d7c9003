"""
Auth Module - Dependencies
===========================
FastAPI dependencies for user authentication and authorization.
These are injected into route handlers via Depends().

Identity comes from an `Authorization: Bearer <jwt>` header; what the
identity may do is decided by modules.admin.permissions.is_allowed.
"""

from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from config.database import get_db
from common.exceptions import AuthenticationError, AuthorizationError
from common.helpers import safe_int
from common.security import decode_token, extract_bearer
from modules.user.models import User


def get_current_active_user(
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> Optional[User]:
    """
    Identify the current user from the bearer token.
    Returns User object or None (no token, bad token, unknown or inactive user).
    """
    token = extract_bearer(authorization)
    if not token:
        return None

    payload = decode_token(token)
    if not payload:
        return None

    user_id = safe_int(payload.get("sub"))
    if user_id is None:
        return None

    return db.query(User).filter(User.id == user_id, User.is_active == True).first()


def require_login(
    authorization: Optional[str] = Header(None),
    user: Optional[User] = Depends(get_current_active_user),
) -> User:
    """Require any authenticated active user. Raises 401 if not logged in."""
    if user:
        return user
    if not authorization:
        raise AuthenticationError("Access denied. No token provided.")
    raise AuthenticationError("Invalid or expired token.")


def require_capability(*capabilities: str):
    """
    Factory: returns a dependency that requires the caller's role to hold
    every listed capability.

    Usage:
      user=Depends(require_capability("orders"))
      user=Depends(require_capability("staff"))
    """
    from modules.admin.permissions import is_allowed

    def dependency(user: User = Depends(require_login)) -> User:
        for capability in capabilities:
            if not is_allowed(user.role, capability):
                raise AuthorizationError("Access denied. Insufficient permissions.")
        return user

    return dependency
