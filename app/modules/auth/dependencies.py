"""
Authentication and authorization dependencies for FastAPI.
"""
from typing import Optional
from uuid import UUID
import enum

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.core.exceptions import AuthenticationError, AuthorizationError
from app.dependencies.dbDependecies import db_dependency
from app.modules.auth.models import User, UserRole
from app.modules.auth.utils import verify_token

# Security scheme; missing credentials are reported as 401 by get_current_user
security = HTTPBearer(auto_error=False)


class Capability(enum.Enum):
    MANAGE_USERS = "manage_users"
    MANAGE_CLIENTS = "manage_clients"
    MANAGE_INVOICES = "manage_invoices"
    RENDER_INVOICES = "render_invoices"


ROLE_CAPABILITIES = {
    UserRole.ADMIN: frozenset(Capability),
    UserRole.USER: frozenset({
        Capability.MANAGE_CLIENTS,
        Capability.MANAGE_INVOICES,
        Capability.RENDER_INVOICES,
    }),
}


def has_capability(role: UserRole, capability: Capability) -> bool:
    return capability in ROLE_CAPABILITIES.get(role, frozenset())


def get_current_user(
    request: Request,
    db: db_dependency,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> User:
    """
    Resolve the active user behind the bearer token.
    The user is also attached to ``request.state.user`` for middleware and logging.
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Access token required")

    payload = verify_token(credentials.credentials)
    try:
        user_id = UUID(payload["sub"])
    except (ValueError, TypeError):
        raise AuthenticationError("Invalid token")

    user = db.query(User).filter(User.id == user_id).first()
    if user is None or not user.is_active:
        raise AuthenticationError("Invalid token")

    request.state.user = user
    return user


def require_capability(capability: Capability):
    """
    Dependencia para requerir una capacidad del rol del usuario.
    """
    def capability_checker(current_user: User = Depends(get_current_user)) -> User:
        if not has_capability(current_user.role, capability):
            raise AuthorizationError("Insufficient permissions")
        return current_user
    return capability_checker
