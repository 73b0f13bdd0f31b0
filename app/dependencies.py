"""
UnitTrack - FastAPI Dependencies

Shared dependencies for authentication and role checks.
"""

import uuid
from typing import Callable, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import ValidationError

from app.schemas.auth import SessionUser, UserRole
from app.utils.error_handling import AuthenticationException, AuthorizationException, ErrorCode
from app.utils.security import verify_access_token


# HTTP Bearer token security
security = HTTPBearer(auto_error=False)


def session_user_from_claims(payload: dict) -> Optional[SessionUser]:
    """Build the session user from token claims; None when claims are unusable."""
    user_id = payload.get("sub")
    if not user_id:
        return None
    
    warehouse_claim = payload.get("warehouse_id")
    try:
        return SessionUser(
            user_id=str(user_id),
            role=payload.get("role") or UserRole.EMPLOYEE,
            home_warehouse_id=uuid.UUID(str(warehouse_claim)) if warehouse_claim else None,
        )
    except (ValueError, ValidationError):
        return None


async def get_session_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> SessionUser:
    """
    Get the current session user from the JWT access token.
    
    Token can be provided via:
    1. Authorization: Bearer <token> header
    2. access_token cookie
    
    Raises:
        AuthenticationException: If token is missing or invalid
    """
    token = None
    
    if credentials:
        token = credentials.credentials
    else:
        token = request.cookies.get("access_token")
        if token and token.startswith("Bearer "):
            token = token[7:]
    
    if not token:
        raise AuthenticationException("Not authenticated")
    
    payload = verify_access_token(token)
    user = session_user_from_claims(payload) if payload else None
    if not user:
        raise AuthenticationException("Invalid or expired token", code=ErrorCode.TOKEN_INVALID)
    return user


def require_roles(*roles: UserRole) -> Callable:
    """Dependency factory restricting an endpoint to the given roles."""
    
    async def role_checker(user: SessionUser = Depends(get_session_user)) -> SessionUser:
        if user.role not in roles:
            raise AuthorizationException(
                f"Requires one of the roles: {', '.join(role.value for role in roles)}",
                required_permission=f"role:{'|'.join(role.value for role in roles)}",
            )
        return user
    
    return role_checker


require_admin = require_roles(UserRole.ADMIN)
require_admin_or_manager = require_roles(UserRole.ADMIN, UserRole.MANAGER)
