"""FastAPI dependencies for services and the authenticated principal."""

from typing import Any, Dict, Optional

from fastapi import Depends, Request, Security
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from database.enums import UserRole
from errors import AuthenticationRequiredError, ForbiddenError

from .services import Services

# FastAPI security scheme
auth_scheme = HTTPBearer(
    auto_error=False,
    description="JWT Bearer token required"
)

def get_services(request: Request) -> Services:
    return request.app.state.services

async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(auth_scheme),
    services: Services = Depends(get_services)
) -> Optional[Dict[str, Any]]:
    """Principal when a bearer token was sent, None otherwise.

    A token that is sent but invalid still fails with 401.
    """
    if credentials is None:
        return None
    return await services.auth.authenticate(credentials.credentials, allow_blocked=True)

async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(auth_scheme),
    services: Services = Depends(get_services)
) -> Dict[str, Any]:
    """FastAPI dependency for getting the authenticated, non-blocked user.

    Raises:
        AuthenticationRequiredError: If no valid token was sent
        ForbiddenError: If the account is blocked
    """
    if credentials is None:
        raise AuthenticationRequiredError("Authentication required")
    return await services.auth.authenticate(credentials.credentials)

def require_role(*roles: UserRole):
    """Dependency factory restricting a route to the given roles."""
    allowed = {role.value for role in roles}

    async def dependency(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
        if user['role'] not in allowed:
            raise ForbiddenError("Access denied")
        return user

    return dependency

require_seller = require_role(UserRole.SELLER)
require_admin = require_role(UserRole.ADMIN)
