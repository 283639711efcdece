"""Authentication API endpoints."""

from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from ..deps import get_current_user, get_optional_user, get_services
from ..services import Services

router = APIRouter(
    prefix="/auth",
    tags=["Authentication"]
)

EMAIL_PATTERN = r'^[^@\s]+@[^@\s]+\.[^@\s]+$'
PUBLIC_USER_FIELDS = ('id', 'email', 'username', 'role', 'avatarUrl')

class RegisterRequest(BaseModel):
    """Request model for creating an account."""
    email: str = Field(pattern=EMAIL_PATTERN, max_length=254)
    password: str = Field(min_length=6, max_length=64)
    username: str = Field(min_length=2, max_length=40)
    role: Literal['USER', 'SELLER'] = 'USER'

class LoginRequest(BaseModel):
    """Request model for login."""
    email: str = Field(min_length=1)
    password: str = Field(min_length=1)

def public_user(user: Dict[str, Any]) -> Dict[str, Any]:
    return {key: user.get(key) for key in PUBLIC_USER_FIELDS}

@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(body: RegisterRequest, services: Services = Depends(get_services)):
    """Create a USER or SELLER account and return a token for it."""
    return await services.auth.register(body.email, body.password, body.username, body.role)

@router.post("/login")
async def login(body: LoginRequest, services: Services = Depends(get_services)):
    """Exchange email and password for an access token."""
    return await services.auth.login(body.email, body.password)

@router.get("/me")
async def me(user: Dict[str, Any] = Depends(get_current_user)):
    """Get the authenticated user."""
    return {"user": public_user(user)}

@router.post("/logout")
async def logout(
    user: Optional[Dict[str, Any]] = Depends(get_optional_user),
    services: Services = Depends(get_services)
):
    """Log out. Tokens are stateless, so the client just drops its token."""
    if user:
        await services.auth.logout(user['id'])
    return {"message": "Logged out"}
