"""
Authentication endpoints.

Provides:
- Company sign-up with its first admin
- Email/password login
- Logout (token revocation)
- Current user profile
"""

from fastapi import APIRouter, Depends, status

from api.dependencies import get_bearer_token, require_active_user
from api.schemas.auth import LoginRequest, RegisterRequest
from api.schemas.common import MessageResponse
from api.services import auth as auth_service
from database.models.users import User

router = APIRouter(prefix="/auth", tags=["authentication"])


@router.post(
    "/register",
    status_code=status.HTTP_201_CREATED,
    summary="Register Company",
    description="Create a company and its admin user, returning an access token.",
)
async def register(request: RegisterRequest):
    return await auth_service.register(
        full_name=request.full_name,
        email=request.email,
        password=request.password,
        company_name=request.company_name,
    )


@router.post("/login", summary="Login", description="Exchange email and password for an access token.")
async def login(request: LoginRequest):
    return await auth_service.login(request.email, request.password)


@router.post("/logout", response_model=MessageResponse, summary="Logout")
async def logout(
    token: str = Depends(get_bearer_token),
    current_user: User = Depends(require_active_user),
):
    """Revoke the bearer token used for this request."""
    await auth_service.logout(token)
    return MessageResponse(message="Logged out")


@router.get("/me", summary="Current User")
async def me(current_user: User = Depends(require_active_user)):
    return current_user.to_dict()
