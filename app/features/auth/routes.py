"""
Credential routes: password login and password change.

Session/token issuance is handled by the gateway in front of this
service; a successful login returns the user record it should bind to.
"""
from typing import Annotated
from fastapi import APIRouter, Depends

from app.features.users.auth import AuthService
from app.features.users.dependencies import get_acting_user, get_auth_service
from app.features.users.models import User
from app.features.users.schemas import ChangePasswordRequest, LoginRequest, UserResponse


router = APIRouter(tags=["auth"])


@router.post("/login", response_model=UserResponse)
async def login(
    credentials: LoginRequest,
    auth: Annotated[AuthService, Depends(get_auth_service)],
):
    """
    Verify email and password.

    Unknown email and wrong password both return 401 with the same message.
    """
    return await auth.authenticate(credentials.email, credentials.password)


@router.post("/change-password")
async def change_password(
    request: ChangePasswordRequest,
    user: Annotated[User, Depends(get_acting_user)],
    auth: Annotated[AuthService, Depends(get_auth_service)],
):
    """Change the acting user's password."""
    await auth.change_password(user.id, request.old_password, request.new_password)
    return {"message": "Password changed successfully"}
