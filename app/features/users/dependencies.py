"""
FastAPI dependencies for the directory services and the acting user.

Authentication of the HTTP caller happens upstream; the gateway forwards
the authenticated principal's id in the ``X-Principal-Id`` header.
"""
from typing import Annotated, Optional
from fastapi import Depends, Header, HTTPException, Request, status

from app.core.errors import DirectoryError
from app.features.users.auth import AuthService
from app.features.users.bulk import BulkUserCoordinator
from app.features.users.models import User
from app.features.users.service import UserService


def get_user_service(request: Request) -> UserService:
    """The service singleton created at startup (``app.state.user_service``)."""
    return request.app.state.user_service


def get_bulk_coordinator(
    service: Annotated[UserService, Depends(get_user_service)]
) -> BulkUserCoordinator:
    return BulkUserCoordinator(service)


def get_auth_service(
    service: Annotated[UserService, Depends(get_user_service)]
) -> AuthService:
    return AuthService(service)


async def get_acting_user(
    service: Annotated[UserService, Depends(get_user_service)],
    x_principal_id: Annotated[Optional[str], Header()] = None,
) -> User:
    """
    Load the acting user named by ``X-Principal-Id``.

    Raises:
        HTTPException: 401 if the header is missing or names no user,
            403 if that user is inactive
    """
    if not x_principal_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-Principal-Id header",
        )
    try:
        user = await service.get_user(x_principal_id)
    except DirectoryError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unknown principal",
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is deactivated",
        )
    return user
