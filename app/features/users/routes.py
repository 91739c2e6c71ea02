"""
User feature routes.

Thin controller over UserService; domain errors are rendered by the
DirectoryError handler in ``app.main``.
"""
import json
from typing import Annotated, Any, AsyncIterator
from fastapi import APIRouter, Body, Depends, Query, status
from fastapi.responses import StreamingResponse

from app.core.pagination import clamp_limit
from app.features.users.bulk import BulkUserCoordinator
from app.features.users.dependencies import get_acting_user, get_bulk_coordinator, get_user_service
from app.features.users.models import User
from app.features.users.schemas import (
    BulkCreateResult,
    BulkDeleteRequest,
    BulkDeleteResult,
    ProfileUpdate,
    StatusValue,
    UserCreate,
    UserFilters,
    UserPage,
    UserPublic,
    UserResponse,
    UserStats,
    UserUpdate,
)
from app.features.users.service import UserService


router = APIRouter(tags=["users"])


@router.get("/me", response_model=UserResponse)
async def get_current_user_profile(
    user: Annotated[User, Depends(get_acting_user)]
):
    """Get the acting user's profile."""
    return user


@router.patch("/me", response_model=UserResponse)
async def update_current_user_profile(
    update_data: ProfileUpdate,
    user: Annotated[User, Depends(get_acting_user)],
    service: Annotated[UserService, Depends(get_user_service)],
):
    """Update the acting user's name or avatar."""
    return await service.update_profile(user.id, update_data)


@router.get("/stats", response_model=UserStats)
async def get_user_stats(
    _actor: Annotated[User, Depends(get_acting_user)],
    service: Annotated[UserService, Depends(get_user_service)],
):
    """Counts of users by role code and by status."""
    return await service.get_stats()


@router.get("/export")
async def export_users(
    _actor: Annotated[User, Depends(get_acting_user)],
    service: Annotated[UserService, Depends(get_user_service)],
):
    """Stream every user as newline-delimited JSON."""
    async def lines() -> AsyncIterator[str]:
        async for user in service.stream_users():
            yield json.dumps(UserResponse.model_validate(user).model_dump(mode="json")) + "\n"

    return StreamingResponse(lines(), media_type="application/x-ndjson")


@router.get("/", response_model=UserPage)
async def list_users(
    service: Annotated[UserService, Depends(get_user_service)],
    _actor: Annotated[User, Depends(get_acting_user)],
    cursor: str | None = None,
    limit: int | None = None,
    role_code: str | None = None,
    status_filter: Annotated[StatusValue | None, Query(alias="status")] = None,
    department_code: str | None = None,
    manager_id: str | None = None,
    search: str | None = None,
):
    """List users with cursor pagination. Pass ``next_cursor`` back as ``cursor``."""
    filters = UserFilters(
        role_code=role_code,
        status=status_filter,
        department_code=department_code,
        manager_id=manager_id,
        search=search,
    )
    page = await service.list_users(filters, cursor=cursor, limit=limit)
    return UserPage(
        items=[UserResponse.model_validate(user) for user in page.items],
        next_cursor=page.next_cursor,
        has_more=page.has_more,
        limit=clamp_limit(limit),
    )


@router.post("/", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    user_data: UserCreate,
    actor: Annotated[User, Depends(get_acting_user)],
    service: Annotated[UserService, Depends(get_user_service)],
):
    """Create a user. The acting user can only grant what it holds."""
    return await service.create_user(user_data, actor=actor)


@router.post("/bulk", response_model=BulkCreateResult)
async def bulk_create_users(
    items: Annotated[list[dict[str, Any]], Body(min_length=1)],
    actor: Annotated[User, Depends(get_acting_user)],
    coordinator: Annotated[BulkUserCoordinator, Depends(get_bulk_coordinator)],
):
    """
    Create many users. Items are validated one by one, so a malformed
    item is reported in ``errors`` instead of rejecting the request.
    """
    outcome = await coordinator.bulk_create(items, actor=actor)
    return BulkCreateResult(
        results=[UserResponse.model_validate(user) for user in outcome.results],
        errors=outcome.errors,
    )


@router.post("/bulk-delete", response_model=BulkDeleteResult)
async def bulk_delete_users(
    request: BulkDeleteRequest,
    actor: Annotated[User, Depends(get_acting_user)],
    coordinator: Annotated[BulkUserCoordinator, Depends(get_bulk_coordinator)],
):
    """Delete many users; ids with dependents are reported in ``failed``."""
    outcome = await coordinator.bulk_delete(request.ids, actor=actor)
    return BulkDeleteResult(deleted=outcome.deleted, failed=outcome.failed)


@router.get("/{user_id}", response_model=UserResponse)
async def get_user_by_id(
    user_id: str,
    _actor: Annotated[User, Depends(get_acting_user)],
    service: Annotated[UserService, Depends(get_user_service)],
):
    """Get a user by ID."""
    return await service.get_user(user_id)


@router.get("/{user_id}/subordinates", response_model=list[UserPublic])
async def list_subordinates(
    user_id: str,
    _actor: Annotated[User, Depends(get_acting_user)],
    service: Annotated[UserService, Depends(get_user_service)],
):
    """Users whose manager is ``user_id``."""
    return await service.list_subordinates(user_id)


@router.patch("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: str,
    update_data: UserUpdate,
    actor: Annotated[User, Depends(get_acting_user)],
    service: Annotated[UserService, Depends(get_user_service)],
):
    """Partially update a user. Only fields present in the body change."""
    return await service.update_user(user_id, update_data, actor=actor)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: str,
    actor: Annotated[User, Depends(get_acting_user)],
    service: Annotated[UserService, Depends(get_user_service)],
):
    """Delete a user. Fails with 409 while anyone still reports to them."""
    await service.delete_user(user_id, actor=actor)
