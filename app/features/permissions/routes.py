"""
Permission catalog and capability check routes.

Provides the permission tree (nested, flattened and per-node children), the role and department catalogs, and a
check endpoint backed by the hierarchy evaluator.
"""
from typing import Annotated, List
from fastapi import APIRouter, Depends

from app.features.permissions.catalog import (
    DEFAULT_DEPARTMENTS,
    DEFAULT_ROLES,
    PERMISSION_TREE,
    all_permission_codes,
    children_of,
)
from app.features.permissions.evaluator import has_all_capabilities, has_any_capability, has_capability
from app.features.permissions.schemas import (
    DepartmentResponse,
    PermissionCheckRequest,
    PermissionCheckResponse,
    PermissionNodeResponse,
    RoleResponse,
)
from app.features.users.dependencies import get_acting_user, get_user_service
from app.features.users.models import User
from app.features.users.service import UserService


router = APIRouter(tags=["permissions"])


@router.get("/tree", response_model=List[PermissionNodeResponse])
async def get_permission_tree():
    """The full permission tree, parents before children."""
    return [PermissionNodeResponse.model_validate(node) for node in PERMISSION_TREE]


@router.get("/tree/{code}/children", response_model=List[str])
async def get_permission_children(code: str):
    """Direct child codes of a node; pickers pre-check these when the node is enabled."""
    return children_of(code)


@router.get("/codes", response_model=List[str])
async def list_permission_codes():
    """Every code in the tree, flattened with parents before children."""
    return all_permission_codes()


@router.get("/roles", response_model=List[RoleResponse])
async def list_roles():
    """Canonical roles ordered from highest to lowest authority."""
    return sorted(DEFAULT_ROLES, key=lambda role: role["level"])


@router.get("/departments", response_model=List[DepartmentResponse])
async def list_departments():
    return DEFAULT_DEPARTMENTS


@router.post("/check", response_model=PermissionCheckResponse)
async def check_permission(
    check: PermissionCheckRequest,
    actor: Annotated[User, Depends(get_acting_user)],
    service: Annotated[UserService, Depends(get_user_service)],
):
    """
    Evaluate capability codes against a user's grants.

    Ancestor grants and the ``*`` wildcard count, so a user holding
    ``users`` passes a check for ``users.edit.role``.
    """
    user = actor if check.user_id in (None, actor.id) else await service.get_user(check.user_id)
    granted = set(user.permissions or [])

    if check.mode == "any":
        allowed = has_any_capability(granted, check.required)
    else:
        allowed = has_all_capabilities(granted, check.required)

    held = [code for code in check.required if has_capability(granted, code)]
    return PermissionCheckResponse(
        user_id=user.id,
        has_permission=allowed,
        granted=held,
        missing=[code for code in check.required if code not in held],
    )
