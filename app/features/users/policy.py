"""
Privilege-escalation guardrails for directory mutations.

A principal may only hand out what it already holds: roles listed in its
own ``assignable_role_codes`` and permissions its own grants cover (via
the hierarchy evaluator). It may only touch principals of strictly lower
authority, and never its own role, permissions or status. A ``*`` grant
bypasses every check.

These checks are applied by ``UserService`` whenever an acting user is
given. Service calls without an actor are trusted system calls.
"""
from typing import Any, Optional

from app.core.errors import ForbiddenError
from app.features.permissions.catalog import can_manage
from app.features.permissions.evaluator import WILDCARD, has_capability
from app.features.users.models import User
from app.utils import get_logger

log = get_logger(__name__)


def _is_root(actor: User) -> bool:
    return WILDCARD in actor.permissions


def require_capability(actor: User, code: str) -> None:
    if not has_capability(actor.permissions, code):
        log.info(f"Denied {code} for user {actor.id}")
        raise ForbiddenError(f"Missing permission: {code}", permission=code)


def _require_active(actor: User) -> None:
    if not actor.is_active:
        raise ForbiddenError("Acting user is inactive", actor_id=actor.id)


def check_role_grant(actor: User, role: dict[str, Any]) -> None:
    """The role must be assignable by the actor and rank below the actor."""
    if _is_root(actor):
        return
    code = role["code"]
    if code not in actor.assignable_role_codes:
        raise ForbiddenError(f"Role {code} cannot be assigned by {actor.role_code}", role_code=code)
    if not can_manage(actor.role_level, int(role["level"])):
        raise ForbiddenError(f"Role {code} is not below the acting user's level", role_code=code)


def check_permission_grant(actor: User, permissions: list[str]) -> None:
    """Every granted code must already be covered by the actor's own grants."""
    if _is_root(actor):
        return
    missing = [code for code in permissions if not has_capability(actor.permissions, code)]
    if missing:
        raise ForbiddenError("Cannot grant permissions the acting user does not hold", permissions=missing)


def authorize_create(actor: Optional[User], data: dict[str, Any]) -> None:
    if actor is None:
        return
    _require_active(actor)
    require_capability(actor, "users.create")
    check_role_grant(actor, data["role"])
    if data.get("permissions"):
        require_capability(actor, "users.edit.permissions")
        check_permission_grant(actor, data["permissions"])


def authorize_update(actor: Optional[User], target: User, patch: dict[str, Any]) -> None:
    """
    Authorize ``patch`` against ``target``.

    Self-edits of profile fields (name, email, avatar, password) need no
    permission. Anything else needs ``users.edit`` and authority over the
    target, and role/permission/status changes need their own checks.
    """
    if actor is None:
        return
    _require_active(actor)
    if _is_root(actor):
        return

    is_self = actor.id == target.id
    privileged = {"role", "permissions", "status", "manager_id", "department", "report_code"} & patch.keys()

    if is_self and privileged & {"role", "permissions", "status"}:
        raise ForbiddenError("Users cannot change their own role, permissions or status")

    if not is_self:
        require_capability(actor, "users.edit")
        if not can_manage(actor.role_level, target.role_level):
            raise ForbiddenError("Cannot edit a user of equal or higher authority", target_id=target.id)
    elif privileged:
        require_capability(actor, "users.edit")

    if "role" in patch and patch["role"] is not None:
        require_capability(actor, "users.edit.role")
        check_role_grant(actor, patch["role"])
    if "permissions" in patch and patch["permissions"] is not None:
        require_capability(actor, "users.edit.permissions")
        check_permission_grant(actor, patch["permissions"])


def authorize_delete(actor: Optional[User], target: User) -> None:
    if actor is None:
        return
    _require_active(actor)
    if _is_root(actor):
        return
    require_capability(actor, "users.delete")
    if actor.id == target.id:
        raise ForbiddenError("Users cannot delete themselves")
    if not can_manage(actor.role_level, target.role_level):
        raise ForbiddenError("Cannot delete a user of equal or higher authority", target_id=target.id)
