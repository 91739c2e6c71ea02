"""
Transactional directory service: the only writer of User records.

Every write runs in its own session inside ``session.begin()``. Any
exception raised inside the block, including cancellation of the
calling task, rolls the whole transaction back before it propagates,
so no partially applied create/update/delete is ever visible.

Usage:
    service = UserService(AsyncSessionLocal)
    user = await service.create_user(payload)
"""
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Optional, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as SchemaValidationError
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.errors import ConflictError, NotFoundError, StoreUnavailableError, ValidationError
from app.core.pagination import Page, paginate
from app.features.permissions.catalog import HIGHEST_LEVEL, LOWEST_LEVEL
from app.features.users.hierarchy import count_subordinates, ensure_no_cycle
from app.features.users.models import User, UserStatus, is_valid_id
from app.features.users.policy import authorize_create, authorize_delete, authorize_update
from app.features.users.schemas import (
    DepartmentSnapshot,
    ProfileUpdate,
    RoleSnapshot,
    UserCreate,
    UserFilters,
    UserStats,
    UserUpdate,
)
from app.features.users.security import check_password_policy
from app.utils import get_logger

log = get_logger(__name__)

M = TypeVar("M", bound=BaseModel)

# Fields that may never be cleared with an explicit null
_REQUIRED_FIELDS = ("name", "email", "role", "report_code", "status", "permissions")


def parse_model(model: Type[M], data: Any) -> M:
    """
    Validate ``data`` into ``model``, reporting the first schema error as a
    domain ValidationError.
    """
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except SchemaValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or "body"
        raise ValidationError(field, first.get("msg", "Invalid value")) from e


def validate_role_snapshot(role: Any) -> dict[str, Any]:
    """
    Check that an embedded role is well-formed and return it as a dict.

    Raises:
        ValidationError: On a missing name/code or a level outside 1-5.
    """
    snapshot = parse_model(RoleSnapshot, role)
    if not snapshot.code:
        raise ValidationError("role.code", "Role code is required")
    if not snapshot.name.strip():
        raise ValidationError("role.name", "Role name is required")
    if not HIGHEST_LEVEL <= snapshot.level <= LOWEST_LEVEL:
        raise ValidationError("role.level", f"Role level must be between {HIGHEST_LEVEL} and {LOWEST_LEVEL}")
    if any(not code for code in snapshot.assignable_role_codes):
        raise ValidationError("role.assignable_role_codes", "Assignable role codes must not be empty")
    return snapshot.model_dump()


def validate_department_snapshot(department: Any) -> dict[str, Any]:
    snapshot = parse_model(DepartmentSnapshot, department)
    if not snapshot.code:
        raise ValidationError("department.code", "Department code is required")
    if not snapshot.name.strip():
        raise ValidationError("department.name", "Department name is required")
    return snapshot.model_dump()


def check_id(user_id: Any, field: str = "id") -> str:
    if not is_valid_id(user_id):
        raise ValidationError(field, "Invalid user ID format")
    return user_id


def _apply_role(user: User, role: dict[str, Any]) -> None:
    user.role = role
    user.role_code = role["code"]


def _apply_department(user: User, department: Optional[dict[str, Any]]) -> None:
    user.department = department
    user.department_code = department["code"] if department else None


class UserService:
    """
    Create, update, delete and read directory users.

    Args:
        session_factory: Factory for AsyncSession objects; each operation
            opens and closes its own session.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """
        Open a session with a transaction that commits on success and rolls
        back on any exception.

        Unique-key races lost at commit become ConflictError; connection
        failures become StoreUnavailableError.
        """
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    yield session
        except IntegrityError as e:
            log.warning(f"Integrity error, transaction rolled back: {e.orig}")
            raise ConflictError("Email or report code was claimed by a concurrent write") from e
        except (OperationalError, InterfaceError) as e:
            log.error(f"Store unavailable: {e}")
            raise StoreUnavailableError() from e

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Plain session for reads; not wrapped in an explicit transaction."""
        try:
            async with self._session_factory() as session:
                yield session
        except (OperationalError, InterfaceError) as e:
            log.error(f"Store unavailable: {e}")
            raise StoreUnavailableError() from e

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @staticmethod
    async def _email_taken(session: AsyncSession, email: str, exclude_id: Optional[str] = None) -> bool:
        stmt = select(User.id).where(User.email == email.lower())
        if exclude_id:
            stmt = stmt.where(User.id != exclude_id)
        return (await session.scalar(stmt.limit(1))) is not None

    @staticmethod
    async def _report_code_taken(session: AsyncSession, report_code: str, exclude_id: Optional[str] = None) -> bool:
        stmt = select(User.id).where(User.report_code == report_code.upper())
        if exclude_id:
            stmt = stmt.where(User.id != exclude_id)
        return (await session.scalar(stmt.limit(1))) is not None

    @staticmethod
    async def _require_manager(session: AsyncSession, manager_id: str) -> None:
        check_id(manager_id, "manager_id")
        exists = await session.scalar(select(User.id).where(User.id == manager_id))
        if exists is None:
            raise NotFoundError("Manager", manager_id)

    async def get_user(self, user_id: str) -> User:
        check_id(user_id)
        async with self.session() as session:
            user = await session.get(User, user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    async def list_users(
        self,
        filters: Optional[UserFilters] = None,
        cursor: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> Page[User]:
        """
        One page of users ordered by id (creation order).

        Not transactional: a page may trail the latest commit slightly.
        """
        stmt = select(User)
        if filters is not None:
            if filters.role_code:
                stmt = stmt.where(User.role_code == filters.role_code.upper())
            if filters.status:
                stmt = stmt.where(User.status == filters.status)
            if filters.department_code:
                stmt = stmt.where(User.department_code == filters.department_code.upper())
            if filters.manager_id:
                stmt = stmt.where(User.manager_id == filters.manager_id)
            if filters.search:
                term = filters.search.strip()
                stmt = stmt.where(
                    User.name.icontains(term, autoescape=True)
                    | User.email.icontains(term, autoescape=True)
                    | User.report_code.icontains(term, autoescape=True)
                )

        async with self.session() as session:
            return await paginate(session, stmt, User.id, cursor, limit, cursor_validator=lambda c: check_id(c, "cursor"))

    async def list_subordinates(self, user_id: str) -> list[User]:
        check_id(user_id)
        async with self.session() as session:
            result = await session.execute(select(User).where(User.manager_id == user_id).order_by(User.id))
            return list(result.scalars().all())

    async def get_stats(self) -> UserStats:
        async with self.session() as session:
            total = (await session.execute(select(func.count()).select_from(User))).scalar_one()
            by_role = await session.execute(select(User.role_code, func.count()).group_by(User.role_code))
            by_status = await session.execute(select(User.status, func.count()).group_by(User.status))
            status_counts = {status.value: 0 for status in UserStatus}
            status_counts.update({status: count for status, count in by_status.all()})
            return UserStats(
                total=total,
                by_role={code: count for code, count in by_role.all()},
                by_status=status_counts,
            )

    async def stream_users(self, batch_size: int = 500) -> AsyncIterator[User]:
        """Yield every user in id order, fetching ``batch_size`` rows at a time."""
        async with self.session() as session:
            result = await session.stream_scalars(
                select(User).order_by(User.id).execution_options(yield_per=batch_size)
            )
            async for user in result:
                yield user

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create_user(self, data: UserCreate | dict[str, Any], actor: Optional[User] = None) -> User:
        """
        Create a user.

        Uniqueness and password policy are checked before the transaction;
        the embedded role/department and the manager reference are checked
        inside it.

        Raises:
            ValidationError: Malformed input, duplicate email/report code, weak password
            NotFoundError: manager_id references no user
            ForbiddenError: The actor may not grant this role or these permissions
            ConflictError: A unique key was claimed concurrently
        """
        payload = parse_model(UserCreate, data)
        values = payload.model_dump()
        authorize_create(actor, values)

        async with self.session() as session:
            if await self._report_code_taken(session, payload.report_code):
                raise ValidationError("report_code", "Report code already in use")
            if await self._email_taken(session, payload.email):
                raise ValidationError("email", "Email already in use")
        check_password_policy(payload.password)

        async with self.transaction() as session:
            role = validate_role_snapshot(values["role"])
            department = validate_department_snapshot(values["department"]) if values["department"] else None
            if payload.manager_id:
                await self._require_manager(session, payload.manager_id)

            user = User(
                name=payload.name.strip(),
                email=payload.email,
                password=payload.password,
                manager_id=payload.manager_id or None,
                report_code=payload.report_code,
                status=payload.status,
                permissions=payload.permissions,
                avatar_url=payload.avatar_url,
            )
            _apply_role(user, role)
            _apply_department(user, department)
            session.add(user)
            await session.flush()
            user_id = user.id

        log.info(f"Created user {user_id} ({payload.email}) with role {role['code']}")
        return await self.get_user(user_id)

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    async def update_user(
        self,
        user_id: str,
        patch: UserUpdate | dict[str, Any],
        actor: Optional[User] = None,
    ) -> User:
        """
        Apply a partial update.

        Only keys present in ``patch`` are applied. A password in the patch
        is checked against the policy here and hashed by the flush hook.

        Raises:
            ValidationError, NotFoundError, ForbiddenError, ConflictError
        """
        check_id(user_id)
        changes = parse_model(UserUpdate, patch).to_patch()

        for field in _REQUIRED_FIELDS:
            if field in changes and changes[field] is None:
                raise ValidationError(field, f"{field} cannot be null")

        async with self.session() as session:
            existing = await session.get(User, user_id)
            if existing is None:
                raise NotFoundError("User", user_id)
            authorize_update(actor, existing, changes)

            if "email" in changes and changes["email"] != existing.email:
                if await self._email_taken(session, changes["email"], exclude_id=user_id):
                    raise ValidationError("email", "Email already in use")
            if "report_code" in changes and changes["report_code"] != existing.report_code:
                if await self._report_code_taken(session, changes["report_code"], exclude_id=user_id):
                    raise ValidationError("report_code", "Report code already in use")

        if "password" in changes:
            check_password_policy(changes["password"])

        async with self.transaction() as session:
            user = await session.get(User, user_id)
            if user is None:
                raise NotFoundError("User", user_id)

            if "role" in changes:
                _apply_role(user, validate_role_snapshot(changes.pop("role")))
            if "department" in changes:
                department = changes.pop("department")
                _apply_department(user, validate_department_snapshot(department) if department else None)
            if "manager_id" in changes:
                manager_id = changes["manager_id"] = changes["manager_id"] or None
                if manager_id and manager_id != user.manager_id:
                    await self._require_manager(session, manager_id)
                    await ensure_no_cycle(session, user_id, manager_id)

            for field, value in changes.items():
                setattr(user, field, value.strip() if field == "name" else value)
            user.updated_at = datetime.now(timezone.utc)

        log.info(f"Updated user {user_id}: {sorted(k for k in changes if k != 'password')}")
        return await self.get_user(user_id)

    async def update_profile(self, user_id: str, profile: ProfileUpdate | dict[str, Any]) -> User:
        """Self-service edit limited to name and avatar."""
        changes = parse_model(ProfileUpdate, profile).model_dump(exclude_unset=True)
        return await self.update_user(user_id, changes)

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    async def delete_in_session(self, session: AsyncSession, user_id: str, actor: Optional[User] = None) -> None:
        """
        Dependency-checked delete inside a caller-owned transaction.

        Raises:
            NotFoundError: Unknown id
            ForbiddenError: Actor may not delete this user
            ConflictError: The user still has subordinates
        """
        user = await session.get(User, user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        authorize_delete(actor, user)

        subordinates = await count_subordinates(session, user_id)
        if subordinates > 0:
            raise ConflictError(
                "Cannot delete user with subordinates. Reassign subordinates first.",
                user_id=user_id,
                subordinates=subordinates,
            )
        await session.delete(user)
        await session.flush()

    async def delete_user(self, user_id: str, actor: Optional[User] = None) -> None:
        check_id(user_id)
        async with self.transaction() as session:
            await self.delete_in_session(session, user_id, actor)
        log.info(f"Deleted user {user_id}")

    # ------------------------------------------------------------------
    # Snapshot re-sync
    # ------------------------------------------------------------------

    async def resync_role_snapshot(self, role: RoleSnapshot | dict[str, Any]) -> int:
        """
        Replace the embedded role on every user holding ``role.code``.

        Snapshots are never refreshed implicitly; this is the explicit way
        to correct drift after a role definition changes.
        """
        snapshot = validate_role_snapshot(role)
        async with self.transaction() as session:
            result = await session.execute(
                update(User).where(User.role_code == snapshot["code"]).values(role=snapshot)
            )
        log.info(f"Re-synced role {snapshot['code']} on {result.rowcount} users")
        return result.rowcount

    async def resync_department_snapshot(self, department: DepartmentSnapshot | dict[str, Any]) -> int:
        snapshot = validate_department_snapshot(department)
        async with self.transaction() as session:
            result = await session.execute(
                update(User).where(User.department_code == snapshot["code"]).values(department=snapshot)
            )
        log.info(f"Re-synced department {snapshot['code']} on {result.rowcount} users")
        return result.rowcount
