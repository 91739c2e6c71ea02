"""
Bulk user operations with per-item partial failure.

A bulk request is best-effort: each item succeeds or fails on its own and
a failure never aborts the remaining items. Within one item the usual
all-or-nothing transaction still applies.
"""
import asyncio
from dataclasses import dataclass, field
from typing import Any, Generic, Optional, TypeVar

from app.core import config
from app.core.errors import DirectoryError, ValidationError
from app.features.users.models import User, is_valid_id
from app.features.users.schemas import UserCreate
from app.features.users.service import UserService
from app.utils import get_logger

log = get_logger(__name__)

T = TypeVar("T")


@dataclass
class ItemOutcome(Generic[T]):
    """Tagged per-item result: exactly one of ``ok`` / ``error`` is set."""
    item: Any
    ok: Optional[T] = None
    error: Optional[DirectoryError] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass
class BulkCreateOutcome:
    results: list[User] = field(default_factory=list)
    errors: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class BulkDeleteOutcome:
    deleted: list[str] = field(default_factory=list)
    failed: list[dict[str, str]] = field(default_factory=list)


def _describe(item: Any) -> dict[str, Any]:
    """Echo an input item back without its password."""
    if isinstance(item, UserCreate):
        item = item.model_dump(mode="json")
    if isinstance(item, dict):
        return {k: v for k, v in item.items() if k != "password"}
    return {"value": repr(item)}


class BulkUserCoordinator:
    """
    Fan out single-user operations.

    Args:
        service: Directory service doing the real work
        concurrency: Max creates in flight (defaults to BULK_CONCURRENCY)
    """

    def __init__(self, service: UserService, concurrency: Optional[int] = None):
        self.service = service
        self.concurrency = max(1, concurrency or config.BULK_CONCURRENCY)

    async def bulk_create(self, items: list[UserCreate | dict[str, Any]], actor: Optional[User] = None) -> BulkCreateOutcome:
        """
        Create each item through ``UserService.create_user``.

        Results keep input order. Domain errors are collected per item;
        anything else (a bug, cancellation) propagates.
        """
        semaphore = asyncio.Semaphore(self.concurrency)

        async def create_one(item: Any) -> ItemOutcome[User]:
            async with semaphore:
                try:
                    return ItemOutcome(item=item, ok=await self.service.create_user(item, actor=actor))
                except DirectoryError as e:
                    return ItemOutcome(item=item, error=e)

        outcomes = await asyncio.gather(*(create_one(item) for item in items))

        result = BulkCreateOutcome()
        for outcome in outcomes:
            if outcome.succeeded:
                result.results.append(outcome.ok)
            else:
                result.errors.append({
                    "item": _describe(outcome.item),
                    "error": outcome.error.message,
                    "code": outcome.error.error_code,
                })
        log.info(f"Bulk create: {len(result.results)} created, {len(result.errors)} failed")
        return result

    async def bulk_delete(self, ids: list[str], actor: Optional[User] = None) -> BulkDeleteOutcome:
        """
        Delete each id inside one shared transaction, one savepoint per id.

        A failed id rolls back to its savepoint and is reported; the rest of
        the batch still commits.

        Raises:
            ValidationError: If any id is malformed (nothing is deleted)
        """
        invalid = [user_id for user_id in ids if not is_valid_id(user_id)]
        if invalid:
            raise ValidationError("ids", f"Invalid user ID format: {', '.join(map(str, invalid))}")

        result = BulkDeleteOutcome()
        async with self.service.transaction() as session:
            for user_id in dict.fromkeys(ids):
                try:
                    async with session.begin_nested():
                        await self.service.delete_in_session(session, user_id, actor)
                except DirectoryError as e:
                    result.failed.append({"id": user_id, "reason": e.message})
                    continue
                result.deleted.append(user_id)

        log.info(f"Bulk delete: {len(result.deleted)} deleted, {len(result.failed)} failed")
        return result
