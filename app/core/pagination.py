"""
Cursor-based pagination.

Pages are windows over a query ordered by a stable, monotonic key (the
ULID primary key). The cursor is the key of the last row of the previous
page, so rows inserted or deleted ahead of the cursor never shift or
duplicate rows a client has already seen, as offset pagination would.
"""
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Optional, TypeVar

from sqlalchemy import Select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import InstrumentedAttribute

from app.core import config
from app.core.errors import ValidationError

T = TypeVar("T")


@dataclass
class Page(Generic[T]):
    items: list[T] = field(default_factory=list)
    next_cursor: Optional[str] = None
    has_more: bool = False


def clamp_limit(limit: Optional[int]) -> int:
    """Clamp ``limit`` to ``[1, MAX_PAGE_LIMIT]``; ``None`` means the default page size."""
    if limit is None:
        limit = config.DEFAULT_PAGE_LIMIT
    return max(1, min(int(limit), config.MAX_PAGE_LIMIT))


def window(rows: list[T], limit: int, key: Callable[[T], str]) -> Page[T]:
    """
    Build a page from ``rows`` fetched with ``limit + 1``.

    The extra row only signals that another page exists; it is dropped.
    """
    has_more = len(rows) > limit
    items = rows[:limit] if has_more else rows
    next_cursor = key(items[-1]) if has_more and items else None
    return Page(items=items, next_cursor=next_cursor, has_more=has_more)


async def paginate(
    session: AsyncSession,
    stmt: Select,
    key: InstrumentedAttribute,
    cursor: Optional[str],
    limit: Optional[int],
    cursor_validator: Optional[Callable[[str], Any]] = None,
) -> Page:
    """
    Fetch one page of ``stmt`` ordered by ``key``.

    Args:
        session: Session to read with (no transaction needed)
        stmt: Base select, already filtered
        key: Ordering column, must be unique and monotonic
        cursor: Key of the last row of the previous page, or None
        limit: Requested page size (clamped, never rejected)
        cursor_validator: Optional callable raising on malformed cursors

    Returns:
        Page with items, next_cursor and has_more
    """
    limit = clamp_limit(limit)

    if cursor:
        if cursor_validator is not None:
            cursor_validator(cursor)
        stmt = stmt.where(key > cursor)
    elif cursor is not None:
        raise ValidationError("cursor", "Cursor must not be empty")

    stmt = stmt.order_by(key.asc()).limit(limit + 1)
    result = await session.execute(stmt)
    rows = list(result.scalars().all())

    return window(rows, limit, key=lambda row: getattr(row, key.key))
