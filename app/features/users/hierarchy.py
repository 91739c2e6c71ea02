"""
Reporting-line (manager chain) checks.

The hierarchy is an index from user id to manager id. Walks are bounded
by ``MAX_MANAGER_DEPTH`` and track visited ids, so a corrupted index
cannot loop forever.
"""
from typing import Mapping, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import config
from app.core.errors import ValidationError
from app.features.users.models import User


def chain_from_index(
    index: Mapping[str, Optional[str]],
    start: str,
    max_depth: Optional[int] = None,
) -> list[str]:
    """
    Ids from ``start`` up to the top of its reporting line, ``start`` included.

    Stops early when an id repeats (the repeated id is appended once more
    so callers can see the loop).

    Raises:
        ValidationError: If the chain is longer than ``max_depth``.
    """
    max_depth = config.MAX_MANAGER_DEPTH if max_depth is None else max_depth
    chain: list[str] = []
    seen: set[str] = set()
    current: Optional[str] = start
    while current is not None:
        chain.append(current)
        if current in seen:
            break
        seen.add(current)
        if len(chain) > max_depth:
            raise ValidationError("manager_id", f"Reporting chain exceeds {max_depth} levels")
        current = index.get(current)
    return chain


async def load_chain_index(session: AsyncSession, start: str, max_depth: Optional[int] = None) -> dict[str, Optional[str]]:
    """Read the id -> manager_id entries along the chain that starts at ``start``."""
    max_depth = config.MAX_MANAGER_DEPTH if max_depth is None else max_depth
    index: dict[str, Optional[str]] = {}
    current: Optional[str] = start
    while current is not None and current not in index and len(index) <= max_depth:
        manager_id = await session.scalar(select(User.manager_id).where(User.id == current))
        index[current] = manager_id
        current = manager_id
    return index


async def ensure_no_cycle(session: AsyncSession, user_id: str, manager_id: str) -> None:
    """
    Reject a manager assignment that would make ``user_id`` its own
    transitive manager.

    Raises:
        ValidationError: On self-management, a cycle, or an over-deep chain.
    """
    if manager_id == user_id:
        raise ValidationError("manager_id", "A user cannot be their own manager")

    index = await load_chain_index(session, manager_id)
    # Pretend the assignment already happened and walk from the user.
    index[user_id] = manager_id
    chain = chain_from_index(index, user_id)
    if chain.count(chain[-1]) > 1:
        raise ValidationError("manager_id", "Manager assignment would create a reporting cycle")


async def count_subordinates(session: AsyncSession, user_id: str) -> int:
    result = await session.execute(select(func.count()).select_from(User).where(User.manager_id == user_id))
    return result.scalar_one()
