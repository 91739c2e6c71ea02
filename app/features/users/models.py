"""
User (principal) model with ULID primary keys.

Role and department are embedded JSON snapshots, not live references.
The reporting line is a bare ``manager_id`` column; the hierarchy is
walked as an id -> manager_id index (see ``hierarchy.py``), never as an
ORM object graph.
"""
import enum
import re
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, ForeignKey, Index, String, event, inspect
from sqlalchemy.orm import Mapped, mapped_column
from ulid import ULID

from app.core.database.base import Base, TimestampMixin
from app.features.users.security import hash_password

_ULID_RE = re.compile(r"^[0-9A-HJKMNP-TV-Z]{26}$")


def generate_ulid() -> str:
    """Generate a new ULID string."""
    return str(ULID())


def is_valid_id(value: Any) -> bool:
    """True if ``value`` looks like a ULID produced by ``generate_ulid``."""
    return isinstance(value, str) and bool(_ULID_RE.match(value))


class UserStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class User(Base, TimestampMixin):
    """
    Directory principal.

    The password column is deferred with raiseload: it is never part of a
    normal read, and touching it on an object loaded without
    ``undefer(User.password)`` raises instead of lazily fetching it.
    Assign the plain password; the flush hooks below hash it.
    """
    __tablename__ = "users"
    __table_args__ = (
        Index("ix_users_role_code_status", "role_code", "status"),
    )
    __mapper_args__ = {"eager_defaults": True}

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password: Mapped[str] = mapped_column(
        "password_hash", String(255), nullable=False, deferred=True, deferred_raiseload=True
    )

    # Embedded snapshots, replaced as a whole
    role: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    role_code: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    department: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    department_code: Mapped[str | None] = mapped_column(String(50), nullable=True, index=True)

    manager_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )

    report_code: Mapped[str] = mapped_column(String(8), unique=True, nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=UserStatus.ACTIVE.value)
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Ordered, distinct permission codes
    permissions: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    avatar_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE.value

    @property
    def role_level(self) -> int:
        return int(self.role["level"])

    @property
    def assignable_role_codes(self) -> list[str]:
        return list(self.role.get("assignable_role_codes") or [])

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email!r}, role={self.role_code})>"


# ============================================================================
# Persistence hooks
# ============================================================================

# bcrypt runs inside the flush, so these hooks block the event loop for one
# hash per written password. Bulk imports pay this per item.
@event.listens_for(User, "before_insert")
def _hash_password_on_insert(_mapper, _connection, target: User) -> None:
    target.password = hash_password(target.password)


@event.listens_for(User, "before_update")
def _hash_password_on_change(_mapper, _connection, target: User) -> None:
    # Only a pending assignment is hashed; an untouched password stays as stored.
    history = inspect(target).attrs.password.history
    if history.added:
        target.password = hash_password(target.password)
