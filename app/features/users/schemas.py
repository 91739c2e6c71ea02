"""
Pydantic schemas for user-related requests and responses.

Schemas check shape and normalize casing. Domain rules (uniqueness,
role level range, manager existence, cycles, password policy) are
enforced by ``UserService`` so they apply to every caller, not only HTTP.
"""
import re
from datetime import datetime
from typing import Any, Literal
from pydantic import BaseModel, EmailStr, Field, field_validator

from app.core.errors import ValidationError
from app.features.permissions.evaluator import normalize_permissions

REPORT_CODE_RE = re.compile(r"^[A-Z0-9]{8}$")

StatusValue = Literal["active", "inactive"]


# ============================================================================
# Embedded snapshots
# ============================================================================

class RoleSnapshot(BaseModel):
    """Point-in-time copy of a role, embedded by value in each user."""
    name: str
    code: str
    level: int
    description: str = ""
    assignable_role_codes: list[str] = Field(default_factory=list)

    @field_validator("code")
    @classmethod
    def code_uppercase(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator("assignable_role_codes")
    @classmethod
    def assignable_uppercase(cls, v: list[str]) -> list[str]:
        return list(dict.fromkeys(code.strip().upper() for code in v))


class DepartmentSnapshot(BaseModel):
    """Point-in-time copy of a department."""
    name: str
    code: str
    description: str = ""

    @field_validator("code")
    @classmethod
    def code_uppercase(cls, v: str) -> str:
        return v.strip().upper()


# ============================================================================
# Field validators shared by create/update
# ============================================================================

def _strip(v: Any) -> Any:
    return v.strip() if isinstance(v, str) else v


def _normalize_report_code(v: str | None) -> str | None:
    if v is None:
        return v
    v = v.strip().upper()
    if not REPORT_CODE_RE.match(v):
        raise ValueError("Report code must be 8 alphanumeric characters")
    return v


def _normalize_permissions(v: list[str] | None) -> list[str] | None:
    if v is None:
        return v
    try:
        return normalize_permissions(v)
    except ValidationError as e:
        raise ValueError(e.reason) from e


# ============================================================================
# Requests
# ============================================================================

class UserCreate(BaseModel):
    """Schema for creating a new user."""
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(..., description="Plain password, hashed before it is stored")
    role: RoleSnapshot
    department: DepartmentSnapshot | None = None
    manager_id: str | None = None
    report_code: str
    status: StatusValue = "active"
    permissions: list[str] = Field(default_factory=list)
    avatar_url: str | None = Field(None, max_length=500)

    @field_validator("name", mode="before")
    @classmethod
    def name_strip(cls, v: Any) -> Any:
        return _strip(v)

    @field_validator("email")
    @classmethod
    def email_lowercase(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("report_code")
    @classmethod
    def report_code_format(cls, v: str) -> str:
        return _normalize_report_code(v)

    @field_validator("permissions")
    @classmethod
    def permissions_format(cls, v: list[str]) -> list[str]:
        return _normalize_permissions(v)


class UserUpdate(BaseModel):
    """
    Partial update. Only fields present in the request are applied;
    an explicit null clears ``department`` or ``manager_id``.
    """
    name: str | None = Field(None, min_length=1, max_length=255)
    email: EmailStr | None = None
    password: str | None = None
    role: RoleSnapshot | None = None
    department: DepartmentSnapshot | None = None
    manager_id: str | None = None
    report_code: str | None = None
    status: StatusValue | None = None
    permissions: list[str] | None = None
    avatar_url: str | None = Field(None, max_length=500)

    @field_validator("name", mode="before")
    @classmethod
    def name_strip(cls, v: Any) -> Any:
        return _strip(v)

    @field_validator("email")
    @classmethod
    def email_lowercase(cls, v: str | None) -> str | None:
        return v.strip().lower() if v is not None else v

    @field_validator("report_code")
    @classmethod
    def report_code_format(cls, v: str | None) -> str | None:
        return _normalize_report_code(v)

    @field_validator("permissions")
    @classmethod
    def permissions_format(cls, v: list[str] | None) -> list[str] | None:
        return _normalize_permissions(v)

    def to_patch(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class ProfileUpdate(BaseModel):
    """Self-service profile edit: name and avatar only."""
    name: str | None = Field(None, min_length=1, max_length=255)
    avatar_url: str | None = Field(None, max_length=500)

    @field_validator("name", mode="before")
    @classmethod
    def name_strip(cls, v: Any) -> Any:
        return _strip(v)


class UserFilters(BaseModel):
    """Listing filters; all optional and combined with AND."""
    role_code: str | None = None
    status: StatusValue | None = None
    department_code: str | None = None
    manager_id: str | None = None
    search: str | None = Field(None, max_length=255, description="Matches name, email or report code")


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class ChangePasswordRequest(BaseModel):
    old_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=1)


class BulkDeleteRequest(BaseModel):
    ids: list[str] = Field(..., min_length=1)


# ============================================================================
# Responses
# ============================================================================

class UserResponse(BaseModel):
    """Interchange shape of a user. The password is never part of it."""
    id: str
    name: str
    email: str
    role: RoleSnapshot
    department: DepartmentSnapshot | None = None
    manager_id: str | None = None
    report_code: str
    status: StatusValue
    last_login_at: datetime | None = None
    permissions: list[str] = []
    avatar_url: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class UserPublic(BaseModel):
    """Public user information (limited fields)."""
    id: str
    name: str
    avatar_url: str | None = None

    model_config = {"from_attributes": True}


class UserPage(BaseModel):
    items: list[UserResponse]
    next_cursor: str | None = None
    has_more: bool
    limit: int


class UserStats(BaseModel):
    total: int
    by_role: dict[str, int]
    by_status: dict[str, int]


class BulkCreateError(BaseModel):
    item: dict[str, Any]
    error: str
    code: str


class BulkCreateResult(BaseModel):
    results: list[UserResponse]
    errors: list[BulkCreateError]


class BulkDeleteFailure(BaseModel):
    id: str
    reason: str


class BulkDeleteResult(BaseModel):
    deleted: list[str]
    failed: list[BulkDeleteFailure]
