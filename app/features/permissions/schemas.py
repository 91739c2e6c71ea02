"""
Pydantic schemas for the permission catalog and capability checks.
"""
from typing import List, Literal, Optional
from pydantic import BaseModel, Field, field_validator

from app.core.errors import ValidationError
from app.features.permissions.evaluator import validate_permission_code


# ============================================================================
# Catalog Schemas
# ============================================================================

class PermissionNodeResponse(BaseModel):
    """One node of the permission tree."""
    code: str
    name: str
    description: str
    children: List["PermissionNodeResponse"] = []

    model_config = {"from_attributes": True}


PermissionNodeResponse.model_rebuild()


class RoleResponse(BaseModel):
    """Canonical role definition."""
    name: str
    code: str
    level: int
    description: str
    assignable_role_codes: List[str] = []


class DepartmentResponse(BaseModel):
    """Canonical department definition."""
    name: str
    code: str
    description: str


# ============================================================================
# Permission Check Schemas
# ============================================================================

class PermissionCheckRequest(BaseModel):
    """
    Check capabilities for a user.

    ``user_id`` defaults to the acting user. ``mode`` decides whether any
    or all of the required codes must be held.
    """
    required: List[str] = Field(..., min_length=1, description="Capability codes to test")
    mode: Literal["any", "all"] = "all"
    user_id: Optional[str] = Field(None, description="User to check (acting user if omitted)")

    @field_validator("required")
    @classmethod
    def required_format(cls, v: List[str]) -> List[str]:
        try:
            return [validate_permission_code(code.strip()) for code in v]
        except ValidationError as e:
            raise ValueError(e.reason) from e


class PermissionCheckResponse(BaseModel):
    """Result of a capability check."""
    user_id: str
    has_permission: bool
    granted: List[str] = []
    missing: List[str] = []
