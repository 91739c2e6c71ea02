"""
Permission feature module.

Hierarchical dot-delimited capability codes, the static permission tree,
and the role and department catalogs.
"""
from app.features.permissions.evaluator import (
    WILDCARD,
    has_all_capabilities,
    has_any_capability,
    has_capability,
    normalize_permissions,
    validate_permission_code,
)

__all__ = [
    "WILDCARD",
    "has_all_capabilities",
    "has_any_capability",
    "has_capability",
    "normalize_permissions",
    "validate_permission_code",
]
