"""
Permission hierarchy evaluation.

Permission codes are dot-delimited (``users.edit.role``). Holding a
parent code grants every descendant: ``users`` authorizes
``users.edit.role`` even when the descendant was never granted
explicitly. ``*`` grants everything.

These functions are pure and do no I/O.
"""
from collections.abc import Collection, Iterable

from app.core.errors import ValidationError

WILDCARD = "*"


def validate_permission_code(code: str) -> str:
    """
    Check that ``code`` is a well-formed permission code.

    Raises:
        ValidationError: If the code is empty, has leading or trailing
            dots, or contains an empty segment (``a..b``).
    """
    if not isinstance(code, str) or not code:
        raise ValidationError("permission", "Permission code must be a non-empty string")
    if code == WILDCARD:
        return code
    if code.startswith(".") or code.endswith("."):
        raise ValidationError("permission", f"Malformed permission code: {code!r}")
    if any(not segment for segment in code.split(".")):
        raise ValidationError("permission", f"Malformed permission code: {code!r}")
    return code


def has_capability(granted: Collection[str], required: str) -> bool:
    """
    Decide whether ``required`` is contained in the ``granted`` set.

    Order of checks:
    1. Wildcard grant
    2. Exact grant
    3. Any ancestor grant, shortest first (``a``, ``a.b``, ...)

    Raises:
        ValidationError: If ``required`` is malformed.
    """
    validate_permission_code(required)

    if WILDCARD in granted:
        return True
    if required in granted:
        return True

    segments = required.split(".")
    prefix = ""
    for segment in segments[:-1]:
        prefix = f"{prefix}.{segment}" if prefix else segment
        if prefix in granted:
            return True

    return False


def has_any_capability(granted: Collection[str], required: Iterable[str]) -> bool:
    """True if at least one of ``required`` is held. An empty list is never satisfied."""
    return any(has_capability(granted, code) for code in required)


def has_all_capabilities(granted: Collection[str], required: Iterable[str]) -> bool:
    """True if every code in ``required`` is held. An empty list is always satisfied."""
    return all(has_capability(granted, code) for code in required)


def normalize_permissions(codes: Iterable[str]) -> list[str]:
    """Validate codes and drop duplicates, keeping first-seen order."""
    seen: dict[str, None] = {}
    for code in codes:
        seen.setdefault(validate_permission_code(code.strip()), None)
    return list(seen)
