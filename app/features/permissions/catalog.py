"""
Static permission tree, role catalog and department catalog.

The tree documents which codes exist and how they nest. It is served to
permission pickers, which pre-check a node's children when the node is
enabled. Grants are not restricted to codes in the tree. Roles and departments
here are the canonical definitions from which principals' embedded
snapshots are taken (see ``app.features.users.schemas.RoleSnapshot``).
"""
from dataclasses import dataclass, field
from typing import Iterator, Optional


@dataclass(frozen=True)
class PermissionNode:
    code: str
    name: str
    description: str
    children: tuple["PermissionNode", ...] = field(default_factory=tuple)

    def walk(self) -> Iterator["PermissionNode"]:
        yield self
        for child in self.children:
            yield from child.walk()


def _node(code: str, name: str, description: str, *children: PermissionNode) -> PermissionNode:
    return PermissionNode(code=code, name=name, description=description, children=children)


# ============================================================================
# Permission Tree
# ============================================================================

PERMISSION_TREE: tuple[PermissionNode, ...] = (
    _node(
        "dashboard", "Dashboard", "Dashboard access",
        _node("dashboard.view", "View Dashboard", "View dashboard and analytics"),
        _node(
            "dashboard.analytics", "Analytics", "View detailed analytics",
            _node("dashboard.analytics.export", "Export Analytics", "Export analytics data"),
        ),
    ),
    _node(
        "users", "User Management", "User management access",
        _node("users.view", "View Users", "View user list"),
        _node("users.create", "Create Users", "Create new users"),
        _node(
            "users.edit", "Edit Users", "Edit user details",
            _node("users.edit.role", "Change Role", "Change user role"),
            _node("users.edit.permissions", "Manage Permissions", "Manage user permissions"),
        ),
        _node("users.delete", "Delete Users", "Delete users"),
    ),
    _node(
        "departments", "Department Management", "Department management access",
        _node("departments.view", "View Departments", "View department list"),
        _node("departments.create", "Create Departments", "Create new departments"),
        _node("departments.edit", "Edit Departments", "Edit department details"),
        _node("departments.delete", "Delete Departments", "Delete departments"),
    ),
    _node(
        "roles", "Role Management", "Role and permission management",
        _node("roles.view", "View Roles", "View role list"),
        _node("roles.create", "Create Roles", "Create custom roles"),
        _node("roles.edit", "Edit Roles", "Edit role permissions"),
    ),
    _node(
        "reports", "Reports", "Reporting access",
        _node("reports.view", "View Reports", "View reports"),
        _node(
            "reports.generate", "Generate Reports", "Generate new reports",
            _node("reports.generate.financial", "Financial Reports", "Generate financial reports"),
            _node("reports.generate.hr", "HR Reports", "Generate HR reports"),
            _node("reports.generate.operational", "Operational Reports", "Generate operational reports"),
        ),
        _node("reports.export", "Export Reports", "Export reports to various formats"),
    ),
    _node(
        "settings", "Settings", "System settings access",
        _node("settings.general", "General Settings", "General system settings"),
        _node(
            "settings.security", "Security Settings", "Security and authentication settings",
            _node("settings.security.password", "Password Policies", "Configure password policies"),
            _node("settings.security.2fa", "Two-Factor Auth", "Configure 2FA settings"),
        ),
        _node("settings.notifications", "Notifications", "Notification settings"),
        _node("settings.integrations", "Integrations", "Third-party integrations"),
    ),
    _node(
        "audit", "Audit Logs", "Audit log access",
        _node("audit.view", "View Audit Logs", "View audit logs"),
        _node("audit.export", "Export Audit Logs", "Export audit logs"),
    ),
)


def all_permission_codes(tree: tuple[PermissionNode, ...] = PERMISSION_TREE) -> list[str]:
    """Flatten the tree into codes, parents before children."""
    return [node.code for root in tree for node in root.walk()]


def children_of(code: str) -> list[str]:
    """Direct child codes of ``code`` in the tree (empty if unknown or a leaf)."""
    for root in PERMISSION_TREE:
        for node in root.walk():
            if node.code == code:
                return [child.code for child in node.children]
    return []


# ============================================================================
# Roles
# ============================================================================
# Level 1: Super Admin (all access)
# Level 2: Admin (access granted by Super Admin)
# Level 3: Head of Department (access for their department)
# Level 4: Manager (access granted by superior)
# Level 5: Employee (access granted by superior)

ROLE_HIERARCHY: dict[str, int] = {
    "SUPER_ADMIN": 1,
    "ADMIN": 2,
    "HOD": 3,
    "MANAGER": 4,
    "EMPLOYEE": 5,
}

HIGHEST_LEVEL = 1
LOWEST_LEVEL = 5

DEFAULT_ROLES: list[dict] = [
    {
        "name": "Super Admin",
        "code": "SUPER_ADMIN",
        "level": 1,
        "description": "Full system access with all permissions",
        "assignable_role_codes": ["ADMIN", "HOD", "MANAGER", "EMPLOYEE"],
    },
    {
        "name": "Admin",
        "code": "ADMIN",
        "level": 2,
        "description": "Administrative access as granted by Super Admin",
        "assignable_role_codes": ["HOD", "MANAGER", "EMPLOYEE"],
    },
    {
        "name": "Head of Department",
        "code": "HOD",
        "level": 3,
        "description": "Department-level access",
        "assignable_role_codes": ["MANAGER", "EMPLOYEE"],
    },
    {
        "name": "Manager",
        "code": "MANAGER",
        "level": 4,
        "description": "Team management access",
        "assignable_role_codes": ["EMPLOYEE"],
    },
    {
        "name": "Employee",
        "code": "EMPLOYEE",
        "level": 5,
        "description": "Basic employee access",
        "assignable_role_codes": [],
    },
]

DEFAULT_DEPARTMENTS: list[dict] = [
    {"name": "Engineering", "code": "ENG", "description": "Software Development and Engineering"},
    {"name": "Human Resources", "code": "HR", "description": "Human Resources and Recruitment"},
    {"name": "Finance", "code": "FIN", "description": "Finance and Accounting"},
    {"name": "Marketing", "code": "MKT", "description": "Marketing and Communications"},
    {"name": "Operations", "code": "OPS", "description": "Operations and Support"},
]


def role_by_code(code: str) -> Optional[dict]:
    code = code.upper()
    role = next((role for role in DEFAULT_ROLES if role["code"] == code), None)
    if role is None:
        return None
    return {**role, "assignable_role_codes": list(role["assignable_role_codes"])}


def department_by_code(code: str) -> Optional[dict]:
    code = code.upper()
    dept = next((dept for dept in DEFAULT_DEPARTMENTS if dept["code"] == code), None)
    return dict(dept) if dept is not None else None


def can_manage(manager_level: int, target_level: int) -> bool:
    """A lower level number means higher authority; equals cannot manage each other."""
    return manager_level < target_level
