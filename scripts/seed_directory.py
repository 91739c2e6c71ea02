"""
Seed script to populate a sample directory.

Run this script after database initialization to create:
- A super admin holding the ``*`` wildcard
- One user per role level, wired into a reporting chain

Users whose email already exists are left untouched, so the script can
be re-run safely.

Usage:
    uv run python -m scripts.seed_directory
"""
import asyncio
from sqlalchemy import select

from app.core.database.engine import AsyncSessionLocal, init_db
from app.core.errors import DirectoryError
from app.features.permissions.catalog import department_by_code, role_by_code
from app.features.users.models import User
from app.features.users.service import UserService
from app.utils import get_logger


log = get_logger(__name__)

DEFAULT_PASSWORD = "password123"

# Managers are listed before the users reporting to them
SEED_USERS = [
    {
        "name": "John Super Admin",
        "email": "superadmin@company.com",
        "role": "SUPER_ADMIN",
        "department": None,
        "manager": None,
        "report_code": "SA7X9K2M",
        "permissions": ["*"],
    },
    {
        "name": "Jane Admin",
        "email": "admin@company.com",
        "role": "ADMIN",
        "department": None,
        "manager": "superadmin@company.com",
        "report_code": "AD3K8L1P",
        "permissions": ["dashboard", "users", "departments", "reports", "settings.general", "audit.view"],
    },
    {
        "name": "Robert Engineering Head",
        "email": "hod.engineering@company.com",
        "role": "HOD",
        "department": "ENG",
        "manager": "admin@company.com",
        "report_code": "HE5R2N4K",
        "permissions": ["dashboard.view", "users.view", "users.create", "users.edit", "departments.view", "reports"],
    },
    {
        "name": "Sarah Tech Manager",
        "email": "manager.tech@company.com",
        "role": "MANAGER",
        "department": "ENG",
        "manager": "hod.engineering@company.com",
        "report_code": "MT6P9L2W",
        "permissions": ["dashboard.view", "users.view", "reports.view"],
    },
    {
        "name": "Mike Developer",
        "email": "mike.dev@company.com",
        "role": "EMPLOYEE",
        "department": "ENG",
        "manager": "manager.tech@company.com",
        "report_code": "EM3D8V5Q",
        "permissions": ["dashboard.view"],
    },
    {
        "name": "Lisa HR Head",
        "email": "hod.hr@company.com",
        "role": "HOD",
        "department": "HR",
        "manager": "admin@company.com",
        "report_code": "HH7K1M9N",
        "permissions": ["dashboard.view", "users.view", "users.create", "users.edit"],
    },
]


async def seed_users(service: UserService) -> dict[str, str]:
    """
    Create the seed users and return a map of email to user id.
    """
    ids: dict[str, str] = {}
    async with service.session() as session:
        result = await session.execute(select(User.email, User.id))
        ids.update({email: user_id for email, user_id in result.all()})

    for seed in SEED_USERS:
        if seed["email"] in ids:
            log.info(f"User already exists: {seed['email']}")
            continue

        user = await service.create_user({
            "name": seed["name"],
            "email": seed["email"],
            "password": DEFAULT_PASSWORD,
            "role": role_by_code(seed["role"]),
            "department": department_by_code(seed["department"]) if seed["department"] else None,
            "manager_id": ids.get(seed["manager"]) if seed["manager"] else None,
            "report_code": seed["report_code"],
            "permissions": seed["permissions"],
        })
        ids[user.email] = user.id
        log.info(f"Created user: {user.name} ({user.role['name']}, level {user.role['level']})")

    return ids


async def main():
    """Main seeding function."""
    log.info("Starting directory seeding...")

    # Initialize database tables first
    log.info("Initializing database tables...")
    await init_db()

    service = UserService(AsyncSessionLocal)
    try:
        await seed_users(service)
    except DirectoryError as e:
        log.error(f"Error seeding directory: {e}", exc_info=True)
        raise

    stats = await service.get_stats()
    log.info("Directory seeding completed successfully!")
    log.info(f"Total users: {stats.total}")
    for role_code, count in sorted(stats.by_role.items()):
        log.info(f"  - {role_code}: {count}")
    log.info(f"Login with superadmin@company.com / {DEFAULT_PASSWORD}")


if __name__ == "__main__":
    asyncio.run(main())
