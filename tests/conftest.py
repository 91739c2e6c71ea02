"""Shared fixtures: a throwaway SQLite directory per test."""

from __future__ import annotations

import itertools
import os

# Cheapest bcrypt work factor; must be set before app modules read config.
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
import pytest_asyncio

from app.core.database.engine import build_engine, build_session_factory, init_db
from app.features.permissions.catalog import department_by_code, role_by_code
from app.features.users.auth import AuthService
from app.features.users.bulk import BulkUserCoordinator
from app.features.users.service import UserService

PASSWORD = "secret123"


@pytest_asyncio.fixture()
async def engine(tmp_path):
    """Engine on a fresh SQLite file with the schema created."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'directory.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture()
def service(engine) -> UserService:
    return UserService(build_session_factory(engine))


@pytest.fixture()
def auth(service: UserService) -> AuthService:
    return AuthService(service)


@pytest.fixture()
def bulk(service: UserService) -> BulkUserCoordinator:
    return BulkUserCoordinator(service, concurrency=2)


@pytest.fixture()
def user_payload():
    """
    Build a valid create payload; every call gets a unique email and
    report code unless they are given.
    """
    counter = itertools.count(1)

    def build(role: str = "EMPLOYEE", department: str | None = "ENG", **overrides) -> dict:
        n = next(counter)
        payload = {
            "name": f"User {n}",
            "email": f"user{n}@example.com",
            "password": PASSWORD,
            "role": role_by_code(role),
            "department": department_by_code(department) if department else None,
            "report_code": f"RC{n:06d}",
            "permissions": [],
        }
        payload.update(overrides)
        return payload

    return build


@pytest.fixture()
def make_user(service: UserService, user_payload):
    """Create a user through the service as a trusted system call."""

    async def create(role: str = "EMPLOYEE", **overrides):
        return await service.create_user(user_payload(role, **overrides))

    return create


@pytest_asyncio.fixture()
async def root_user(make_user):
    """Active super admin holding the wildcard grant."""
    return await make_user("SUPER_ADMIN", department=None, permissions=["*"], email="root@example.com")
