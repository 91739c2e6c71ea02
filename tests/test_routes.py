"""HTTP tests against the FastAPI app with the service bound to a test database."""

from __future__ import annotations

import json

import httpx
import pytest
import pytest_asyncio

from app.main import app

from tests.conftest import PASSWORD


@pytest_asyncio.fixture()
async def client(service):
    previous = app.state.user_service
    app.state.user_service = service
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.state.user_service = previous


@pytest.fixture()
def as_root(root_user) -> dict[str, str]:
    return {"X-Principal-Id": root_user.id}


class TestHealth:
    async def test_health(self, client) -> None:
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    async def test_no_singular_user_prefix(self, client, as_root) -> None:
        response = await client.get("/user/me", headers=as_root)
        assert response.status_code == 404


class TestUserRoutes:
    async def test_requires_principal(self, client) -> None:
        response = await client.get("/users/")
        assert response.status_code == 401

    async def test_unknown_principal(self, client) -> None:
        response = await client.get("/users/", headers={"X-Principal-Id": "01ARZ3NDEKTSV4RRFFQ69G5FAV"})
        assert response.status_code == 401

    async def test_create_get_and_list(self, client, as_root, user_payload) -> None:
        response = await client.post("/users/", json=user_payload(email="new@example.com"), headers=as_root)
        assert response.status_code == 201
        created = response.json()
        assert created["email"] == "new@example.com"
        assert "password" not in created

        response = await client.get(f"/users/{created['id']}", headers=as_root)
        assert response.status_code == 200
        assert response.json()["report_code"] == created["report_code"]

        response = await client.get("/users/", params={"limit": 1}, headers=as_root)
        page = response.json()
        assert response.status_code == 200
        assert len(page["items"]) == 1
        assert page["has_more"] is True
        assert page["limit"] == 1

        response = await client.get("/users/", params={"cursor": page["next_cursor"]}, headers=as_root)
        assert response.json()["has_more"] is False

    async def test_duplicate_email_is_400(self, client, as_root, make_user, user_payload) -> None:
        await make_user(email="dup@example.com")
        response = await client.post("/users/", json=user_payload(email="dup@example.com"), headers=as_root)
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"
        assert response.json()["error"]["details"]["field"] == "email"

    async def test_request_schema_error_is_400(self, client, as_root) -> None:
        response = await client.post("/users/", json={"name": "Only a name"}, headers=as_root)
        assert response.status_code == 400
        assert "email" in response.json()

    async def test_unknown_user_is_404(self, client, as_root) -> None:
        response = await client.get("/users/01ARZ3NDEKTSV4RRFFQ69G5FAV", headers=as_root)
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"

    async def test_forbidden_grant_is_403(self, client, make_user, user_payload) -> None:
        manager = await make_user("MANAGER", permissions=["users.create"])
        response = await client.post(
            "/users/", json=user_payload("ADMIN"), headers={"X-Principal-Id": manager.id}
        )
        assert response.status_code == 403

    async def test_delete_with_subordinates_is_409(self, client, as_root, make_user) -> None:
        manager = await make_user("MANAGER")
        report = await make_user(manager_id=manager.id)

        response = await client.delete(f"/users/{manager.id}", headers=as_root)
        assert response.status_code == 409

        response = await client.patch(f"/users/{report.id}", json={"manager_id": None}, headers=as_root)
        assert response.status_code == 200

        response = await client.delete(f"/users/{manager.id}", headers=as_root)
        assert response.status_code == 204

    async def test_me(self, client, root_user, as_root) -> None:
        response = await client.get("/users/me", headers=as_root)
        assert response.json()["id"] == root_user.id

        response = await client.patch("/users/me", json={"name": "Renamed Root"}, headers=as_root)
        assert response.json()["name"] == "Renamed Root"

    async def test_subordinates(self, client, as_root, make_user) -> None:
        manager = await make_user("MANAGER")
        report = await make_user(manager_id=manager.id)
        response = await client.get(f"/users/{manager.id}/subordinates", headers=as_root)
        assert [user["id"] for user in response.json()] == [report.id]

    async def test_stats(self, client, as_root, make_user) -> None:
        await make_user()
        response = await client.get("/users/stats", headers=as_root)
        assert response.json() == {
            "total": 2,
            "by_role": {"SUPER_ADMIN": 1, "EMPLOYEE": 1},
            "by_status": {"active": 2, "inactive": 0},
        }

    async def test_export_ndjson(self, client, as_root, make_user) -> None:
        await make_user()
        await make_user()
        response = await client.get("/users/export", headers=as_root)
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/x-ndjson")

        rows = [json.loads(line) for line in response.text.splitlines() if line]
        assert len(rows) == 3
        assert all("password" not in row for row in rows)

    async def test_bulk_create(self, client, as_root, user_payload) -> None:
        response = await client.post(
            "/users/bulk",
            json=[user_payload(email="a@example.com"), user_payload(email="a@example.com")],
            headers=as_root,
        )
        assert response.status_code == 200
        body = response.json()
        assert len(body["results"]) == 1
        assert len(body["errors"]) == 1

    async def test_bulk_delete(self, client, as_root, make_user) -> None:
        user = await make_user()
        response = await client.post(
            "/users/bulk-delete",
            json={"ids": [user.id, "01ARZ3NDEKTSV4RRFFQ69G5FAV"]},
            headers=as_root,
        )
        body = response.json()
        assert body["deleted"] == [user.id]
        assert body["failed"][0]["id"] == "01ARZ3NDEKTSV4RRFFQ69G5FAV"


class TestAuthRoutes:
    async def test_login(self, client, make_user) -> None:
        user = await make_user(email="login@example.com")
        response = await client.post("/auth/login", json={"email": "login@example.com", "password": PASSWORD})
        assert response.status_code == 200
        assert response.json()["id"] == user.id
        assert response.json()["last_login_at"] is not None

    async def test_bad_login_bodies_match(self, client, make_user) -> None:
        await make_user(email="login@example.com")
        unknown = await client.post("/auth/login", json={"email": "who@example.com", "password": PASSWORD})
        wrong = await client.post("/auth/login", json={"email": "login@example.com", "password": "nope-nope"})
        assert unknown.status_code == wrong.status_code == 401
        assert unknown.json() == wrong.json()

    async def test_change_password(self, client, make_user) -> None:
        user = await make_user(email="change@example.com")
        response = await client.post(
            "/auth/change-password",
            json={"old_password": PASSWORD, "new_password": "fresh-secret"},
            headers={"X-Principal-Id": user.id},
        )
        assert response.status_code == 200

        response = await client.post("/auth/login", json={"email": "change@example.com", "password": "fresh-secret"})
        assert response.status_code == 200


class TestPermissionRoutes:
    async def test_tree_and_roles(self, client) -> None:
        tree = (await client.get("/permissions/tree")).json()
        users = next(node for node in tree if node["code"] == "users")
        assert "users.edit" in [child["code"] for child in users["children"]]

        roles = (await client.get("/permissions/roles")).json()
        assert [role["level"] for role in roles] == [1, 2, 3, 4, 5]

        departments = (await client.get("/permissions/departments")).json()
        assert {dept["code"] for dept in departments} >= {"ENG", "HR"}

    async def test_children_and_codes(self, client) -> None:
        response = await client.get("/permissions/tree/users.edit/children")
        assert response.status_code == 200
        assert response.json() == ["users.edit.role", "users.edit.permissions"]

        response = await client.get("/permissions/tree/users.delete/children")
        assert response.json() == []

        codes = (await client.get("/permissions/codes")).json()
        assert codes.index("users") < codes.index("users.edit") < codes.index("users.edit.role")
        assert len(codes) == len(set(codes))

    async def test_check(self, client, make_user) -> None:
        user = await make_user(permissions=["users"])
        response = await client.post(
            "/permissions/check",
            json={"required": ["users.edit.role", "audit.view"], "mode": "all"},
            headers={"X-Principal-Id": user.id},
        )
        body = response.json()
        assert body["has_permission"] is False
        assert body["granted"] == ["users.edit.role"]
        assert body["missing"] == ["audit.view"]

        response = await client.post(
            "/permissions/check",
            json={"required": ["users.edit.role", "audit.view"], "mode": "any"},
            headers={"X-Principal-Id": user.id},
        )
        assert response.json()["has_permission"] is True

    async def test_check_malformed_code(self, client, make_user) -> None:
        user = await make_user()
        response = await client.post(
            "/permissions/check",
            json={"required": ["users..edit"]},
            headers={"X-Principal-Id": user.id},
        )
        assert response.status_code == 400
