"""Tests for bulk create and bulk delete."""

from __future__ import annotations

import pytest

from app.core.errors import ValidationError


class TestBulkCreate:
    async def test_partial_failure_keeps_valid_items(self, service, bulk, make_user, user_payload) -> None:
        await make_user(email="taken@example.com")

        outcome = await bulk.bulk_create([
            user_payload(email="first@example.com"),
            user_payload(email="taken@example.com"),
            user_payload(email="second@example.com"),
        ])

        assert [user.email for user in outcome.results] == ["first@example.com", "second@example.com"]
        assert len(outcome.errors) == 1
        error = outcome.errors[0]
        assert error["item"]["email"] == "taken@example.com"
        assert "password" not in error["item"]
        assert error["code"] == "VALIDATION_ERROR"
        assert (await service.get_stats()).total == 3

    async def test_malformed_items_are_reported(self, bulk, user_payload) -> None:
        outcome = await bulk.bulk_create([{"name": "no email"}, user_payload()])
        assert len(outcome.results) == 1
        assert len(outcome.errors) == 1

    async def test_duplicates_within_batch(self, service, bulk, user_payload) -> None:
        outcome = await bulk.bulk_create([
            user_payload(email="same@example.com"),
            user_payload(email="same@example.com"),
        ])
        assert len(outcome.results) == 1
        assert len(outcome.errors) == 1
        assert (await service.get_stats()).total == 1

    async def test_actor_guardrails_apply_per_item(self, bulk, make_user, user_payload) -> None:
        hod = await make_user("HOD", permissions=["users.create"])
        outcome = await bulk.bulk_create([user_payload("MANAGER"), user_payload("ADMIN")], actor=hod)
        assert [user.role_code for user in outcome.results] == ["MANAGER"]
        assert outcome.errors[0]["code"] == "FORBIDDEN"


class TestBulkDelete:
    async def test_partial_failure(self, service, bulk, make_user) -> None:
        manager = await make_user("MANAGER")
        report = await make_user(manager_id=manager.id)
        loner = await make_user()

        outcome = await bulk.bulk_delete([manager.id, loner.id, "01ARZ3NDEKTSV4RRFFQ69G5FAV"])

        assert outcome.deleted == [loner.id]
        assert {failure["id"] for failure in outcome.failed} == {manager.id, "01ARZ3NDEKTSV4RRFFQ69G5FAV"}
        remaining = {user.id for user in (await service.list_users()).items}
        assert remaining == {manager.id, report.id}

    async def test_dependent_deleted_first_frees_manager(self, service, bulk, make_user) -> None:
        manager = await make_user("MANAGER")
        report = await make_user(manager_id=manager.id)

        outcome = await bulk.bulk_delete([report.id, manager.id])

        assert outcome.deleted == [report.id, manager.id]
        assert (await service.get_stats()).total == 0

    async def test_malformed_id_rejects_batch(self, service, bulk, make_user) -> None:
        user = await make_user()
        with pytest.raises(ValidationError):
            await bulk.bulk_delete([user.id, "bogus"])
        assert (await service.get_stats()).total == 1
