"""Tests for credential verification and password changes."""

from __future__ import annotations

import threading

import pytest

from app.core.errors import NotFoundError, UnauthorizedError, ValidationError
from app.features.users import auth as auth_module
from app.features.users.security import dummy_hash

from tests.conftest import PASSWORD


class TestAuthenticate:
    async def test_success_records_login(self, auth, make_user) -> None:
        user = await make_user(email="mike.dev@example.com")
        assert user.last_login_at is None

        logged_in = await auth.authenticate("Mike.Dev@Example.com", PASSWORD)
        assert logged_in.id == user.id
        assert logged_in.last_login_at is not None

    async def test_unknown_email_and_wrong_password_look_the_same(self, auth, make_user) -> None:
        await make_user(email="known@example.com")

        with pytest.raises(UnauthorizedError) as unknown:
            await auth.authenticate("nobody@example.com", PASSWORD)
        with pytest.raises(UnauthorizedError) as wrong:
            await auth.authenticate("known@example.com", PASSWORD + "x")

        assert unknown.value.message == wrong.value.message == "Invalid email or password"
        assert unknown.value.to_dict() == wrong.value.to_dict()

    async def test_unknown_email_hashes_off_the_event_loop(self, auth, monkeypatch) -> None:
        threads = []

        def recording_dummy_hash() -> str:
            threads.append(threading.get_ident())
            return dummy_hash()

        monkeypatch.setattr(auth_module, "dummy_hash", recording_dummy_hash)
        with pytest.raises(UnauthorizedError):
            await auth.authenticate("nobody@example.com", PASSWORD)

        assert len(threads) == 1
        assert threads[0] != threading.get_ident()

    async def test_inactive_account(self, auth, make_user) -> None:
        await make_user(email="gone@example.com", status="inactive")

        with pytest.raises(UnauthorizedError) as exc_info:
            await auth.authenticate("gone@example.com", PASSWORD)
        assert "inactive" in exc_info.value.message

    async def test_inactive_account_with_wrong_password_is_generic(self, auth, make_user) -> None:
        await make_user(email="gone@example.com", status="inactive")

        with pytest.raises(UnauthorizedError) as exc_info:
            await auth.authenticate("gone@example.com", "wrong-password")
        assert exc_info.value.message == "Invalid email or password"

    async def test_missing_credentials(self, auth) -> None:
        with pytest.raises(ValidationError):
            await auth.authenticate("", PASSWORD)

    async def test_verify_does_not_record_login(self, auth, make_user) -> None:
        await make_user(email="check@example.com")
        user = await auth.verify_credentials("check@example.com", PASSWORD)
        assert user.last_login_at is None


class TestChangePassword:
    async def test_change_then_login(self, auth, make_user) -> None:
        user = await make_user(email="rotate@example.com")
        await auth.change_password(user.id, PASSWORD, "brand-new-secret")

        await auth.authenticate("rotate@example.com", "brand-new-secret")
        with pytest.raises(UnauthorizedError):
            await auth.authenticate("rotate@example.com", PASSWORD)

    async def test_wrong_current_password(self, auth, make_user) -> None:
        user = await make_user()
        with pytest.raises(UnauthorizedError):
            await auth.change_password(user.id, "not-it", "brand-new-secret")

    async def test_same_password_rejected(self, auth, make_user) -> None:
        user = await make_user()
        with pytest.raises(ValidationError) as exc_info:
            await auth.change_password(user.id, PASSWORD, PASSWORD)
        assert exc_info.value.field == "new_password"

    async def test_weak_new_password(self, auth, make_user) -> None:
        user = await make_user()
        with pytest.raises(ValidationError):
            await auth.change_password(user.id, PASSWORD, "123")

    async def test_unknown_user(self, auth) -> None:
        with pytest.raises(NotFoundError):
            await auth.change_password("01ARZ3NDEKTSV4RRFFQ69G5FAV", PASSWORD, "brand-new-secret")
