"""Tests for the user service layer."""

from __future__ import annotations

import pytest

from user_service.core.exceptions import ConflictException, NotFoundException
from user_service.core.repositories.user import UserRepository
from user_service.features.users.schemas import UserCreate
from user_service.features.users.security import verify_password
from user_service.features.users.service import UserService


def _payload(**overrides) -> UserCreate:
    data = {
        "name": "Ada Lovelace",
        "email": "Ada@Example.com",
        "password": "analytical",
        "cellPhone": "+44 20 7946 0000",
    }
    data.update(overrides)
    return UserCreate.model_validate(data)


@pytest.mark.unit
class TestUserService:
    async def test_create_user_hashes_password(self, db_session):
        user = await UserService(db_session).create_user(_payload())

        assert user.id is not None
        assert user.email == "ada@example.com"
        assert user.password != "analytical"
        assert verify_password("analytical", user.password)

    async def test_create_user_rejects_duplicate_email(self, db_session):
        service = UserService(db_session)
        await service.create_user(_payload())

        with pytest.raises(ConflictException) as exc_info:
            await service.create_user(_payload(name="Someone Else", email="ADA@example.com"))

        assert exc_info.value.status_code == 409

    async def test_get_user_not_found(self, db_session):
        with pytest.raises(NotFoundException, match="User not found"):
            await UserService(db_session).get_user(999)

    async def test_list_users_is_ordered_and_paged(self, db_session):
        service = UserService(db_session)
        for n in range(3):
            await service.create_user(_payload(email=f"user{n}@example.com"))

        page = await service.list_users(limit=2, offset=1)

        assert [u.email for u in page] == ["user1@example.com", "user2@example.com"]

    async def test_repository_find_by_email(self, db_session):
        await UserService(db_session).create_user(_payload())

        found = await UserRepository().find_by_email(db_session, "ada@example.com")
        missing = await UserRepository().find_by_email(db_session, "nobody@example.com")

        assert found is not None
        assert missing is None
