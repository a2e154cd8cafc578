"""Service layer for user records."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError

from user_service.core.exceptions import ConflictException, NotFoundException
from user_service.core.models.user import User
from user_service.core.repositories.user import UserRepository
from user_service.features.users.security import hash_password
from user_service.infra.metrics.prometheus import users_created_total

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from user_service.features.users.schemas import UserCreate


class UserService:
    """Create and look up users within one session."""

    def __init__(
        self,
        session: AsyncSession,
        repository: UserRepository | None = None,
    ) -> None:
        self._session = session
        self._repository = repository or UserRepository()
        self.logger = logging.getLogger(__name__)

    async def create_user(self, payload: UserCreate) -> User:
        """Persist a new user and commit.

        Raises:
            ConflictException: The email address is already registered.
        """
        if await self._repository.find_by_email(self._session, payload.email) is not None:
            raise ConflictException(
                "Email already registered",
                extra={"email": payload.email},
            )

        user = User(
            name=payload.name,
            email=payload.email,
            password=hash_password(payload.password),
            cell_phone=payload.cell_phone,
        )
        try:
            created = await self._repository.create(self._session, user)
            await self._session.commit()
        except IntegrityError as exc:
            # Lost a race with a concurrent insert of the same email
            await self._session.rollback()
            raise ConflictException("Email already registered", extra={"email": payload.email}) from exc

        users_created_total.inc()
        self.logger.info(
            "User created",
            extra={"user_id": created.id, "operation": "service.create_user"},
        )
        return created

    async def get_user(self, user_id: int) -> User:
        """Fetch a user by id.

        Raises:
            NotFoundException: No user has that id.
        """
        user = await self._repository.get(self._session, user_id)
        if user is None:
            raise NotFoundException("User not found", extra={"user_id": user_id})
        return user

    async def list_users(self, *, limit: int = 50, offset: int = 0) -> list[User]:
        return list(await self._repository.list(self._session, limit=limit, offset=offset))
