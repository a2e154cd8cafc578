"""User repository with email lookup."""

from __future__ import annotations

from typing import TYPE_CHECKING

from user_service.core.database import BaseRepository
from user_service.core.models.user import User

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession


class UserRepository(BaseRepository[User]):
    """User-specific queries on top of the generic CRUD helpers."""

    def __init__(self) -> None:
        super().__init__(User)

    async def find_by_email(self, session: AsyncSession, email: str) -> User | None:
        """Find user by email address (exact match)."""
        return await self.get_by(session, User.email, email)
