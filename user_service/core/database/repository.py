"""Minimal generic repository for SQLAlchemy models.

The session is always passed explicitly; a repository holds no state besides
its model class. For anything not covered here use the session directly.

Example:
    class UserRepository(BaseRepository[User]):
        async def find_by_email(self, session: AsyncSession, email: str) -> User | None:
            return await self.get_by(session, User.email, email)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from sqlalchemy import select

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sqlalchemy.ext.asyncio import AsyncSession
    from sqlalchemy.orm import InstrumentedAttribute


T = TypeVar("T")


class BaseRepository(Generic[T]):
    """CRUD helpers shared by every model repository.

    Provides:
        - get(session, id) -> T | None
        - get_by(session, attr, value) -> T | None
        - list(session, limit, offset) -> Sequence[T]
        - create(session, instance) -> T
    """

    __slots__ = ("model", "_logger")

    def __init__(self, model: type[T]) -> None:
        self.model = model
        self._logger = logging.getLogger(f"repository.{model.__name__}")

    async def get(self, session: AsyncSession, id: Any) -> T | None:  # noqa: A002
        """Get entity by primary key."""
        instance = await session.get(self.model, id)
        self._logger.debug(
            "db.get %s(%s) -> %s",
            self.model.__name__,
            id,
            "found" if instance else "not found",
        )
        return instance

    async def get_by(
        self,
        session: AsyncSession,
        attr: InstrumentedAttribute[Any],
        value: Any,
    ) -> T | None:
        """Get the entity whose ``attr`` equals ``value``.

        Example:
            user = await repo.get_by(session, User.email, "john@example.com")
        """
        result = await session.execute(select(self.model).where(attr == value))
        return result.scalar_one_or_none()

    async def list(
        self,
        session: AsyncSession,
        *,
        limit: int = 100,
        offset: int = 0,
    ) -> Sequence[T]:
        """List entities ordered by primary key."""
        pk = getattr(self.model, "id")
        stmt = select(self.model).order_by(pk).limit(limit).offset(offset)
        result = await session.execute(stmt)
        return result.scalars().all()

    async def create(self, session: AsyncSession, instance: T) -> T:
        """Persist a new entity.

        Flushes so generated values (like ``id``) are populated; committing is
        left to the caller.
        """
        session.add(instance)
        await session.flush()
        await session.refresh(instance)
        self._logger.debug("db.create %s(id=%s)", self.model.__name__, getattr(instance, "id", None))
        return instance
