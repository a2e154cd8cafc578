"""Database base classes and repository helpers."""

from __future__ import annotations

from user_service.core.database.base import (
    Base,
    IntegerPKMixin,
    TimestampedBase,
    TimestampMixin,
)
from user_service.core.database.repository import BaseRepository

__all__ = [
    "Base",
    "BaseRepository",
    "IntegerPKMixin",
    "TimestampMixin",
    "TimestampedBase",
]
