"""ORM models."""

from __future__ import annotations

from user_service.core.models.user import User

__all__ = ["User"]
