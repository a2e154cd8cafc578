"""Model repositories."""

from __future__ import annotations

from user_service.core.repositories.user import UserRepository

__all__ = ["UserRepository"]
