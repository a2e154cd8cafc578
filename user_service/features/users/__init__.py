"""User records exposed over RabbitMQ RPC."""

from __future__ import annotations

from user_service.features.users.handlers import UserHandlers, register

__all__ = ["UserHandlers", "register"]
