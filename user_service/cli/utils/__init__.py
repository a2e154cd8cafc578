"""CLI helpers."""

from user_service.cli.utils.async_runner import coro
from user_service.cli.utils.formatters import error, info, success

__all__ = ["coro", "error", "info", "success"]
