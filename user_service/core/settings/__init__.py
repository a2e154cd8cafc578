"""Modular Pydantic Settings v2 configuration.

One frozen settings model per concern, each with its own environment prefix:

- ``RabbitSettings`` (``RABBIT_``): broker address, RPC timeout, prefetch
- ``DatabaseSettings`` (``DB_``): user record store
- ``LoggingSettings`` (``LOG_``): log level, JSON output, file rotation

Import settings via cached loaders:
    from user_service.core.settings import get_rabbit_settings

Configuration precedence (highest to lowest):
    1. init kwargs (testing/overrides)
    2. Environment variables
    3. .env file
"""

from __future__ import annotations

from .database import DatabaseSettings
from .loader import (
    clear_all_caches,
    get_db_settings,
    get_logging_settings,
    get_rabbit_settings,
)
from .logs import LoggingSettings
from .rabbit import RabbitSettings

__all__ = [
    "DatabaseSettings",
    "LoggingSettings",
    "RabbitSettings",
    "clear_all_caches",
    "get_db_settings",
    "get_logging_settings",
    "get_rabbit_settings",
]
