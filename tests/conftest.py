"""Pytest configuration and shared fixtures.

Organization:
    - Messaging Fixtures: in-memory broker, settings, connection manager, gateway
    - Database Fixtures: in-memory SQLite engine and session factory
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
import os
from typing import TYPE_CHECKING

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from tests.fakes.broker import FakeBroker
from user_service.core.settings import RabbitSettings, clear_all_caches
from user_service.infra.logging import clear_log_context
from user_service.infra.messaging import ConnectionManager, MessagingGateway

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

# Keep a developer's .env or shell from leaking into tests
for _var in ("AMQP_URI", "RABBIT_ENABLED", "RABBIT_RPC_TIMEOUT", "DB_DATABASE_URL"):
    os.environ.pop(_var, None)


@pytest.fixture(autouse=True)
def _reset_state():
    """Clear cached settings and log context around every test."""
    clear_all_caches()
    clear_log_context()
    yield
    clear_all_caches()
    clear_log_context()


# ============================================================================
# Messaging Fixtures
# ============================================================================


@pytest.fixture
def broker() -> FakeBroker:
    """Fresh in-memory broker for each test."""
    return FakeBroker()


@pytest.fixture
def rabbit_settings() -> RabbitSettings:
    """Settings with short timeouts so timeout paths finish quickly."""
    return RabbitSettings(
        host="broker.test",
        rpc_timeout=1.0,
        reply_teardown_delay=0.01,
        _env_file=None,
    )


@pytest.fixture
def connections(rabbit_settings: RabbitSettings, broker: FakeBroker) -> ConnectionManager:
    return ConnectionManager(rabbit_settings, connector=broker.connect)


@pytest.fixture
async def gateway(
    rabbit_settings: RabbitSettings,
    broker: FakeBroker,
) -> AsyncGenerator[MessagingGateway]:
    """Gateway wired to the in-memory broker; closed after the test.

    Example:
        async def test_roundtrip(gateway):
            await gateway.listen_rpc("q", handler)
            reply = await gateway.call("q", {"x": 1})
    """
    gw = MessagingGateway(rabbit_settings, connector=broker.connect)
    try:
        yield gw
    finally:
        await gw.close()
        await broker.drain()


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
async def db_engine() -> AsyncGenerator[AsyncEngine]:
    """Async engine on a single shared in-memory SQLite connection, with tables created."""
    from user_service.infra.database import init_models

    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await init_models(engine)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    from user_service.infra.database import create_session_factory

    return create_session_factory(db_engine)


@pytest.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    async with session_factory() as session:
        yield session
