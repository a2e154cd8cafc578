"""Run the user service listeners until interrupted."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
import sys

import click

from user_service.cli.utils import coro, error, info
from user_service.core.settings import get_db_settings, get_rabbit_settings
from user_service.features.users import register
from user_service.infra.database import close_database, get_session_factory, init_models
from user_service.infra.logging import setup_logging
from user_service.infra.messaging import MessagingError, MessagingGateway

logger = logging.getLogger(__name__)


@click.command(name="serve")
@coro
async def serve() -> None:
    """Start the users.* RPC listeners and the users.events subscriber."""
    setup_logging()
    rabbit_settings = get_rabbit_settings()
    if not rabbit_settings.is_configured:
        error("RabbitMQ is disabled (RABBIT_ENABLED=false); nothing to serve")
        sys.exit(1)

    if get_db_settings().create_tables:
        await init_models()

    gateway = MessagingGateway(rabbit_settings)
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        # Not available on Windows event loops
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop.set)

    try:
        await register(gateway, get_session_factory())
        info(f"Listening on {rabbit_settings.safe_url()} (Ctrl+C to stop)")
        logger.info("User service started", extra={"broker": rabbit_settings.safe_url()})
        await stop.wait()
    except MessagingError as e:
        error(f"Failed to start listeners: {e}")
        sys.exit(1)
    finally:
        await gateway.close()
        await close_database()
        logger.info("User service stopped")
