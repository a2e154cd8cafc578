"""Per-operation RabbitMQ connections.

There is no pooling: every publish, RPC call, reply and listener opens its
own connection and channel and is responsible for closing both.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
import logging
from typing import TYPE_CHECKING, Any

import aio_pika

from user_service.infra.messaging.exceptions import TransportError

if TYPE_CHECKING:
    from aio_pika.abc import AbstractChannel, AbstractConnection

    from user_service.core.settings.rabbit import RabbitSettings

logger = logging.getLogger(__name__)

Connector = Callable[..., Awaitable["AbstractConnection"]]


async def close_quietly(resource: Any, *, what: str = "resource") -> None:
    """Close a channel or connection, logging instead of raising.

    Used on cleanup paths where a close failure must not mask the original
    outcome.
    """
    if resource is None or getattr(resource, "is_closed", False):
        return
    try:
        await resource.close()
    except Exception as exc:
        logger.debug("Ignoring error while closing %s", what, extra={"error": repr(exc)})


class ConnectionManager:
    """Open connection + channel pairs against one broker.

    Args:
        settings: Broker address, timeouts and connection name.
        connector: Coroutine function with the ``aio_pika.connect`` signature.
            Tests inject an in-memory broker here.

    Example:
        manager = ConnectionManager(get_rabbit_settings())
        async with manager.acquire_channel() as channel:
            await channel.default_exchange.publish(message, routing_key="users.events")
    """

    def __init__(
        self,
        settings: RabbitSettings,
        connector: Connector = aio_pika.connect,
    ) -> None:
        self.settings = settings
        self._connector = connector

    async def connect(self) -> AbstractConnection:
        """Open a new broker connection.

        Raises:
            TransportError: The broker is unreachable or refused the login.
        """
        try:
            return await self._connector(
                self.settings.get_url(),
                **self.settings.to_connection_config(),
            )
        except Exception as exc:
            logger.exception(
                "Failed to connect to RabbitMQ",
                extra={"url": self.settings.safe_url()},
            )
            raise TransportError("Failed to connect to RabbitMQ", original_error=exc) from exc

    async def open_channel(self) -> tuple[AbstractConnection, AbstractChannel]:
        """Open a new connection and a channel on it.

        If the channel cannot be created the connection is closed before the
        error propagates, so a failed call never leaks a connection.

        Raises:
            TransportError: Connecting or creating the channel failed.
        """
        connection = await self.connect()
        try:
            channel = await connection.channel()
        except Exception as exc:
            await close_quietly(connection, what="connection")
            logger.exception("Failed to open RabbitMQ channel")
            raise TransportError("Failed to open channel", original_error=exc) from exc
        except BaseException:
            await close_quietly(connection, what="connection")
            raise
        return connection, channel

    @asynccontextmanager
    async def acquire_channel(self) -> AsyncIterator[AbstractChannel]:
        """Scoped connection + channel, released on every exit path."""
        connection, channel = await self.open_channel()
        try:
            yield channel
        finally:
            await close_quietly(channel, what="channel")
            await close_quietly(connection, what="connection")
