"""Single entry point for broker access used by business code."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import aio_pika

from user_service.infra.messaging.connection import ConnectionManager, Connector
from user_service.infra.messaging.listeners import (
    PubSubHandler,
    PubSubListener,
    RpcHandler,
    RpcListener,
)
from user_service.infra.messaging.publisher import Publisher
from user_service.infra.messaging.rpc_client import RpcClient

if TYPE_CHECKING:
    from user_service.core.settings.rabbit import RabbitSettings
    from user_service.infra.messaging.codec import ResponseEnvelope

logger = logging.getLogger(__name__)


class MessagingGateway:
    """Publish, call and listen on RabbitMQ queues.

    Args:
        settings: Broker configuration; every component reads its URL and
            timeouts from here.
        connector: Replacement for ``aio_pika.connect`` (tests).

    Example:
        gateway = MessagingGateway(get_rabbit_settings())
        await gateway.listen_rpc("users.get", handle_get_user)
        reply = await gateway.call("users.get", {"id": 1})
        await gateway.close()
    """

    def __init__(
        self,
        settings: RabbitSettings,
        *,
        connector: Connector = aio_pika.connect,
    ) -> None:
        self.settings = settings
        self.connections = ConnectionManager(settings, connector=connector)
        self.publisher = Publisher(self.connections)
        self.rpc = RpcClient(self.connections)
        self._listeners: list[RpcListener | PubSubListener] = []

    @property
    def listeners(self) -> tuple[RpcListener | PubSubListener, ...]:
        return tuple(self._listeners)

    async def publish(self, queue: str, payload: Any) -> None:
        """Fire-and-forget ``payload`` to ``queue``."""
        await self.publisher.publish(queue, payload)

    async def call(self, queue: str, payload: Any, timeout: float | None = None) -> ResponseEnvelope:
        """RPC ``payload`` to ``queue``; a missing reply yields a 408 envelope."""
        return await self.rpc.call(queue, payload, timeout=timeout)

    async def listen_rpc(self, queue: str, handler: RpcHandler) -> RpcListener:
        """Start serving RPC requests on ``queue``."""
        listener = RpcListener(self.connections, queue, handler)
        await listener.start()
        self._listeners.append(listener)
        return listener

    async def listen_pubsub(self, queue: str, handler: PubSubHandler) -> PubSubListener:
        """Start consuming messages on ``queue``."""
        listener = PubSubListener(self.connections, queue, handler)
        await listener.start()
        self._listeners.append(listener)
        return listener

    async def close(self) -> None:
        """Stop every listener and wait for outstanding RPC teardowns."""
        for listener in reversed(self._listeners):
            await listener.stop()
        self._listeners.clear()
        await self.rpc.aclose()
        logger.info("Messaging gateway closed")
