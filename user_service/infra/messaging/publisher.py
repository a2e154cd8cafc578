"""Fire-and-forget publishing to a named queue."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import aio_pika
from aio_pika import DeliveryMode

from user_service.infra.messaging.codec import CONTENT_TYPE, encode
from user_service.infra.messaging.exceptions import TransportError
from user_service.infra.messaging.queues import ensure_queue
from user_service.infra.metrics.prometheus import rabbitmq_messages_published_total

if TYPE_CHECKING:
    from user_service.infra.messaging.connection import ConnectionManager

logger = logging.getLogger(__name__)


class Publisher:
    """Send persistent messages to durable queues.

    Each publish opens and closes its own connection. Failures propagate to
    the caller; nothing is retried here.
    """

    def __init__(self, connections: ConnectionManager) -> None:
        self._connections = connections

    async def publish(self, queue: str, payload: Any) -> None:
        """Publish ``payload`` to ``queue``.

        The message is marked persistent, so it survives a broker restart
        while it waits in the durable queue.

        Raises:
            EncodeError: ``payload`` is not JSON serializable (nothing is sent).
            TransportError: Connecting or sending failed.
            DeclareError: The queue could not be declared.
        """
        body = encode(payload)

        async with self._connections.acquire_channel() as channel:
            await ensure_queue(channel, queue)
            message = aio_pika.Message(
                body,
                content_type=CONTENT_TYPE,
                delivery_mode=DeliveryMode.PERSISTENT,
            )
            try:
                await channel.default_exchange.publish(message, routing_key=queue)
            except Exception as exc:
                error = TransportError(
                    f"Failed to publish to {queue!r}", queue=queue, original_error=exc
                )
                logger.exception("Failed to publish message", extra=error.to_log_extra())
                raise error from exc

        rabbitmq_messages_published_total.labels(queue=queue).inc()
        logger.info("Message published", extra={"queue": queue, "size": len(body)})
