"""Queue listeners for RPC requests and pub/sub messages.

A listener owns one long-lived connection and channel. With the default
prefetch of 1 the broker hands it one unacknowledged message at a time, so
handler invocations on a listener never overlap. Errors are contained per
message: a failing handler never stops the listener.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
import logging
from typing import TYPE_CHECKING

import aio_pika

from user_service.infra.logging.context import log_context
from user_service.infra.messaging.codec import (
    CONTENT_TYPE,
    INTERNAL_ERROR,
    InboundRequest,
    ResponseEnvelope,
    decode_request,
    encode,
    error_to_response,
)
from user_service.infra.messaging.connection import close_quietly
from user_service.infra.messaging.exceptions import EncodeError
from user_service.infra.messaging.queues import ensure_queue
from user_service.infra.metrics.prometheus import (
    rabbitmq_active_listeners,
    rabbitmq_messages_consumed_total,
    rabbitmq_rpc_replies_dropped_total,
)

if TYPE_CHECKING:
    from aio_pika.abc import (
        AbstractChannel,
        AbstractConnection,
        AbstractIncomingMessage,
        AbstractQueue,
    )

    from user_service.infra.messaging.connection import ConnectionManager

logger = logging.getLogger(__name__)

RpcHandler = Callable[[InboundRequest], Awaitable[ResponseEnvelope | None]]
PubSubHandler = Callable[[InboundRequest], Awaitable[None]]


class _QueueListener:
    kind = "listener"

    def __init__(
        self,
        connections: ConnectionManager,
        queue: str,
        *,
        prefetch_count: int | None = None,
    ) -> None:
        self._connections = connections
        self.queue = queue
        self.prefetch_count = prefetch_count or connections.settings.prefetch_count
        self._connection: AbstractConnection | None = None
        self._channel: AbstractChannel | None = None
        self._queue: AbstractQueue | None = None
        self._consumer_tag: str | None = None

    @property
    def is_running(self) -> bool:
        return self._consumer_tag is not None

    async def start(self) -> None:
        """Declare the queue and begin consuming with manual acknowledgement.

        Raises:
            TransportError: The connection or channel could not be opened.
            DeclareError: The queue could not be declared.
        """
        if self.is_running:
            return

        connection, channel = await self._connections.open_channel()
        try:
            queue = await ensure_queue(channel, self.queue)
            await channel.set_qos(prefetch_count=self.prefetch_count)
            self._consumer_tag = await queue.consume(self._on_message, no_ack=False)
        except BaseException:
            await close_quietly(connection, what="connection")
            raise

        self._connection, self._channel, self._queue = connection, channel, queue
        rabbitmq_active_listeners.labels(kind=self.kind).inc()
        logger.info(
            "Listener started",
            extra={"queue": self.queue, "kind": self.kind, "prefetch_count": self.prefetch_count},
        )

    async def stop(self) -> None:
        """Cancel the consumer and close the listener's connection."""
        if not self.is_running:
            return

        if self._queue is not None and self._consumer_tag is not None:
            try:
                await self._queue.cancel(self._consumer_tag)
            except Exception as exc:
                logger.debug("Ignoring error while cancelling consumer", extra={"error": repr(exc)})
        await close_quietly(self._channel, what="channel")
        await close_quietly(self._connection, what="connection")

        self._connection = self._channel = self._queue = None
        self._consumer_tag = None
        rabbitmq_active_listeners.labels(kind=self.kind).dec()
        logger.info("Listener stopped", extra={"queue": self.queue, "kind": self.kind})

    async def _on_message(self, message: AbstractIncomingMessage) -> None:
        with log_context(queue=self.queue, correlation_id=message.correlation_id):
            try:
                await self._process(message)
            except Exception:
                logger.exception("Unhandled error while processing message")

    async def _process(self, message: AbstractIncomingMessage) -> None:
        raise NotImplementedError


class RpcListener(_QueueListener):
    """Serve RPC requests from ``queue`` with ``handler``.

    Every request is acknowledged once handled, whatever the handler did:
    the caller has already been told the outcome through the reply. Replies
    go out on their own short-lived connection.

    Example:
        async def get_user(request: InboundRequest) -> ResponseEnvelope:
            ...

        listener = RpcListener(connections, "users.get", get_user)
        await listener.start()
    """

    kind = "rpc"

    def __init__(
        self,
        connections: ConnectionManager,
        queue: str,
        handler: RpcHandler,
        *,
        prefetch_count: int | None = None,
    ) -> None:
        super().__init__(connections, queue, prefetch_count=prefetch_count)
        self._handler = handler

    async def _process(self, message: AbstractIncomingMessage) -> None:
        try:
            response = await self._respond(decode_request(message.body))
            if message.reply_to and message.correlation_id:
                await self._send_reply(message.reply_to, message.correlation_id, response)
            else:
                rabbitmq_rpc_replies_dropped_total.labels(reason="no_reply_to").inc()
                logger.warning("RPC request has no reply_to or correlation_id; not replying")
        finally:
            try:
                await message.ack()
            except Exception:
                logger.exception("Failed to acknowledge RPC request")

    async def _respond(self, request: InboundRequest) -> ResponseEnvelope:
        outcome = "ok"
        try:
            response = await self._handler(request)
        except Exception as exc:
            outcome = "error"
            logger.warning(
                "RPC handler raised",
                exc_info=True,
                extra={"error_type": type(exc).__name__},
            )
            response = error_to_response(exc)
        if response is None:
            response = ResponseEnvelope()
        elif not isinstance(response, ResponseEnvelope):
            outcome = "error"
            logger.error(
                "RPC handler returned an unsupported result",
                extra={"result_type": type(response).__name__},
            )
            response = ResponseEnvelope(status_code=500, body={"message": INTERNAL_ERROR})
        rabbitmq_messages_consumed_total.labels(queue=self.queue, outcome=outcome).inc()
        return response

    async def _send_reply(
        self,
        reply_to: str,
        correlation_id: str,
        response: ResponseEnvelope,
    ) -> None:
        try:
            body = encode(response.to_wire())
        except EncodeError:
            logger.exception("RPC handler returned a body that is not JSON serializable")
            body = encode(
                ResponseEnvelope(status_code=500, body={"message": INTERNAL_ERROR}).to_wire()
            )

        try:
            async with self._connections.acquire_channel() as channel:
                await channel.default_exchange.publish(
                    aio_pika.Message(
                        body,
                        content_type=CONTENT_TYPE,
                        correlation_id=correlation_id,
                    ),
                    routing_key=reply_to,
                )
        except Exception:
            # The caller will see its own timeout.
            rabbitmq_rpc_replies_dropped_total.labels(reason="send_failed").inc()
            logger.exception("Failed to send RPC reply", extra={"reply_to": reply_to})
            return

        logger.debug(
            "RPC reply sent",
            extra={"reply_to": reply_to, "status_code": response.status_code},
        )


class PubSubListener(_QueueListener):
    """Consume messages from ``queue`` with ``handler``.

    Acknowledged when the handler returns; rejected without requeue when it
    raises, so a poison message is not redelivered forever.
    """

    kind = "pubsub"

    def __init__(
        self,
        connections: ConnectionManager,
        queue: str,
        handler: PubSubHandler,
        *,
        prefetch_count: int | None = None,
    ) -> None:
        super().__init__(connections, queue, prefetch_count=prefetch_count)
        self._handler = handler

    async def _process(self, message: AbstractIncomingMessage) -> None:
        request = decode_request(message.body)
        try:
            await self._handler(request)
        except Exception:
            rabbitmq_messages_consumed_total.labels(queue=self.queue, outcome="error").inc()
            logger.exception("Pub/sub handler raised; rejecting message")
            try:
                await message.nack(requeue=False)
            except Exception:
                logger.exception("Failed to reject message")
            return

        rabbitmq_messages_consumed_total.labels(queue=self.queue, outcome="ok").inc()
        try:
            await message.ack()
        except Exception:
            logger.exception("Failed to acknowledge message")
