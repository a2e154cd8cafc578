"""Request/response calls over RabbitMQ.

Each call runs on its own connection with a private reply queue:

    INIT -> CONNECTED -> QUEUE_READY -> AWAITING_REPLY -> RESOLVED | TIMED_OUT | FAILED -> CLOSED

The outcome is stored in an asyncio Future, so exactly one of reply,
deadline and setup error completes a call; whichever loses finds the future
already done and does nothing.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Any
import uuid

import aio_pika

from user_service.infra.logging.context import log_context
from user_service.infra.messaging.codec import CONTENT_TYPE, ResponseEnvelope, decode_response, encode
from user_service.infra.messaging.connection import close_quietly
from user_service.infra.messaging.exceptions import MessagingError, TransportError
from user_service.infra.messaging.queues import declare_reply_queue, ensure_queue
from user_service.infra.metrics.prometheus import (
    rabbitmq_messages_published_total,
    rabbitmq_rpc_call_duration_seconds,
    rabbitmq_rpc_calls_total,
    rabbitmq_rpc_replies_dropped_total,
)

if TYPE_CHECKING:
    from aio_pika.abc import AbstractConnection, AbstractIncomingMessage, AbstractQueue

    from user_service.infra.messaging.connection import ConnectionManager

logger = logging.getLogger(__name__)


class PendingCall:
    """Completion state of one outstanding RPC call.

    ``resolve``, ``expire`` and ``fail`` each return True only for the first
    completion; later attempts are no-ops.
    """

    def __init__(self, correlation_id: str, loop: asyncio.AbstractEventLoop) -> None:
        self.correlation_id = correlation_id
        self.consumer_tag: str | None = None
        self.future: asyncio.Future[ResponseEnvelope] = loop.create_future()
        self.outcome: str | None = None
        self._loop = loop
        self._timer: asyncio.TimerHandle | None = None

    @property
    def resolved(self) -> bool:
        return self.future.done()

    def arm(self, timeout: float) -> None:
        """Start the deadline timer."""
        self._timer = self._loop.call_later(timeout, self.expire)

    def _complete(self, outcome: str) -> bool:
        if self._timer is not None:
            self._timer.cancel()
        if self.future.done():
            return False
        self.outcome = outcome
        return True

    def resolve(self, envelope: ResponseEnvelope) -> bool:
        if not self._complete("resolved"):
            return False
        self.future.set_result(envelope)
        return True

    def expire(self) -> bool:
        if not self._complete("timeout"):
            return False
        self.future.set_result(ResponseEnvelope.timeout())
        return True

    def fail(self) -> bool:
        # The caller raises the error itself; the future only records that
        # the call is finished.
        if not self._complete("failed"):
            return False
        self.future.cancel()
        return True


class RpcClient:
    """Send requests and wait for correlated replies.

    Args:
        connections: Opens the per-call connection.
        timeout: Default seconds to wait for a reply.
        teardown_delay: Seconds to keep a call's connection open after its
            reply arrived, before closing it in the background.
    """

    def __init__(
        self,
        connections: ConnectionManager,
        *,
        timeout: float | None = None,
        teardown_delay: float | None = None,
    ) -> None:
        settings = connections.settings
        self._connections = connections
        self.timeout = settings.rpc_timeout if timeout is None else timeout
        self.teardown_delay = (
            settings.reply_teardown_delay if teardown_delay is None else teardown_delay
        )
        self._teardowns: set[asyncio.Task[None]] = set()

    async def call(self, queue: str, payload: Any, timeout: float | None = None) -> ResponseEnvelope:
        """Send ``payload`` to ``queue`` and wait for the reply.

        Returns:
            The decoded reply, or a 408 ``{"message": "Timeout"}`` envelope if
            no reply arrived within ``timeout`` seconds.

        Raises:
            EncodeError: ``payload`` is not JSON serializable; nothing was opened.
            TransportError: Connecting or sending failed.
            DeclareError: ``queue`` or the reply queue could not be declared.
        """
        deadline = self.timeout if timeout is None else timeout
        body = encode(payload)
        loop = asyncio.get_running_loop()
        pending = PendingCall(uuid.uuid4().hex, loop)
        started = time.perf_counter()

        with log_context(queue=queue, correlation_id=pending.correlation_id):
            connection, channel = await self._connections.open_channel()
            reply_queue: AbstractQueue | None = None
            try:
                await ensure_queue(channel, queue)
                reply_queue = await declare_reply_queue(channel)

                async def on_reply(message: AbstractIncomingMessage) -> None:
                    self._on_reply(pending, message)

                pending.consumer_tag = await reply_queue.consume(on_reply, no_ack=True)
                pending.arm(deadline)

                await channel.default_exchange.publish(
                    aio_pika.Message(
                        body,
                        content_type=CONTENT_TYPE,
                        correlation_id=pending.correlation_id,
                        reply_to=reply_queue.name,
                    ),
                    routing_key=queue,
                )
                rabbitmq_messages_published_total.labels(queue=queue).inc()
            except asyncio.CancelledError:
                pending.fail()
                await self._teardown(connection, reply_queue, pending)
                raise
            except Exception as exc:
                if pending.fail():
                    await self._teardown(connection, reply_queue, pending)
                    self._record(queue, pending, started)
                    if isinstance(exc, MessagingError):
                        logger.exception(
                            "RPC call failed before a reply arrived", extra=exc.to_log_extra()
                        )
                        raise
                    error = TransportError(
                        f"RPC request to {queue!r} failed", queue=queue, original_error=exc
                    )
                    logger.exception(
                        "RPC call failed before a reply arrived", extra=error.to_log_extra()
                    )
                    raise error from exc
                # The deadline already fired; its 408 stands.

            logger.debug("RPC request sent", extra={"timeout": deadline})

            try:
                envelope = await pending.future
            except asyncio.CancelledError:
                pending.fail()
                await self._teardown(connection, reply_queue, pending)
                raise

            self._record(queue, pending, started)
            if pending.outcome == "timeout":
                logger.warning("RPC call timed out", extra={"timeout": deadline})
                await self._teardown(connection, reply_queue, pending)
            else:
                logger.debug("RPC reply received", extra={"status_code": envelope.status_code})
                self._schedule_teardown(connection, reply_queue, pending)
            return envelope

    def _on_reply(self, pending: PendingCall, message: AbstractIncomingMessage) -> None:
        if message.correlation_id != pending.correlation_id:
            rabbitmq_rpc_replies_dropped_total.labels(reason="uncorrelated").inc()
            logger.warning(
                "Dropping reply with unknown correlation id",
                extra={"received_correlation_id": message.correlation_id},
            )
            return
        if not pending.resolve(decode_response(message.body)):
            rabbitmq_rpc_replies_dropped_total.labels(reason="late").inc()
            logger.warning("Dropping reply that arrived after the call completed")

    def _schedule_teardown(
        self,
        connection: AbstractConnection,
        reply_queue: AbstractQueue | None,
        pending: PendingCall,
    ) -> None:
        task = asyncio.create_task(
            self._teardown(connection, reply_queue, pending, delay=self.teardown_delay)
        )
        self._teardowns.add(task)
        task.add_done_callback(self._teardowns.discard)

    async def _teardown(
        self,
        connection: AbstractConnection,
        reply_queue: AbstractQueue | None,
        pending: PendingCall,
        *,
        delay: float = 0.0,
    ) -> None:
        if delay:
            await asyncio.sleep(delay)
        if reply_queue is not None and pending.consumer_tag is not None:
            try:
                await reply_queue.cancel(pending.consumer_tag)
            except Exception as exc:
                logger.debug("Ignoring error while cancelling reply consumer", extra={"error": repr(exc)})
        # Closing the connection deletes the exclusive reply queue.
        await close_quietly(connection, what="connection")

    @staticmethod
    def _record(queue: str, pending: PendingCall, started: float) -> None:
        rabbitmq_rpc_calls_total.labels(queue=queue, outcome=pending.outcome or "failed").inc()
        rabbitmq_rpc_call_duration_seconds.labels(queue=queue).observe(time.perf_counter() - started)

    @property
    def pending_teardowns(self) -> int:
        return len(self._teardowns)

    async def aclose(self) -> None:
        """Wait for connections still inside their post-reply delay to close."""
        if self._teardowns:
            await asyncio.gather(*list(self._teardowns), return_exceptions=True)
