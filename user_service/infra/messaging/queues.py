"""Queue declarations.

Application queues are durable and shared between every producer and
consumer of a name; reply queues are server-named, exclusive to the calling
connection and deleted by the broker when it closes.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import TYPE_CHECKING

from user_service.infra.messaging.exceptions import DeclareError

if TYPE_CHECKING:
    from aio_pika.abc import AbstractChannel, AbstractQueue

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class QueueDescriptor:
    """Declaration flags for a queue.

    An empty name asks the broker to generate one.
    """

    name: str
    durable: bool = True
    exclusive: bool = False
    auto_delete: bool = False

    @classmethod
    def application(cls, name: str) -> QueueDescriptor:
        return cls(name=name, durable=True)

    @classmethod
    def reply(cls) -> QueueDescriptor:
        return cls(name="", durable=False, exclusive=True, auto_delete=True)


async def declare(channel: AbstractChannel, descriptor: QueueDescriptor) -> AbstractQueue:
    """Declare a queue; re-declaring with identical flags is a no-op on the broker.

    Raises:
        DeclareError: The broker rejected the declaration, for example because
            the queue already exists with different flags.
    """
    try:
        return await channel.declare_queue(
            descriptor.name or None,
            durable=descriptor.durable,
            exclusive=descriptor.exclusive,
            auto_delete=descriptor.auto_delete,
        )
    except Exception as exc:
        logger.error(
            "Queue declaration rejected",
            extra={"queue": descriptor.name, "error": repr(exc)},
        )
        raise DeclareError(
            f"Failed to declare queue {descriptor.name!r}",
            queue=descriptor.name,
            original_error=exc,
        ) from exc


async def ensure_queue(channel: AbstractChannel, name: str) -> AbstractQueue:
    """Declare the durable application queue ``name``."""
    return await declare(channel, QueueDescriptor.application(name))


async def declare_reply_queue(channel: AbstractChannel) -> AbstractQueue:
    """Declare a private, server-named, auto-deleted reply queue."""
    return await declare(channel, QueueDescriptor.reply())
