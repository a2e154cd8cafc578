"""RPC and pub/sub handlers exposing the user store over RabbitMQ.

Queues:
    users.create  RPC     UserCreate  -> 201 UserRead
    users.get     RPC     UserLookup  -> 200 UserRead
    users.list    RPC     UserListQuery -> 200 list[UserRead]
    users.events  pub/sub UserEvent (published after every create)
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
import logging
from typing import TYPE_CHECKING, Any, TypeVar

from pydantic import BaseModel, ValidationError

from user_service.core.exceptions import ValidationException
from user_service.features.users.schemas import (
    UserCreate,
    UserEvent,
    UserListQuery,
    UserLookup,
    UserRead,
)
from user_service.features.users.service import UserService
from user_service.infra.messaging.codec import ResponseEnvelope

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from user_service.infra.messaging.codec import InboundRequest
    from user_service.infra.messaging.gateway import MessagingGateway

logger = logging.getLogger(__name__)

CREATE_QUEUE = "users.create"
GET_QUEUE = "users.get"
LIST_QUEUE = "users.list"
EVENTS_QUEUE = "users.events"

EventPublisher = Callable[[str, Any], Awaitable[None]]

M = TypeVar("M", bound=BaseModel)


def _parse(schema: type[M], body: Any) -> M:
    try:
        return schema.model_validate(body if body is not None else {})
    except ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first["loc"]) or "body"
        raise ValidationException(
            f"Invalid {field}: {first['msg']}",
            extra={"errors": exc.error_count()},
        ) from exc


class UserHandlers:
    """Bind the user service to request envelopes.

    Each request gets its own session from ``session_factory``.

    Args:
        session_factory: Produces AsyncSession instances.
        publish_event: Optional coroutine ``(queue, payload)`` used to announce
            created users; failures are logged and do not fail the request.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        publish_event: EventPublisher | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._publish_event = publish_event

    async def create(self, request: InboundRequest) -> ResponseEnvelope:
        payload = _parse(UserCreate, request.body)
        async with self._session_factory() as session:
            user = await UserService(session).create_user(payload)
            body = UserRead.model_validate(user).model_dump(mode="json")

        if self._publish_event is not None:
            event = UserEvent(event="user.created", id=body["id"], email=body["email"])
            try:
                await self._publish_event(EVENTS_QUEUE, event.model_dump())
            except Exception:
                logger.exception("Failed to publish user event", extra={"user_id": body["id"]})

        return ResponseEnvelope(status_code=201, body=body)

    async def get(self, request: InboundRequest) -> ResponseEnvelope:
        lookup = _parse(UserLookup, request.body)
        async with self._session_factory() as session:
            user = await UserService(session).get_user(lookup.id)
            body = UserRead.model_validate(user).model_dump(mode="json")
        return ResponseEnvelope(status_code=200, body=body)

    async def list(self, request: InboundRequest) -> ResponseEnvelope:
        query = _parse(UserListQuery, request.body)
        async with self._session_factory() as session:
            users = await UserService(session).list_users(limit=query.limit, offset=query.offset)
            body = [UserRead.model_validate(u).model_dump(mode="json") for u in users]
        return ResponseEnvelope(status_code=200, body=body)

    async def on_event(self, request: InboundRequest) -> None:
        """Log user events; malformed events raise so the listener rejects them."""
        event = _parse(UserEvent, request.body)
        logger.info(
            "User event received",
            extra={"event": event.event, "user_id": event.id},
        )


async def register(
    gateway: MessagingGateway,
    session_factory: async_sessionmaker[AsyncSession],
) -> UserHandlers:
    """Start every user listener on ``gateway``."""
    handlers = UserHandlers(session_factory, publish_event=gateway.publish)
    await gateway.listen_rpc(CREATE_QUEUE, handlers.create)
    await gateway.listen_rpc(GET_QUEUE, handlers.get)
    await gateway.listen_rpc(LIST_QUEUE, handlers.list)
    await gateway.listen_pubsub(EVENTS_QUEUE, handlers.on_event)
    logger.info(
        "User listeners registered",
        extra={"queues": [CREATE_QUEUE, GET_QUEUE, LIST_QUEUE, EVENTS_QUEUE]},
    )
    return handlers
