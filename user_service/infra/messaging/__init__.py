"""RabbitMQ messaging gateway: pub/sub and RPC over durable queues."""

from __future__ import annotations

from user_service.infra.messaging.codec import (
    InboundRequest,
    ResponseEnvelope,
    decode_request,
    decode_response,
    encode,
    error_to_response,
)
from user_service.infra.messaging.connection import ConnectionManager
from user_service.infra.messaging.exceptions import (
    DeclareError,
    DecodeError,
    EncodeError,
    MessagingError,
    TransportError,
)
from user_service.infra.messaging.gateway import MessagingGateway
from user_service.infra.messaging.listeners import PubSubListener, RpcListener
from user_service.infra.messaging.publisher import Publisher
from user_service.infra.messaging.queues import QueueDescriptor, declare_reply_queue, ensure_queue
from user_service.infra.messaging.rpc_client import PendingCall, RpcClient

__all__ = [
    "ConnectionManager",
    "DeclareError",
    "DecodeError",
    "EncodeError",
    "InboundRequest",
    "MessagingError",
    "MessagingGateway",
    "PendingCall",
    "PubSubListener",
    "Publisher",
    "QueueDescriptor",
    "ResponseEnvelope",
    "RpcClient",
    "RpcListener",
    "TransportError",
    "declare_reply_queue",
    "decode_request",
    "decode_response",
    "encode",
    "error_to_response",
    "ensure_queue",
]
