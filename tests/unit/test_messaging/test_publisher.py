"""Tests for fire-and-forget publishing."""

from __future__ import annotations

import asyncio
import json

from aio_pika import DeliveryMode
import pytest

from tests.fakes.broker import FakeBrokerError
from user_service.infra.messaging.exceptions import EncodeError, TransportError
from user_service.infra.messaging.publisher import Publisher


@pytest.mark.unit
class TestPublisher:
    async def test_publish_declares_queue_and_sends_persistent_json(self, connections, broker):
        await Publisher(connections).publish("users.events", {"event": "user.created", "id": 1})

        state = broker.queue("users.events")
        assert state.durable is True
        [stored] = state.messages
        assert json.loads(stored.body) == {"event": "user.created", "id": 1}
        assert stored.delivery_mode == DeliveryMode.PERSISTENT
        assert stored.content_type == "application/json"

    async def test_connection_is_released_after_publish(self, connections, broker):
        await Publisher(connections).publish("q", [1, 2, 3])

        assert len(broker.connections) == 1
        assert broker.open_connections == 0

    async def test_send_failure_propagates_and_releases(self, connections, broker):
        broker.fail_publish = lambda key: key == "q"

        with pytest.raises(TransportError) as exc_info:
            await Publisher(connections).publish("q", {"x": 1})

        assert isinstance(exc_info.value.original_error, FakeBrokerError)
        assert broker.open_connections == 0

    async def test_send_failure_log_carries_error_fields(self, connections, broker, caplog):
        broker.fail_publish = lambda key: key == "q"

        with caplog.at_level("ERROR"), pytest.raises(TransportError):
            await Publisher(connections).publish("q", {"x": 1})

        [record] = [r for r in caplog.records if r.getMessage() == "Failed to publish message"]
        assert record.error_type == "TransportError"
        assert record.queue == "q"

    async def test_unserializable_payload_never_connects(self, connections, broker):
        with pytest.raises(EncodeError):
            await Publisher(connections).publish("q", {"x": {1, 2}})

        assert broker.connections == []

    async def test_message_published_without_listener_reaches_later_listener(self, gateway, broker):
        received = []
        done = asyncio.Event()

        async def handler(request):
            received.append(request.body)
            done.set()

        await gateway.publish("audit", {"n": 1})
        assert len(broker.queue("audit").messages) == 1

        await gateway.listen_pubsub("audit", handler)
        await asyncio.wait_for(done.wait(), timeout=1.0)
        await broker.drain()

        assert received == [{"n": 1}]
        assert not broker.queue("audit").messages
