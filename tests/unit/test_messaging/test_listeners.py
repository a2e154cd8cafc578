"""Tests for RPC and pub/sub listeners."""

from __future__ import annotations

import asyncio
import json
import time

import aio_pika
import pytest

from user_service.infra.messaging.codec import ResponseEnvelope
from user_service.infra.messaging.exceptions import DeclareError
from user_service.infra.messaging.listeners import PubSubListener, RpcListener
from user_service.infra.metrics.prometheus import REGISTRY


def _sample(name: str, labels: dict[str, str]) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


async def _wait_for(predicate, timeout: float = 1.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.005)


async def _send_raw(connections, queue: str, body: bytes, **properties) -> None:
    async with connections.acquire_channel() as channel:
        await channel.declare_queue(queue, durable=True)
        await channel.default_exchange.publish(aio_pika.Message(body, **properties), routing_key=queue)


@pytest.mark.unit
class TestRpcListener:
    async def test_prefetch_one_processes_requests_sequentially(self, gateway):
        active = 0
        max_active = 0
        events: list[str] = []

        async def handler(request):
            nonlocal active, max_active
            active += 1
            max_active = max(max_active, active)
            events.append(f"start:{request.body['n']}")
            await asyncio.sleep(0.02)
            events.append(f"end:{request.body['n']}")
            active -= 1
            return ResponseEnvelope(body={"n": request.body["n"]})

        listener = await gateway.listen_rpc("work", handler)
        replies = await asyncio.gather(*(gateway.call("work", {"n": n}) for n in range(3)))

        assert listener.prefetch_count == 1
        assert max_active == 1
        assert sorted(r.body["n"] for r in replies) == [0, 1, 2]
        for i in range(0, len(events), 2):
            assert events[i].startswith("start:")
            assert events[i + 1] == events[i].replace("start:", "end:")

    async def test_request_without_reply_to_is_acked_and_not_answered(self, gateway, broker):
        seen = []

        async def handler(request):
            seen.append(request.body)
            return ResponseEnvelope()

        before = _sample("rabbitmq_rpc_replies_dropped_total", {"reason": "no_reply_to"})
        await gateway.listen_rpc("orphans", handler)
        published_before = len(broker.published)

        await _send_raw(gateway.connections, "orphans", b'{"x": 1}', correlation_id="c-1")
        await _wait_for(lambda: broker.acked)

        assert seen == [{"x": 1}]
        assert len(broker.published) == published_before + 1
        assert _sample("rabbitmq_rpc_replies_dropped_total", {"reason": "no_reply_to"}) == before + 1

    async def test_reply_send_failure_is_swallowed(self, gateway, broker):
        calls = 0

        async def handler(request):
            nonlocal calls
            calls += 1
            return ResponseEnvelope(body={"call": calls})

        await gateway.listen_rpc("fragile", handler)
        before = _sample("rabbitmq_rpc_replies_dropped_total", {"reason": "send_failed"})

        broker.fail_publish = lambda key: key.startswith("amq.gen-")
        lost = await gateway.call("fragile", {}, timeout=0.1)
        broker.fail_publish = None
        recovered = await gateway.call("fragile", {}, timeout=1.0)

        assert lost.status_code == 408
        assert recovered.body == {"call": 2}
        assert _sample("rabbitmq_rpc_replies_dropped_total", {"reason": "send_failed"}) == before + 1

    async def test_unexpected_handler_error_becomes_500(self, gateway):
        async def broken(request):
            raise KeyError("missing")

        await gateway.listen_rpc("broken", broken)

        first = await gateway.call("broken", {})
        second = await gateway.call("broken", {})

        assert first == ResponseEnvelope(status_code=500, body={"message": "Internal server error."})
        assert second.status_code == 500

    async def test_malformed_request_reaches_handler_wrapped(self, gateway, broker):
        received = []

        async def handler(request):
            received.append(request)
            return ResponseEnvelope()

        await gateway.listen_rpc("raw", handler)
        await _send_raw(gateway.connections, "raw", b"<xml/>")
        await _wait_for(lambda: received)

        assert received[0].body == {"raw_message": "<xml/>"}
        assert received[0].raw_text == "<xml/>"

    async def test_reply_carries_request_correlation_id(self, gateway, broker):
        async def handler(request):
            return ResponseEnvelope(status_code=202, body=None)

        await gateway.listen_rpc("corr", handler)

        async with gateway.connections.acquire_channel() as channel:
            reply_queue = await channel.declare_queue(None, exclusive=True, auto_delete=True)
            await _send_raw(
                gateway.connections,
                "corr",
                b"{}",
                correlation_id="corr-42",
                reply_to=reply_queue.name,
            )
            await _wait_for(lambda: broker.queues[reply_queue.name].messages)
            [stored] = broker.queues[reply_queue.name].messages

        assert stored.correlation_id == "corr-42"
        assert json.loads(stored.body) == {"code": 202, "response": None}

    async def test_start_failure_closes_connection(self, connections, broker):
        broker.fail_declare = lambda name: name == "nope"

        async def handler(request):
            return ResponseEnvelope()

        listener = RpcListener(connections, "nope", handler)
        with pytest.raises(DeclareError):
            await listener.start()

        assert not listener.is_running
        assert broker.open_connections == 0

    async def test_cancel_during_start_closes_connection(self, connections, broker):
        broker.stall_declare = lambda name: name == "slow"

        async def handler(request):
            return ResponseEnvelope()

        listener = RpcListener(connections, "slow", handler)
        task = asyncio.create_task(listener.start())
        await asyncio.wait_for(broker.declare_stalled.wait(), timeout=1.0)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert not listener.is_running
        assert broker.open_connections == 0

    async def test_unsupported_handler_result_becomes_500_and_listener_continues(self, gateway):
        results = iter([{"not": "an envelope"}, ResponseEnvelope(body={"ok": True})])

        async def handler(request):
            return next(results)

        await gateway.listen_rpc("loose", handler)

        first = await gateway.call("loose", {})
        second = await gateway.call("loose", {})

        assert first == ResponseEnvelope(status_code=500, body={"message": "Internal server error."})
        assert second == ResponseEnvelope(status_code=200, body={"ok": True})

    async def test_request_is_acked_when_reply_fails_unexpectedly(self, gateway, broker, monkeypatch):
        served = []

        async def handler(request):
            served.append(request.body)
            return ResponseEnvelope()

        listener = await gateway.listen_rpc("flaky", handler)

        async def broken_reply(*args):
            raise RuntimeError("reply path exploded")

        monkeypatch.setattr(listener, "_send_reply", broken_reply)
        lost = await gateway.call("flaky", {"n": 1}, timeout=0.1)
        monkeypatch.undo()
        answered = await gateway.call("flaky", {"n": 2}, timeout=1.0)

        assert lost.status_code == 408
        assert answered.status_code == 200
        assert served == [{"n": 1}, {"n": 2}]

    async def test_stop_cancels_consumer_and_closes(self, connections, broker):
        async def handler(request):
            return ResponseEnvelope()

        listener = RpcListener(connections, "svc", handler)
        await listener.start()
        await listener.start()

        assert len(broker.queue("svc").consumers) == 1
        await listener.stop()

        assert not listener.is_running
        assert broker.queue("svc").consumers == []
        assert broker.open_connections == 0


@pytest.mark.unit
class TestPubSubListener:
    async def test_successful_handler_acks(self, gateway, broker):
        received = []

        async def handler(request):
            received.append(request.body)

        await gateway.listen_pubsub("events", handler)
        await gateway.publish("events", {"event": "user.created", "id": 1})
        await _wait_for(lambda: broker.acked)

        assert received == [{"event": "user.created", "id": 1}]
        assert broker.queue("events").rejected == []

    async def test_failing_handler_nacks_without_requeue(self, gateway, broker):
        attempts = []

        async def handler(request):
            attempts.append(request.body)
            if request.body.get("poison"):
                raise ValueError("cannot handle")

        await gateway.listen_pubsub("events", handler)
        await gateway.publish("events", {"poison": True})
        await gateway.publish("events", {"poison": False})
        await _wait_for(lambda: len(attempts) == 2 and broker.acked)

        state = broker.queue("events")
        assert [json.loads(m.body) for m in state.rejected] == [{"poison": True}]
        assert not state.messages
        assert attempts == [{"poison": True}, {"poison": False}]

    async def test_consumes_with_manual_ack_and_prefetch(self, connections, broker):
        async def handler(request):
            return None

        listener = PubSubListener(connections, "events", handler, prefetch_count=3)
        await listener.start()

        [consumer] = broker.queue("events").consumers
        assert consumer.no_ack is False
        assert consumer.channel.prefetch_count == 3
        await listener.stop()
