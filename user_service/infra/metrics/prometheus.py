"""Prometheus metrics for the messaging gateway and user store."""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram

# Custom registry so tests and embedding processes do not collide with the default one
REGISTRY = CollectorRegistry()

# RPC round trips range from a few ms to the client timeout
RPC_LATENCY_BUCKETS = (
    0.005,
    0.01,
    0.025,
    0.05,
    0.1,
    0.25,
    0.5,
    1.0,
    2.5,
    5.0,
    10.0,
    30.0,
)

# RabbitMQ metrics
rabbitmq_messages_published_total = Counter(
    "rabbitmq_messages_published_total",
    "Total number of messages published to RabbitMQ queues (RPC requests included)",
    ["queue"],
    registry=REGISTRY,
)

rabbitmq_messages_consumed_total = Counter(
    "rabbitmq_messages_consumed_total",
    "Total number of messages consumed by listeners. "
    "Outcome is 'ok' when the handler succeeded and 'error' when it raised.",
    ["queue", "outcome"],
    registry=REGISTRY,
)

rabbitmq_rpc_calls_total = Counter(
    "rabbitmq_rpc_calls_total",
    "Total RPC calls made by this process, by final outcome (resolved, timeout, failed)",
    ["queue", "outcome"],
    registry=REGISTRY,
)

rabbitmq_rpc_call_duration_seconds = Histogram(
    "rabbitmq_rpc_call_duration_seconds",
    "Time from sending an RPC request until it resolved, timed out or failed",
    ["queue"],
    buckets=RPC_LATENCY_BUCKETS,
    registry=REGISTRY,
)

rabbitmq_rpc_replies_dropped_total = Counter(
    "rabbitmq_rpc_replies_dropped_total",
    "RPC replies that were never delivered to a waiting caller. "
    "Reasons: late (after timeout), uncorrelated (unknown correlation id), "
    "no_reply_to (request without reply_to/correlation_id), send_failed.",
    ["reason"],
    registry=REGISTRY,
)

rabbitmq_active_listeners = Gauge(
    "rabbitmq_active_listeners",
    "Number of listeners currently consuming",
    ["kind"],
    registry=REGISTRY,
)

# Business metrics
users_created_total = Counter(
    "users_created_total",
    "Total number of user records created",
    registry=REGISTRY,
)
