"""One-shot publish and RPC commands for poking a running service."""

from __future__ import annotations

import json
import sys
from typing import Any

import click

from user_service.cli.utils import coro, error, success
from user_service.core.settings import get_rabbit_settings
from user_service.infra.messaging import MessagingError, MessagingGateway


def _load_payload(payload: str) -> Any:
    try:
        return json.loads(payload)
    except ValueError as e:
        raise click.BadParameter(f"not valid JSON: {e}", param_hint="PAYLOAD") from e


@click.command(name="call")
@click.argument("queue")
@click.argument("payload")
@click.option(
    "--timeout",
    type=float,
    default=None,
    help="Seconds to wait for the reply (default: RABBIT_RPC_TIMEOUT).",
)
@coro
async def call(queue: str, payload: str, timeout: float | None) -> None:
    """Send PAYLOAD (JSON) to QUEUE and print the reply envelope.

    \b
    Example:
      user-service call users.get '{"id": 1}'
    """
    body = _load_payload(payload)
    gateway = MessagingGateway(get_rabbit_settings())
    try:
        reply = await gateway.call(queue, body, timeout=timeout)
    except MessagingError as e:
        error(f"RPC call failed: {e}")
        sys.exit(1)
    finally:
        await gateway.close()

    click.echo(json.dumps(reply.to_wire(), indent=2, ensure_ascii=False))
    if reply.status_code >= 400:
        sys.exit(1)


@click.command(name="publish")
@click.argument("queue")
@click.argument("payload")
@coro
async def publish(queue: str, payload: str) -> None:
    """Publish PAYLOAD (JSON) to QUEUE without waiting for a reply."""
    body = _load_payload(payload)
    gateway = MessagingGateway(get_rabbit_settings())
    try:
        await gateway.publish(queue, body)
    except MessagingError as e:
        error(f"Publish failed: {e}")
        sys.exit(1)
    finally:
        await gateway.close()
    success(f"Published to {queue}")
