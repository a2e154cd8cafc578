"""Main CLI entry point for user-service."""

import click

from user_service import __version__
from user_service.cli.commands import messaging, serve
from user_service.infra.logging import setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="user-service")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """User Service CLI - run the RabbitMQ listeners or talk to them.

    \b
    Commands:
      serve     Start the users.* listeners
      call      Send one RPC request and print the reply
      publish   Publish one message

    \b
    Quick Start:
      user-service serve
      user-service call users.create '{"name": "A", "email": "a@x.com", "password": "secret1", "cellPhone": "555"}'
    """
    ctx.ensure_object(dict)


cli.add_command(serve.serve)
cli.add_command(messaging.call)
cli.add_command(messaging.publish)


def main() -> None:
    """Entry point for CLI."""
    setup_logging()
    cli(obj={})


if __name__ == "__main__":
    main()
