"""Worker command: listen to one queue until stopped."""

import click

from amqp_listener.cli.utils import coro, error, info, load_context_config
from amqp_listener.exceptions import (
    ConfigurationError,
    MessagingConnectionError,
    SignalsUnavailableError,
)
from amqp_listener.worker import ListenerWorker


@click.command(name="run")
@click.option("--queue", "-q", required=True, help="Configured queue to listen to.")
@click.option(
    "--exchange",
    "-e",
    default=None,
    help="Default exchange for messages sent by the interpreter.",
)
@click.option("--debug", is_flag=True, help="Print decoded bodies after handling.")
@click.pass_context
@coro
async def run(
    ctx: click.Context, queue: str, exchange: str | None, debug: bool
) -> None:
    """Listen to QUEUE and dispatch deliveries to its interpreter.

    \b
    Signals:
      SIGINT           stop after the current delivery (exit 0)
      SIGTERM/SIGQUIT  close the connection now (exit 128 + signal)
      SIGHUP           re-subscribe on a fresh channel
      SIGUSR1/SIGUSR2  log a health probe after 1 s / 10 s
    """
    config = load_context_config(ctx)
    try:
        worker = ListenerWorker(config, queue, exchange=exchange, debug=debug)
    except ConfigurationError as e:
        error(str(e))
        ctx.exit(1)

    info(f"Listening on {queue}")
    try:
        status = await worker.run()
    except SignalsUnavailableError as e:
        error(str(e))
        ctx.exit(1)
    except MessagingConnectionError as e:
        error(f"Broker connection failed: {e}")
        ctx.exit(1)
    ctx.exit(status)
