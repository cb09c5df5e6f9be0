"""Main CLI entry point for amqp-listener."""

import click

from amqp_listener import __version__
from amqp_listener.cli.commands import messaging, supervisor, worker


@click.group()
@click.version_option(version=__version__, prog_name="amqp-listener")
@click.option(
    "--config",
    "config_path",
    envvar="AMQP_LISTENER_CONFIG",
    default="amqp.yaml",
    show_default=True,
    type=click.Path(dir_okay=False),
    help="YAML configuration file.",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="INFO",
    show_default=True,
)
@click.pass_context
def cli(ctx: click.Context, config_path: str, log_level: str) -> None:
    """AMQP listener - queue workers and their supervision.

    \b
    Quick Start:
      amqp-listener run --queue orders.worker     # Run one worker
      amqp-listener keep --interval 30           # Keep configured workers alive
      amqp-listener kill                         # Terminate all workers
      amqp-listener send orders order.created '{"id": 1}'
      amqp-listener ask replies orders order.get '{"id": 1}'
    """
    obj = ctx.ensure_object(dict)
    obj["config_path"] = config_path
    obj["log_level"] = log_level.upper()


cli.add_command(worker.run)
cli.add_command(supervisor.keep)
cli.add_command(supervisor.kill)
cli.add_command(messaging.send)
cli.add_command(messaging.ask)


def main() -> None:
    """Entry point for CLI."""
    cli(obj={}, prog_name="amqp-listener")


if __name__ == "__main__":
    main()
