"""Supervisor commands: keep workers alive, terminate them all."""

import shlex
import time
from pathlib import Path

import click

from amqp_listener.cli.utils import (
    error,
    header,
    info,
    load_context_config,
    success,
    warning,
)
from amqp_listener.config import ListenerConfig
from amqp_listener.supervisor import ProcessSupervisor


def build_supervisor(ctx: click.Context, config: ListenerConfig) -> ProcessSupervisor:
    config_path = str(Path(ctx.obj["config_path"]).resolve())
    return ProcessSupervisor(
        config.supervisor.command, global_args=["--config", config_path]
    )


@click.command(name="keep")
@click.option(
    "--interval",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Repeat the pass every INTERVAL seconds instead of once.",
)
@click.pass_context
def keep(ctx: click.Context, interval: float | None) -> None:
    """Start workers until every configured target count is running."""
    config = load_context_config(ctx)
    targets = [(t.queue, t.count) for t in config.supervisor.targets]
    if not targets:
        warning("No supervisor targets configured")
        return

    supervisor = build_supervisor(ctx, config)
    try:
        while True:
            for result in supervisor.keep_all(targets):
                header(shlex.join(result.command))
                click.echo(
                    f"{result.queue}: running {result.running}, "
                    f"desired {result.desired}, started {len(result.spawned)}"
                )
                for failure in result.errors:
                    error(str(failure))
            if interval is None:
                break
            time.sleep(interval)
    except KeyboardInterrupt:
        info("Supervision stopped")


@click.command(name="kill")
@click.pass_context
def kill(ctx: click.Context) -> None:
    """Send SIGTERM to every running worker."""
    config = load_context_config(ctx)
    supervisor = build_supervisor(ctx, config)
    header(shlex.join([*supervisor.command, "run"]))
    pids = supervisor.kill_all()
    for pid in pids:
        click.echo(f"Terminated {pid}")
    success(f"{len(pids)} worker(s) terminated")
