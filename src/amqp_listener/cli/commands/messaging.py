"""Messaging commands: publish and request/reply from the shell."""

import click

from amqp_listener.cli.utils import (
    broker_client,
    coro,
    error,
    load_context_config,
    success,
)
from amqp_listener.exceptions import ListenerError
from amqp_listener.publisher import Publisher
from amqp_listener.request_reply import DEFAULT_TIMEOUT, RequestReplyCoordinator
from amqp_listener.topology import Topology

EXCHANGE_TYPES = ["topic", "direct", "headers", "fanout"]


@click.command(name="send")
@click.argument("exchange")
@click.argument("routing_key")
@click.argument("message")
@click.option(
    "--delay",
    type=click.IntRange(min=0),
    default=None,
    help="Delay in milliseconds (x-delay header of a delayed-message exchange).",
)
@click.option(
    "--type",
    "exchange_type",
    type=click.Choice(EXCHANGE_TYPES),
    default="topic",
    show_default=True,
    help="Only topic exchanges are declared before publishing.",
)
@click.pass_context
@coro
async def send(
    ctx: click.Context,
    exchange: str,
    routing_key: str,
    message: str,
    delay: int | None,
    exchange_type: str,
) -> None:
    """Publish MESSAGE to EXCHANGE with ROUTING_KEY (e.g. the quit message)."""
    config = load_context_config(ctx)
    client = broker_client(ctx, config)
    publisher = Publisher(client, Topology(client, config))
    try:
        if delay is None:
            envelope = await publisher.send(
                exchange, routing_key, message, exchange_type
            )
        else:
            envelope = await publisher.send_delay(routing_key, message, exchange, delay)
    except ListenerError as e:
        error(str(e))
        ctx.exit(1)
    finally:
        await client.close()
    success(f"Sent {envelope.message_id}")


@click.command(name="ask")
@click.argument("queue")
@click.argument("exchange")
@click.argument("routing_key")
@click.argument("message")
@click.option(
    "--timeout",
    type=click.FloatRange(min=0, min_open=True),
    default=DEFAULT_TIMEOUT,
    show_default=True,
    help="Seconds to wait for the reply.",
)
@click.pass_context
@coro
async def ask(
    ctx: click.Context,
    queue: str,
    exchange: str,
    routing_key: str,
    message: str,
    timeout: float,
) -> None:
    """Send MESSAGE and print the reply received on QUEUE."""
    config = load_context_config(ctx)
    client = broker_client(ctx, config)
    coordinator = RequestReplyCoordinator(client, Topology(client, config))
    try:
        reply = await coordinator.ask(queue, exchange, routing_key, message, timeout)
    except ListenerError as e:
        error(str(e))
        ctx.exit(1)
    finally:
        await client.close()
    click.echo(reply.decode("utf-8", errors="replace"))
