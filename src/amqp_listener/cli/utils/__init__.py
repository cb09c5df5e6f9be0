"""CLI utilities for running async operations and formatting output."""

from amqp_listener.cli.utils.async_runner import coro
from amqp_listener.cli.utils.context import broker_client, load_context_config
from amqp_listener.cli.utils.formatters import error, header, info, success, warning

__all__ = [
    "coro",
    "broker_client",
    "load_context_config",
    "error",
    "info",
    "success",
    "warning",
    "header",
]
