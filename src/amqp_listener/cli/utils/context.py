"""Configuration loading shared by the CLI commands."""

from __future__ import annotations

import click

from amqp_listener.cli.utils.formatters import error
from amqp_listener.config import ListenerConfig, load_config
from amqp_listener.exceptions import ConfigurationError
from amqp_listener.logging_config import configure_logging
from amqp_listener.rabbitmq import RabbitMQBrokerClient


def load_context_config(ctx: click.Context) -> ListenerConfig:
    """Load the ``--config`` file once per invocation and set up logging.

    Exits with status 1 on an invalid configuration.
    """
    obj = ctx.ensure_object(dict)
    config = obj.get("config")
    if config is None:
        try:
            config = load_config(obj["config_path"])
        except ConfigurationError as e:
            error(str(e))
            ctx.exit(1)
        configure_logging(obj.get("log_level", "INFO"), config.log_file)
        obj["config"] = config
    return config


def broker_client(
    ctx: click.Context, config: ListenerConfig
) -> RabbitMQBrokerClient:
    """Build the RabbitMQ client for a one-shot command, or exit with status 1."""
    try:
        return RabbitMQBrokerClient.from_settings(config.broker)
    except ConfigurationError as e:
        error(str(e))
        ctx.exit(1)
