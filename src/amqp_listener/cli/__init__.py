"""Command line interface."""

from amqp_listener.cli.main import cli, main

__all__ = ["cli", "main"]
