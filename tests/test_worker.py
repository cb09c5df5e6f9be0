"""Tests for ListenerWorker."""

from __future__ import annotations

import asyncio
import signal
from unittest.mock import patch

import pytest

from amqp_listener.config import ListenerConfig, parse_config
from amqp_listener.exceptions import (
    ConfigurationError,
    HandlerResolutionError,
    MessagingConnectionError,
    SignalsUnavailableError,
)
from amqp_listener.interpreter import Interpreter
from amqp_listener.lifecycle import ConsumerState
from amqp_listener.memory import InMemoryBrokerClient
from amqp_listener.worker import ListenerWorker
from helpers import DroppingBrokerClient, eventually
from sample_interpreters import OrdersInterpreter


@pytest.mark.asyncio
async def test_worker_processes_until_quit(
    client: InMemoryBrokerClient, config: ListenerConfig
) -> None:
    worker = ListenerWorker(config, "orders.worker", client=client)
    client.deliver(
        "orders.worker", b'{"id": 1}', routing_key="order.created", exchange="orders"
    )
    client.deliver(
        "orders.worker", b'{"id": 2}', routing_key="order.deleted", exchange="orders"
    )
    client.deliver("orders.worker", b"quit")

    status = await worker.run(handle_signals=False)

    assert status == 0
    assert client.acked == [1]
    assert client.nacked == [(2, False)]
    assert client.cancelled == ["consumer"]
    assert client.closed
    assert isinstance(worker.interpreter, OrdersInterpreter)
    assert [body for body, _ in worker.interpreter.seen] == [{"id": 1}]
    assert worker.lifecycle.state is ConsumerState.STOPPED


@pytest.mark.asyncio
async def test_worker_declares_its_topology(
    client: InMemoryBrokerClient, config: ListenerConfig
) -> None:
    worker = ListenerWorker(config, "orders.worker", client=client)
    tag = await worker.listen()
    assert tag == "consumer"
    assert client.bindings == [("orders.worker", "orders", "order.*")]
    assert client.is_consuming


@pytest.mark.asyncio
async def test_hard_stop_exit_status(
    client: InMemoryBrokerClient, config: ListenerConfig
) -> None:
    worker = ListenerWorker(config, "plain", client=client)
    task = asyncio.create_task(worker.run(handle_signals=False))
    await eventually(lambda: worker.lifecycle.state is ConsumerState.RUNNING)

    worker.lifecycle.handle_signal(signal.SIGTERM)

    assert await task == 128 + signal.SIGTERM
    assert client.closed


def test_interpreter_is_attached_to_exchange(
    client: InMemoryBrokerClient, config: ListenerConfig
) -> None:
    default = ListenerWorker(config, "plain", client=client)
    assert isinstance(default.interpreter, Interpreter)
    assert default.interpreter.exchange == "orders"
    assert default.interpreter.publisher is default.publisher
    assert default.interpreter.requests is default.requests

    explicit = ListenerWorker(config, "plain", client=client, exchange="billing")
    assert isinstance(explicit.interpreter, Interpreter)
    assert explicit.interpreter.exchange == "billing"


def test_configuration_faults_precede_connection(config: ListenerConfig) -> None:
    with patch("amqp_listener.worker.RabbitMQBrokerClient") as rabbitmq:
        with pytest.raises(ConfigurationError, match="amqp queue: missing not found"):
            ListenerWorker(config, "missing")
        rabbitmq.from_settings.assert_not_called()


def test_unresolvable_interpreter_precedes_connection(
    config_data: dict[str, object],
) -> None:
    config = parse_config(
        {**config_data, "default_interpreter": "sample_interpreters:Unbuildable"}
    )
    with patch("amqp_listener.worker.RabbitMQBrokerClient") as rabbitmq:
        with pytest.raises(HandlerResolutionError):
            ListenerWorker(config, "plain")
        rabbitmq.from_settings.assert_not_called()


def test_default_client_is_built_from_broker_settings(config: ListenerConfig) -> None:
    with patch("amqp_listener.worker.RabbitMQBrokerClient") as rabbitmq:
        worker = ListenerWorker(config, "plain")
    rabbitmq.from_settings.assert_called_once_with(config.broker)
    assert worker.client is rabbitmq.from_settings.return_value


@pytest.mark.asyncio
async def test_signal_failure_stops_before_connecting(
    client: InMemoryBrokerClient, config: ListenerConfig
) -> None:
    worker = ListenerWorker(config, "plain", client=client)
    with patch(
        "amqp_listener.worker.install_signal_handlers",
        side_effect=SignalsUnavailableError("Unable to process signals."),
    ):
        with pytest.raises(SignalsUnavailableError):
            await worker.run()
    assert client.queues == {}


@pytest.mark.asyncio
async def test_lost_connection_ends_run(config: ListenerConfig) -> None:
    client = DroppingBrokerClient()
    worker = ListenerWorker(config, "orders.worker", client=client)

    with pytest.raises(MessagingConnectionError, match="Broker connection lost"):
        await asyncio.wait_for(worker.run(handle_signals=False), 1.0)

    assert worker.lifecycle.state is ConsumerState.STOPPED
    assert client.closed
    assert not client.is_consuming
