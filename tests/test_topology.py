"""Tests for Topology declarations."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from amqp_listener.config import ListenerConfig
from amqp_listener.exceptions import ConfigurationError
from amqp_listener.memory import InMemoryBrokerClient
from amqp_listener.topology import Topology


@pytest.mark.asyncio
async def test_setup_queue_declares_queue_exchanges_and_bindings(
    client: InMemoryBrokerClient, config: ListenerConfig
) -> None:
    name = await Topology(client, config).setup_queue("orders.worker")

    assert name == "orders.worker"
    assert "orders.worker" in client.queues
    assert client.exchanges == {"orders": "topic"}
    assert client.bindings == [("orders.worker", "orders", "order.*")]


@pytest.mark.asyncio
async def test_declare_queue_passes_configured_options(
    config: ListenerConfig,
) -> None:
    client = AsyncMock()
    client.declare_queue.return_value = "replies.cli"

    await Topology(client, config).declare_queue("replies.cli")

    client.declare_queue.assert_awaited_once_with(
        "replies.cli",
        passive=False,
        durable=False,
        exclusive=False,
        auto_delete=True,
        arguments=None,
    )


@pytest.mark.asyncio
async def test_unconfigured_queue_uses_defaults_without_bindings(
    client: InMemoryBrokerClient, config: ListenerConfig
) -> None:
    topology = Topology(client, config)
    name = await topology.setup_queue("scratch")
    assert name == "scratch"
    assert client.bindings == []
    assert topology.queue_config("scratch").options.durable is True


@pytest.mark.asyncio
async def test_declare_exchange_forces_type(config: ListenerConfig) -> None:
    client = AsyncMock()
    await Topology(client, config).declare_exchange("replies", "topic")
    client.declare_exchange.assert_awaited_once_with(
        "replies", "topic", passive=False, durable=False, auto_delete=False
    )


@pytest.mark.asyncio
async def test_unknown_exchange_is_a_configuration_fault(
    client: InMemoryBrokerClient, config: ListenerConfig
) -> None:
    with pytest.raises(ConfigurationError, match="amqp exchange: billing not found"):
        await Topology(client, config).declare_exchange("billing")
    assert client.exchanges == {}
