"""Topology — declares configured exchanges, queues and bindings."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .config import ExchangeConfig, QueueConfig

if TYPE_CHECKING:
    from .config import ListenerConfig
    from .ports import BrokerClient

logger = logging.getLogger("amqp_listener.topology")


class Topology:
    """Applies the declarations from :class:`ListenerConfig` on a broker client.

    Exchanges must be configured. Queues that are not configured are declared
    with default options and no bindings (reply queues used by ``ask`` are
    typically of this kind).
    """

    def __init__(self, client: BrokerClient, config: ListenerConfig) -> None:
        self._client = client
        self._config = config

    def queue_config(self, name: str) -> QueueConfig:
        return self._config.queues.get(name) or QueueConfig()

    async def declare_exchange(self, name: str, type: str | None = None) -> None:
        """Declare a configured exchange, optionally forcing its *type*."""
        config: ExchangeConfig = self._config.exchange(name)
        options = config.options
        await self._client.declare_exchange(
            name,
            type or config.type,
            passive=options.passive,
            durable=options.durable,
            auto_delete=options.auto_delete,
        )

    async def declare_queue(self, name: str) -> str:
        config = self.queue_config(name)
        options = config.options
        return await self._client.declare_queue(
            name,
            passive=options.passive,
            durable=options.durable,
            exclusive=options.exclusive,
            auto_delete=options.auto_delete,
            arguments=config.arguments,
        )

    async def bind_queue(self, name: str) -> None:
        """Declare each exchange the queue is bound to, then bind it."""
        for routing_key, exchange in self.queue_config(name).binds.items():
            await self.declare_exchange(exchange)
            await self._client.bind_queue(name, exchange, routing_key)
            logger.debug("Bound %s to %s with %s", name, exchange, routing_key)

    async def setup_queue(self, name: str) -> str:
        """Declare *name* and all of its configured bindings."""
        declared = await self.declare_queue(name)
        await self.bind_queue(declared)
        return declared
