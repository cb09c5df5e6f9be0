"""ListenerWorker — root object of one worker process."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .dispatcher import MessageDispatcher
from .interpreter import Interpreter
from .lifecycle import (
    ConsumerLifecycle,
    install_signal_handlers,
    remove_signal_handlers,
)
from .publisher import Publisher
from .rabbitmq import RabbitMQBrokerClient
from .request_reply import RequestReplyCoordinator
from .routing import HandlerRegistry, resolve_interpreter
from .topology import Topology

if TYPE_CHECKING:
    from .config import ListenerConfig
    from .ports import BrokerClient

logger = logging.getLogger("amqp_listener.worker")

DEFAULT_CONSUMER_TAG = "consumer"


class ListenerWorker:
    """Listens to one configured queue until stopped.

    Owns the broker client (and through it the connection and channel);
    nothing is shared at module level. Everything that can fail on
    configuration (unknown queue, unresolvable interpreter, duplicate
    handlers) fails in the constructor, before any connection is opened.
    """

    def __init__(
        self,
        config: ListenerConfig,
        queue: str,
        *,
        client: BrokerClient | None = None,
        exchange: str | None = None,
        debug: bool = False,
        consumer_tag: str = DEFAULT_CONSUMER_TAG,
    ) -> None:
        self.config = config
        self.queue = queue
        self.consumer_tag = consumer_tag
        self.queue_config = config.queue(queue)

        self.interpreter = resolve_interpreter(queue, config, debug=debug)
        self.registry = HandlerRegistry.from_interpreter(self.interpreter)

        self.client: BrokerClient = client or RabbitMQBrokerClient.from_settings(
            config.broker
        )
        self.topology = Topology(self.client, config)
        self.publisher = Publisher(self.client, self.topology)
        self.requests = RequestReplyCoordinator(self.client, self.topology)
        if isinstance(self.interpreter, Interpreter):
            self.interpreter.attach(
                self.publisher, exchange or config.default_exchange, self.requests
            )

        options = self.queue_config.consumer_options
        self.dispatcher = MessageDispatcher(
            self.client,
            self.registry,
            self.interpreter,
            queue,
            consumer_tag=consumer_tag,
            requeue_on_nack=options.requeue_on_nack,
            no_ack=options.no_ack,
        )
        self.lifecycle = ConsumerLifecycle(self.client, self.listen)

    async def listen(self) -> str:
        """Declare the queue and its bindings and start consuming it."""
        name = await self.topology.setup_queue(self.queue)
        options = self.queue_config.consumer_options
        tag = await self.client.consume(
            name,
            self.consumer_tag,
            self.dispatcher,
            no_ack=options.no_ack,
            exclusive=options.exclusive,
            arguments=options.arguments,
            prefetch_count=options.prefetch_count,
        )
        logger.info(
            "Listening on %s with %s (%d handlers)",
            name,
            type(self.interpreter).__name__,
            len(self.registry),
        )
        return tag

    async def run(self, *, handle_signals: bool = True) -> int:
        """Run the consume loop; returns the process exit status.

        Raises:
            SignalsUnavailableError: before connecting, if signal handlers
                cannot be installed.
            MessagingConnectionError: the broker is unreachable or the
                connection is lost.
        """
        signums = install_signal_handlers(self.lifecycle) if handle_signals else []
        try:
            return await self.lifecycle.run()
        finally:
            remove_signal_handlers(signums)
            await self.client.close()
