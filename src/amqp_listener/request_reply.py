"""RequestReplyCoordinator — synchronous ``ask`` over the broker."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .envelope import MessageEnvelope
from .exceptions import (
    DuplicateRequestError,
    MessagingConnectionError,
    ReplyTimeoutError,
)
from .logging_config import log_traffic
from .serialization import encode_message

if TYPE_CHECKING:
    from .ports import BrokerClient
    from .topology import Topology

logger = logging.getLogger("amqp_listener.request_reply")

DEFAULT_TIMEOUT = 10.0


@dataclass
class PendingRequest:
    """One outstanding ``ask``; the reply queue name is its correlation id."""

    correlation_id: str
    deadline: float
    result: asyncio.Future[bytes] = field(repr=False)

    def remaining(self, now: float) -> float:
        return self.deadline - now


class RequestReplyCoordinator:
    """Publishes a request and waits on its reply queue for the answer.

    The reply queue is declared from configuration (or with default options)
    and bound to the request exchange with its own name as routing key, so
    responders answer with ``routing_key = reply_to``. The queue and binding
    stay in place afterwards; only the reply consumer is cancelled.
    """

    def __init__(self, client: BrokerClient, topology: Topology) -> None:
        self._client = client
        self._topology = topology
        self._pending: dict[str, PendingRequest] = {}

    def pending(self, queue: str) -> PendingRequest | None:
        return self._pending.get(queue)

    async def ask(
        self,
        queue: str,
        exchange: str,
        routing_key: str,
        message: Any,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> bytes:
        """Send *message* and return the raw body of the first reply.

        Raises:
            DuplicateRequestError: an ``ask`` on *queue* is already pending.
            ReplyTimeoutError: no reply arrived within *timeout* seconds.
            EmptyMessageError: *message* has no content.
        """
        if queue in self._pending:
            raise DuplicateRequestError(
                f"A request is already waiting for a reply on {queue!r}"
            )
        body = encode_message(message)
        loop = asyncio.get_running_loop()
        request = PendingRequest(
            correlation_id=queue,
            deadline=loop.time() + timeout,
            result=loop.create_future(),
        )
        self._pending[queue] = request
        consumer_tag: str | None = None
        try:
            reply_queue = await self._topology.declare_queue(queue)
            request.correlation_id = reply_queue
            await self._client.bind_queue(reply_queue, exchange, reply_queue)

            async def on_reply(envelope: MessageEnvelope) -> None:
                if request.result.done():
                    await self._client.nack(envelope.delivery_tag or 0, requeue=True)
                    return
                request.result.set_result(envelope.body)
                await self._client.ack(envelope.delivery_tag or 0)

            consumer_tag = await self._client.consume(reply_queue, "", on_reply)

            envelope = MessageEnvelope(body=body, reply_to=reply_queue)
            await self._client.publish(exchange, routing_key, envelope)
            log_traffic(exchange, routing_key, envelope, "ask")

            while not request.result.done():
                remaining = request.remaining(loop.time())
                if remaining <= 0:
                    raise ReplyTimeoutError(reply_queue, timeout)
                # Only the reply consumer is served; deliveries of a worker's own
                # queue stay buffered until its handler has returned.
                dispatched = await self._client.wait(
                    remaining, consumer_tag=consumer_tag
                )
                if not dispatched and consumer_tag not in self._client.consumer_tags():
                    raise MessagingConnectionError(
                        f"Reply consumer on {reply_queue!r} was cancelled"
                    )
            return request.result.result()
        finally:
            self._pending.pop(queue, None)
            if consumer_tag is not None:
                await self._cancel_quietly(consumer_tag)

    async def _cancel_quietly(self, consumer_tag: str) -> None:
        try:
            await self._client.cancel(consumer_tag)
        except MessagingConnectionError as e:
            logger.warning("Could not cancel reply consumer %s: %s", consumer_tag, e)
