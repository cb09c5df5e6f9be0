"""InMemoryBrokerClient — BrokerClient with exchange routing for tests."""

from __future__ import annotations

import itertools
from typing import TYPE_CHECKING, Any

from ..envelope import MessageEnvelope
from ..exceptions import MessagingConnectionError
from ..inbox import DeliveryInbox

if TYPE_CHECKING:
    from ..ports import DeliveryCallback


def topic_matches(binding_key: str, routing_key: str) -> bool:
    """AMQP topic matching: ``*`` is one word, ``#`` is zero or more words."""

    def match(pattern: list[str], words: list[str]) -> bool:
        if not pattern:
            return not words
        head, rest = pattern[0], pattern[1:]
        if head == "#":
            return any(match(rest, words[i:]) for i in range(len(words) + 1))
        if not words:
            return False
        return (head in ("*", words[0])) and match(rest, words[1:])

    return match(binding_key.split("."), routing_key.split("."))


class InMemoryBrokerClient:
    """In-process broker and client in one object.

    Publishing routes the envelope through declared exchanges and bindings;
    deliveries for queues consumed by this client are buffered and handed out
    by :meth:`wait`, as a real channel would. Everything the broker is asked
    to do is recorded for assertions (``acked``, ``nacked``, ``cancelled``,
    ``published``).

    Use :meth:`deliver` to inject a delivery directly into a queue.
    """

    def __init__(self) -> None:
        self.exchanges: dict[str, str] = {}
        self.queues: dict[str, list[MessageEnvelope]] = {}
        self.bindings: list[tuple[str, str, str]] = []
        self.published: list[tuple[str, str, MessageEnvelope]] = []
        self.acked: list[int] = []
        self.nacked: list[tuple[int, bool]] = []
        self.cancelled: list[str] = []
        self.channel_closes = 0
        self.closed = False
        self._inbox = DeliveryInbox()
        self._consumers: dict[str, str] = {}
        self._unsettled: dict[int, tuple[str, MessageEnvelope]] = {}
        self._tags = itertools.count(1)
        self._anonymous = itertools.count(1)

    @property
    def is_consuming(self) -> bool:
        return self._inbox.is_consuming

    def consumer_tags(self) -> list[str]:
        return self._inbox.consumer_tags()

    def _ensure_open(self) -> None:
        if self.closed:
            raise MessagingConnectionError("Connection is closed")

    async def declare_exchange(
        self,
        name: str,
        type: str,
        *,
        passive: bool = False,
        durable: bool = True,
        auto_delete: bool = False,
    ) -> None:
        self._ensure_open()
        if passive and name not in self.exchanges:
            raise MessagingConnectionError(f"NOT_FOUND - no exchange '{name}'")
        self.exchanges.setdefault(name, type)

    async def declare_queue(
        self,
        name: str,
        *,
        passive: bool = False,
        durable: bool = True,
        exclusive: bool = False,
        auto_delete: bool = False,
        arguments: dict[str, Any] | None = None,
    ) -> str:
        self._ensure_open()
        name = name or f"amq.gen-{next(self._anonymous)}"
        if passive and name not in self.queues:
            raise MessagingConnectionError(f"NOT_FOUND - no queue '{name}'")
        self.queues.setdefault(name, [])
        return name

    async def bind_queue(self, queue: str, exchange: str, routing_key: str) -> None:
        self._ensure_open()
        binding = (queue, exchange, routing_key)
        if binding not in self.bindings:
            self.bindings.append(binding)

    async def publish(
        self, exchange: str, routing_key: str, envelope: MessageEnvelope
    ) -> None:
        self._ensure_open()
        envelope = envelope.model_copy(
            update={"exchange": exchange, "routing_key": routing_key}
        )
        self.published.append((exchange, routing_key, envelope))
        for queue in self._route(exchange, routing_key):
            self.deliver_envelope(queue, envelope)

    def _route(self, exchange: str, routing_key: str) -> list[str]:
        if exchange == "":
            return [routing_key] if routing_key in self.queues else []
        kind = self.exchanges.get(exchange, "topic")
        targets: list[str] = []
        for queue, bound_exchange, binding_key in self.bindings:
            if bound_exchange != exchange or queue in targets:
                continue
            if (
                kind == "fanout"
                or (kind == "topic" and topic_matches(binding_key, routing_key))
                or (kind != "topic" and binding_key == routing_key)
            ):
                targets.append(queue)
        return targets

    def deliver(
        self,
        queue: str,
        body: bytes,
        *,
        routing_key: str = "",
        exchange: str = "",
        reply_to: str | None = None,
        headers: dict[str, Any] | None = None,
    ) -> None:
        """Inject a delivery into *queue* as if it had been routed there."""
        self.deliver_envelope(
            queue,
            MessageEnvelope(
                body=body,
                routing_key=routing_key,
                exchange=exchange,
                reply_to=reply_to,
                headers=headers or {},
            ),
        )

    def deliver_envelope(self, queue: str, envelope: MessageEnvelope) -> None:
        self.queues.setdefault(queue, []).append(envelope)
        self._pump(queue)

    def _pump(self, queue: str) -> None:
        tag = next((t for t, q in self._consumers.items() if q == queue), None)
        if tag is None:
            return
        backlog = self.queues[queue]
        while backlog:
            delivery_tag = next(self._tags)
            envelope = backlog.pop(0).model_copy(
                update={"delivery_tag": delivery_tag, "consumer_tag": tag}
            )
            self._unsettled[delivery_tag] = (queue, envelope)
            self._inbox.put(envelope)

    def _return(self, queue: str, envelope: MessageEnvelope) -> None:
        self.queues.setdefault(queue, []).insert(
            0, envelope.model_copy(update={"delivery_tag": None, "consumer_tag": None})
        )

    async def consume(
        self,
        queue: str,
        consumer_tag: str,
        callback: DeliveryCallback,
        *,
        no_ack: bool = False,
        exclusive: bool = False,
        arguments: dict[str, Any] | None = None,
        prefetch_count: int | None = None,
    ) -> str:
        self._ensure_open()
        tag = consumer_tag or f"ctag-{next(self._anonymous)}"
        self._consumers[tag] = queue
        self._inbox.register(tag, callback)
        self._pump(queue)
        return tag

    async def ack(self, delivery_tag: int) -> None:
        self._ensure_open()
        self._unsettled.pop(delivery_tag, None)
        self.acked.append(delivery_tag)

    async def nack(self, delivery_tag: int, *, requeue: bool = False) -> None:
        self._ensure_open()
        entry = self._unsettled.pop(delivery_tag, None)
        self.nacked.append((delivery_tag, requeue))
        if requeue and entry is not None:
            self._return(*entry)
            self._pump(entry[0])

    async def cancel(self, consumer_tag: str) -> None:
        self._ensure_open()
        self.cancelled.append(consumer_tag)
        self._consumers.pop(consumer_tag, None)
        for envelope in reversed(self._inbox.unregister(consumer_tag)):
            entry = self._unsettled.pop(envelope.delivery_tag or 0, None)
            if entry is not None:
                self._return(*entry)

    async def wait(
        self, timeout: float | None = None, *, consumer_tag: str | None = None
    ) -> bool:
        return await self._inbox.wait(timeout, consumer_tag=consumer_tag)

    async def close_channel(self) -> None:
        self.channel_closes += 1
        self._release_all()

    async def close(self) -> None:
        self.closed = True
        self._release_all()

    def drop_connection(self, reason: str = "Connection reset by peer") -> None:
        """Simulate the broker dropping the connection under a consume loop."""
        self.closed = True
        self._consumers.clear()
        self._inbox.fail(
            MessagingConnectionError(f"Broker connection lost: {reason}")
        )
        for delivery_tag in sorted(self._unsettled, reverse=True):
            self._return(*self._unsettled.pop(delivery_tag))

    def _release_all(self) -> None:
        # Unacked deliveries go back to their queues, as on a real channel close.
        self._consumers.clear()
        self._inbox.clear()
        for delivery_tag in sorted(self._unsettled, reverse=True):
            self._return(*self._unsettled.pop(delivery_tag))

    async def health_check(self) -> bool:
        return not self.closed
