"""BrokerClient — port for the broker transport consumed by the listener."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from .envelope import MessageEnvelope

    DeliveryCallback = Callable[[MessageEnvelope], Awaitable[Any]]


@runtime_checkable
class BrokerClient(Protocol):
    """
    Connection and channel primitives of an AMQP broker.

    Infrastructure modules provide concrete adapters (``rabbitmq``,
    ``memory``). Deliveries are not processed when the broker sends them:
    they are buffered and handed to their consumer callback one at a time by
    :meth:`wait`, which is the single suspension point of a consume loop.
    """

    @property
    def is_consuming(self) -> bool:
        """``True`` while at least one consumer is registered on the channel."""
        ...

    def consumer_tags(self) -> list[str]:
        """Tags of the consumers registered on the current channel."""
        ...

    async def declare_exchange(
        self,
        name: str,
        type: str,
        *,
        passive: bool = False,
        durable: bool = True,
        auto_delete: bool = False,
    ) -> None: ...

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
        """Declare *name* and return the queue name the broker assigned."""
        ...

    async def bind_queue(self, queue: str, exchange: str, routing_key: str) -> None: ...

    async def publish(
        self, exchange: str, routing_key: str, envelope: MessageEnvelope
    ) -> None: ...

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
        """Start consuming *queue*; returns the consumer tag in effect."""
        ...

    async def ack(self, delivery_tag: int) -> None: ...

    async def nack(self, delivery_tag: int, *, requeue: bool = False) -> None: ...

    async def cancel(self, consumer_tag: str) -> None:
        """Stop the consumer; buffered deliveries for it go back to the broker."""
        ...

    async def wait(
        self, timeout: float | None = None, *, consumer_tag: str | None = None
    ) -> bool:
        """
        Block until one delivery has been handed to its callback.

        Returns ``True`` when a delivery was dispatched (the callback has
        returned), ``False`` when the wait timed out or was woken by a
        cancel/close with nothing to dispatch. With *consumer_tag*, only that
        consumer's deliveries are dispatched; the others stay buffered.

        Raises:
            MessagingConnectionError: the connection or channel was lost.
        """
        ...

    async def close_channel(self) -> None:
        """Close the current channel; the next operation opens a fresh one."""
        ...

    async def close(self) -> None:
        """Close the connection."""
        ...

    async def health_check(self) -> bool: ...
