"""RabbitMQBrokerClient — BrokerClient adapter on aio-pika."""

from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

import aio_pika
from aio_pika.exceptions import AMQPError, ChannelInvalidStateError

from ..envelope import MessageEnvelope, new_message_id
from ..exceptions import MessagingConnectionError
from ..inbox import DeliveryInbox
from .connection import RabbitMQConnection

if TYPE_CHECKING:
    from collections.abc import Iterator

    from aio_pika.abc import AbstractChannel, AbstractIncomingMessage, AbstractQueue

    from ..config import BrokerSettings
    from ..ports import DeliveryCallback

logger = logging.getLogger("amqp_listener.rabbitmq")


@contextmanager
def _transport_errors() -> Iterator[None]:
    try:
        yield
    except (ConnectionError, OSError, AMQPError, ChannelInvalidStateError) as e:
        raise MessagingConnectionError(str(e) or type(e).__name__) from e


class RabbitMQBrokerClient:
    """RabbitMQ adapter implementing :class:`~amqp_listener.ports.BrokerClient`.

    aio-pika invokes consumer callbacks as soon as frames arrive; this adapter
    only buffers them in a :class:`DeliveryInbox` and keeps the incoming
    message objects by delivery tag, so acknowledgement happens when the
    consume loop decides, through :meth:`ack` / :meth:`nack`.
    """

    def __init__(self, connection: RabbitMQConnection) -> None:
        self._connection = connection
        self._inbox = DeliveryInbox()
        self._current: AbstractChannel | None = None
        self._queues: dict[str, AbstractQueue] = {}
        self._consumers: dict[str, AbstractQueue] = {}
        self._unsettled: dict[int, AbstractIncomingMessage] = {}
        connection.on_lost(self._on_transport_lost)

    @classmethod
    def from_settings(cls, settings: BrokerSettings) -> RabbitMQBrokerClient:
        return cls(
            RabbitMQConnection(
                settings.url,
                heartbeat=settings.heartbeat,
                client_properties={"connection_name": settings.connection_name},
            )
        )

    @property
    def connection(self) -> RabbitMQConnection:
        return self._connection

    @property
    def is_consuming(self) -> bool:
        return self._inbox.is_consuming

    def consumer_tags(self) -> list[str]:
        return self._inbox.consumer_tags()

    async def _channel(self) -> AbstractChannel:
        channel = await self._connection.channel()
        if channel is not self._current:
            # Queue objects belong to the channel that declared them.
            self._queues.clear()
            self._current = channel
        return channel

    async def _queue(self, name: str) -> AbstractQueue:
        queue = self._queues.get(name)
        if queue is None:
            channel = await self._channel()
            with _transport_errors():
                queue = await channel.get_queue(name, ensure=False)
            self._queues[name] = queue
        return queue

    async def declare_exchange(
        self,
        name: str,
        type: str,
        *,
        passive: bool = False,
        durable: bool = True,
        auto_delete: bool = False,
    ) -> None:
        channel = await self._channel()
        with _transport_errors():
            await channel.declare_exchange(
                name,
                type=aio_pika.ExchangeType(type),
                passive=passive,
                durable=durable,
                auto_delete=auto_delete,
            )

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
        channel = await self._channel()
        with _transport_errors():
            queue = await channel.declare_queue(
                name or None,
                passive=passive,
                durable=durable,
                exclusive=exclusive,
                auto_delete=auto_delete,
                arguments=arguments,
            )
        self._queues[queue.name] = queue
        return queue.name

    async def bind_queue(self, queue: str, exchange: str, routing_key: str) -> None:
        target = await self._queue(queue)
        with _transport_errors():
            await target.bind(exchange, routing_key=routing_key)

    async def publish(
        self, exchange: str, routing_key: str, envelope: MessageEnvelope
    ) -> None:
        channel = await self._channel()
        message = aio_pika.Message(
            body=envelope.body,
            message_id=envelope.message_id,
            reply_to=envelope.reply_to,
            headers=envelope.headers or None,
            content_type="application/json",
        )
        with _transport_errors():
            if exchange:
                target = await channel.get_exchange(exchange, ensure=False)
            else:
                target = channel.default_exchange
            await target.publish(message, routing_key=routing_key)

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
        channel = await self._channel()
        if prefetch_count is not None:
            with _transport_errors():
                await channel.set_qos(prefetch_count=prefetch_count)
        target = await self._queue(queue)
        tag = consumer_tag or f"ctag-{uuid.uuid4().hex}"

        async def on_message(message: AbstractIncomingMessage) -> None:
            envelope = self._to_envelope(message, tag)
            if no_ack:
                self._inbox.put(envelope)
                return
            delivery_tag = message.delivery_tag or 0
            self._unsettled[delivery_tag] = message
            if not self._inbox.put(envelope):
                self._unsettled.pop(delivery_tag, None)
                await message.nack(requeue=True)

        # Registered before basic.consume so no early delivery is dropped.
        self._inbox.register(tag, callback)
        try:
            with _transport_errors():
                await target.consume(
                    on_message,
                    no_ack=no_ack,
                    exclusive=exclusive,
                    arguments=arguments,
                    consumer_tag=tag,
                )
        except MessagingConnectionError:
            self._inbox.unregister(tag)
            raise
        self._consumers[tag] = target
        logger.debug("Consuming %s as %s", queue, tag)
        return tag

    @staticmethod
    def _to_envelope(message: AbstractIncomingMessage, tag: str) -> MessageEnvelope:
        return MessageEnvelope(
            body=message.body,
            routing_key=message.routing_key or "",
            exchange=message.exchange or "",
            delivery_tag=message.delivery_tag,
            consumer_tag=tag,
            reply_to=message.reply_to,
            message_id=message.message_id or new_message_id(),
            headers=dict(message.headers or {}),
        )

    def _take(self, delivery_tag: int) -> AbstractIncomingMessage:
        message = self._unsettled.pop(delivery_tag, None)
        if message is None:
            raise MessagingConnectionError(
                f"Unknown delivery tag {delivery_tag} (channel was closed?)"
            )
        return message

    async def ack(self, delivery_tag: int) -> None:
        message = self._take(delivery_tag)
        with _transport_errors():
            await message.ack()

    async def nack(self, delivery_tag: int, *, requeue: bool = False) -> None:
        message = self._take(delivery_tag)
        with _transport_errors():
            await message.nack(requeue=requeue)

    async def cancel(self, consumer_tag: str) -> None:
        drained = self._inbox.unregister(consumer_tag)
        queue = self._consumers.pop(consumer_tag, None)
        with _transport_errors():
            if queue is not None:
                await queue.cancel(consumer_tag)
            for envelope in drained:
                message = self._unsettled.pop(envelope.delivery_tag or 0, None)
                if message is not None:
                    await message.nack(requeue=True)

    async def wait(
        self, timeout: float | None = None, *, consumer_tag: str | None = None
    ) -> bool:
        current = self._current
        if current is not None and current.is_closed and self._inbox.is_consuming:
            self._on_transport_lost(None)
        return await self._inbox.wait(timeout, consumer_tag=consumer_tag)

    def _on_transport_lost(self, exception: BaseException | None) -> None:
        error = MessagingConnectionError(
            f"Broker connection lost: {exception or 'channel closed'}"
        )
        error.__cause__ = exception
        # The broker requeues whatever was unacked on the lost channel.
        self._inbox.fail(error)
        self._consumers.clear()
        self._unsettled.clear()
        self._queues.clear()
        self._current = None

    def _forget_channel_state(self) -> None:
        # The broker requeues whatever was unacked on the closed channel.
        self._inbox.clear()
        self._consumers.clear()
        self._unsettled.clear()
        self._queues.clear()
        self._current = None

    async def close_channel(self) -> None:
        self._forget_channel_state()
        await self._connection.close_channel()

    async def close(self) -> None:
        self._forget_channel_state()
        await self._connection.close()

    async def health_check(self) -> bool:
        return await self._connection.health_check()
