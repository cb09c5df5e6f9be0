"""Tests for RequestReplyCoordinator."""

from __future__ import annotations

import asyncio
import json

import pytest

from amqp_listener.config import ListenerConfig
from amqp_listener.envelope import MessageEnvelope
from amqp_listener.exceptions import (
    DuplicateRequestError,
    EmptyMessageError,
    MessagingConnectionError,
    ReplyTimeoutError,
)
from amqp_listener.memory import InMemoryBrokerClient
from amqp_listener.request_reply import RequestReplyCoordinator
from amqp_listener.topology import Topology
from amqp_listener.worker import ListenerWorker
from sample_interpreters import OrdersInterpreter


class Responder(InMemoryBrokerClient):
    """Answers every ``order.lookup`` request with *replies* bodies."""

    def __init__(self, *replies: bytes, cancel_consumers: bool = False) -> None:
        super().__init__()
        self.replies = replies
        self.cancel_consumers = cancel_consumers

    async def publish(
        self, exchange: str, routing_key: str, envelope: MessageEnvelope
    ) -> None:
        await super().publish(exchange, routing_key, envelope)
        if routing_key != "order.lookup" or not envelope.reply_to:
            return
        if self.cancel_consumers:
            for tag in list(self._consumers):
                await self.cancel(tag)
        for body in self.replies:
            await super().publish(
                exchange, envelope.reply_to, MessageEnvelope(body=body)
            )


def coordinator(
    client: InMemoryBrokerClient, config: ListenerConfig
) -> RequestReplyCoordinator:
    return RequestReplyCoordinator(client, Topology(client, config))


@pytest.mark.asyncio
async def test_ask_returns_first_reply(config: ListenerConfig) -> None:
    client = Responder(b'{"status": "open"}', b'{"status": "late"}')
    requests = coordinator(client, config)

    reply = await requests.ask("replies.cli", "replies", "order.lookup", {"id": 1})

    assert json.loads(reply) == {"status": "open"}
    request = client.published[0][2]
    assert request.reply_to == "replies.cli"
    assert client.acked == [1]
    # the later reply stays in the reply queue for the next ask
    assert [e.body for e in client.queues["replies.cli"]] == [b'{"status": "late"}']


@pytest.mark.asyncio
async def test_reply_queue_stays_declared_and_consumer_is_cancelled(
    config: ListenerConfig,
) -> None:
    client = Responder(b"ok")
    requests = coordinator(client, config)

    await requests.ask("replies.cli", "replies", "order.lookup", "ping")

    assert "replies.cli" in client.queues
    assert ("replies.cli", "replies", "replies.cli") in client.bindings
    assert len(client.cancelled) == 1
    assert not client.is_consuming
    assert requests.pending("replies.cli") is None


@pytest.mark.asyncio
async def test_ask_times_out(
    client: InMemoryBrokerClient, config: ListenerConfig
) -> None:
    requests = coordinator(client, config)
    loop = asyncio.get_running_loop()
    started = loop.time()

    with pytest.raises(ReplyTimeoutError) as exc_info:
        await requests.ask("replies.cli", "replies", "order.lookup", "ping", 0.05)

    elapsed = loop.time() - started
    assert 0.05 <= elapsed < 0.05 + 0.5
    assert exc_info.value.queue == "replies.cli"
    assert exc_info.value.timeout == 0.05
    assert requests.pending("replies.cli") is None
    assert not client.is_consuming


@pytest.mark.asyncio
async def test_second_ask_on_same_queue_is_rejected(
    client: InMemoryBrokerClient, config: ListenerConfig
) -> None:
    requests = coordinator(client, config)
    first = asyncio.create_task(
        requests.ask("replies.cli", "replies", "order.lookup", "ping", 0.1)
    )
    await asyncio.sleep(0)
    assert requests.pending("replies.cli") is not None

    with pytest.raises(DuplicateRequestError):
        await requests.ask("replies.cli", "replies", "order.lookup", "ping")

    with pytest.raises(ReplyTimeoutError):
        await first


@pytest.mark.asyncio
async def test_cancelled_reply_consumer_ends_ask(config: ListenerConfig) -> None:
    client = Responder(cancel_consumers=True)
    with pytest.raises(MessagingConnectionError, match="was cancelled"):
        await coordinator(client, config).ask(
            "replies.cli", "replies", "order.lookup", "ping"
        )


@pytest.mark.asyncio
async def test_empty_request_is_rejected_before_anything_is_declared(
    client: InMemoryBrokerClient, config: ListenerConfig
) -> None:
    requests = coordinator(client, config)
    with pytest.raises(EmptyMessageError):
        await requests.ask("replies.cli", "replies", "order.lookup", "")
    assert client.queues == {}
    assert requests.pending("replies.cli") is None


@pytest.mark.asyncio
async def test_ask_inside_handler_serves_only_the_reply_consumer(
    config: ListenerConfig,
) -> None:
    client = Responder(b'{"status": "open"}')
    worker = ListenerWorker(config, "orders.worker", client=client)
    interpreter = worker.interpreter
    assert isinstance(interpreter, OrdersInterpreter)
    await worker.listen()
    client.deliver(
        "orders.worker", b'{"id": 1}', routing_key="order.checked", exchange="orders"
    )
    client.deliver(
        "orders.worker", b'{"id": 2}', routing_key="order.created", exchange="orders"
    )

    assert await client.wait() is True
    # the second delivery was buffered, not dispatched inside the first handler
    assert [body for body, _ in interpreter.seen] == [{"status": "open"}]
    assert client.acked == [3, 1]

    assert await client.wait() is True
    assert [body for body, _ in interpreter.seen] == [{"status": "open"}, {"id": 2}]
    assert client.acked == [3, 1, 2]
    assert client.consumer_tags() == ["consumer"]


@pytest.mark.asyncio
async def test_reply_consumer_is_served_before_buffered_main_deliveries(
    client: InMemoryBrokerClient,
) -> None:
    served: list[str] = []

    async def record(envelope: MessageEnvelope) -> None:
        served.append(envelope.consumer_tag or "")

    await client.declare_queue("orders.worker")
    await client.declare_queue("replies.cli")
    await client.consume("orders.worker", "consumer", record)
    await client.consume("replies.cli", "reply", record)
    client.deliver("orders.worker", b"1")
    client.deliver("replies.cli", b"2")

    assert await client.wait(0.1, consumer_tag="reply") is True
    assert await client.wait(0.01, consumer_tag="reply") is False
    assert served == ["reply"]
    assert await client.wait() is True
    assert served == ["reply", "consumer"]
