"""Publisher — send, delayed send and reply on top of a BrokerClient."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from .envelope import MessageEnvelope
from .exceptions import MessagingError
from .logging_config import log_traffic
from .serialization import encode_message

if TYPE_CHECKING:
    from .envelope import DeliveryInfo
    from .ports import BrokerClient
    from .topology import Topology

logger = logging.getLogger("amqp_listener.publisher")

DELAY_HEADER = "x-delay"


class Publisher:
    """Publishes messages through a :class:`BrokerClient`.

    Topic exchanges are declared from configuration before each publish;
    answers go out with ``type="direct"`` and skip the declaration.
    """

    def __init__(self, client: BrokerClient, topology: Topology) -> None:
        self._client = client
        self._topology = topology

    async def send(
        self,
        exchange: str,
        routing_key: str,
        message: Any,
        type: str = "topic",
        *,
        reply_to: str | None = None,
        headers: dict[str, Any] | None = None,
    ) -> MessageEnvelope:
        """Publish *message* to *exchange*; returns the envelope that was sent.

        Raises:
            EmptyMessageError: *message* has no content.
            ConfigurationError: a topic *exchange* is not configured.
        """
        envelope = MessageEnvelope(
            body=encode_message(message), reply_to=reply_to, headers=headers or {}
        )
        if type == "topic" and exchange:
            await self._topology.declare_exchange(exchange, type)
        await self._client.publish(exchange, routing_key, envelope)
        logger.debug(
            "Published %s to %r with %r", envelope.message_id, exchange, routing_key
        )
        log_traffic(exchange, routing_key, envelope, "send")
        return envelope

    async def send_delay(
        self, routing_key: str, message: Any, exchange: str, delay: int
    ) -> MessageEnvelope:
        """Publish with an ``x-delay`` header of *delay* milliseconds.

        The exchange is expected to be a delayed-message exchange; it is not
        declared here.
        """
        envelope = MessageEnvelope(
            body=encode_message(message), headers={DELAY_HEADER: int(delay)}
        )
        await self._client.publish(exchange, routing_key, envelope)
        log_traffic(exchange, routing_key, envelope, "send_delay", {"delay": delay})
        return envelope

    async def reply(self, info: DeliveryInfo, message: Any) -> MessageEnvelope:
        """Answer the request described by *info* on its ``reply_to`` queue."""
        if not info.reply_to:
            raise MessagingError(
                f"Delivery on {info.queue!r} ({info.routing_key!r}) has no reply_to"
            )
        return await self.send(info.exchange, info.reply_to, message, type="direct")
