"""MessageDispatcher — the consumer callback of a listening worker."""

from __future__ import annotations

import enum
import inspect
import logging
import traceback
from typing import TYPE_CHECKING

from .envelope import DeliveryInfo
from .exceptions import HandlingError, MessageDecodeError, RoutingError
from .logging_config import log_traffic
from .serialization import decode_body

if TYPE_CHECKING:
    from .envelope import MessageEnvelope
    from .interpreter import IInterpreter
    from .ports import BrokerClient
    from .routing import HandlerRegistry

logger = logging.getLogger("amqp_listener.dispatch")

QUIT_MESSAGE = b"quit"


class Settlement(str, enum.Enum):
    """What the dispatcher told the broker about one delivery."""

    ACK = "ack"
    NACK = "nack"
    CANCEL = "cancel"


class MessageDispatcher:
    """Decodes, routes and settles deliveries, one at a time.

    Every delivery ends in exactly one of ack, nack or consumer cancel.
    Decode, routing and handler faults are reported and nacked; they never
    leave :meth:`dispatch`. Broker faults while acking or nacking do, and end
    the consume loop.

    A handler that raises :class:`HandlingError` rejects the delivery with a
    report but without a stack trace.
    """

    def __init__(
        self,
        client: BrokerClient,
        registry: HandlerRegistry,
        interpreter: IInterpreter,
        queue: str,
        *,
        consumer_tag: str = "consumer",
        requeue_on_nack: bool = False,
        no_ack: bool = False,
    ) -> None:
        self._client = client
        self._registry = registry
        self._interpreter = interpreter
        self.queue = queue
        self.consumer_tag = consumer_tag
        self._requeue_on_nack = requeue_on_nack
        self._no_ack = no_ack

    async def __call__(self, envelope: MessageEnvelope) -> Settlement:
        return await self.dispatch(envelope)

    async def dispatch(self, envelope: MessageEnvelope) -> Settlement:
        if envelope.body == QUIT_MESSAGE:
            tag = envelope.consumer_tag or self.consumer_tag
            logger.info("Quit message received, cancelling consumer %s", tag)
            await self._client.cancel(tag)
            return Settlement.CANCEL

        info = DeliveryInfo(
            exchange=envelope.exchange,
            queue=self.queue,
            routing_key=envelope.routing_key,
            reply_to=envelope.reply_to,
        )

        try:
            body = decode_body(envelope.body)
        except MessageDecodeError as e:
            self._fail(str(e), "decode", envelope)
            return await self._settle(envelope, ok=False)

        try:
            handler = self._registry.resolve(envelope.routing_key)
        except RoutingError:
            self._fail(
                f"Unknown routing key '{envelope.routing_key}'.\n"
                f"Interpreter: {type(self._interpreter).__name__}\n"
                f"Exchange: {envelope.exchange}\n"
                f"Queue: {self.queue}\n"
                f"Routing key: {envelope.routing_key}\n"
                f"Body: {_text(envelope.body)}",
                "resolve",
                envelope,
            )
            return await self._settle(envelope, ok=False)

        ok = False
        try:
            result = handler(body, info)
            if inspect.isawaitable(result):
                result = await result
            ok = bool(result)
        except HandlingError as e:
            self._fail(
                self._context(f"consumer rejected: {e}", info, envelope),
                "handle",
                envelope,
            )
        except Exception as e:  # noqa: BLE001
            self._fail(
                self._context(f"consumer fail: {e}", info, envelope),
                "handle",
                envelope,
                exc=e,
            )

        settlement = await self._settle(envelope, ok=ok)
        self._interpreter.debug(body)
        return settlement

    @staticmethod
    def _context(headline: str, info: DeliveryInfo, envelope: MessageEnvelope) -> str:
        return f"{headline}\ninfo: {info.model_dump()}\nbody:\n{_text(envelope.body)}"

    def _fail(
        self,
        message: str,
        method: str,
        envelope: MessageEnvelope,
        exc: BaseException | None = None,
    ) -> None:
        logger.warning(
            "[%s] %s (exchange=%r queue=%r routing_key=%r)",
            method,
            message,
            envelope.exchange,
            self.queue,
            envelope.routing_key,
            exc_info=exc,
        )
        if exc is not None:
            message += "\n" + "".join(
                traceback.format_exception(type(exc), exc, exc.__traceback__)
            )
        self._interpreter.report_error(message)

    async def _settle(self, envelope: MessageEnvelope, *, ok: bool) -> Settlement:
        settlement = Settlement.ACK if ok else Settlement.NACK
        if not self._no_ack and envelope.delivery_tag is not None:
            if ok:
                await self._client.ack(envelope.delivery_tag)
            else:
                await self._client.nack(
                    envelope.delivery_tag, requeue=self._requeue_on_nack
                )
        log_traffic(
            envelope.exchange,
            envelope.routing_key,
            envelope,
            "dispatch",
            {"queue": self.queue, "result": "success" if ok else "error"},
        )
        return settlement


def _text(body: bytes) -> str:
    return body.decode("utf-8", errors="replace")
