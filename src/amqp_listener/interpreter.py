"""Interpreters: objects whose methods handle the deliveries of one queue."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol, TypeVar, runtime_checkable

import click

from .request_reply import DEFAULT_TIMEOUT

if TYPE_CHECKING:
    from .envelope import DeliveryInfo, MessageEnvelope
    from .publisher import Publisher
    from .request_reply import RequestReplyCoordinator

F = TypeVar("F", bound=Callable[..., Any])

ROUTES_ATTR = "__amqp_routing_keys__"


def route(*routing_keys: str) -> Callable[[F], F]:
    """Mark a method as the handler of *routing_keys*.

    Example::

        class Orders(Interpreter):
            @route("order.created", "order.reopened")
            async def on_order(self, body, info):
                return True
    """

    def decorator(func: F) -> F:
        setattr(func, ROUTES_ATTR, (*getattr(func, ROUTES_ATTR, ()), *routing_keys))
        return func

    return decorator


@runtime_checkable
class IInterpreter(Protocol):
    """Capability every queue interpreter must provide.

    Handlers themselves are plain methods, named ``read_<routing_key>`` or
    decorated with :func:`route`; they receive ``(body, info)`` and return a
    truthy value to ack the delivery.
    """

    def report_error(self, message: str) -> None: ...

    def debug(self, message: Any) -> None: ...


class Interpreter:
    """Default interpreter: console reporting plus publishing helpers.

    Has no handlers of its own; every delivery on a queue interpreted by the
    base class is an unknown routing key.
    """

    def __init__(self, *, debug: bool = False) -> None:
        self.debug_enabled = debug
        self.publisher: Publisher | None = None
        self.requests: RequestReplyCoordinator | None = None
        self.exchange: str | None = None

    def attach(
        self,
        publisher: Publisher,
        exchange: str | None = None,
        requests: RequestReplyCoordinator | None = None,
    ) -> None:
        """Give handlers a publisher and the default exchange for :meth:`send`."""
        self.publisher = publisher
        self.exchange = exchange
        self.requests = requests

    @staticmethod
    def log(message: str, *, error: bool = False) -> None:
        stamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        click.secho(f"{stamp}\n{message}", fg="red" if error else "blue")

    def report_error(self, message: str) -> None:
        self.log(message, error=True)

    def debug(self, message: Any) -> None:
        if self.debug_enabled:
            click.secho(str(message), fg="green")

    def _require_publisher(self) -> Publisher:
        if self.publisher is None:
            raise RuntimeError(f"{type(self).__name__} is not attached to a publisher")
        return self.publisher

    async def send(
        self,
        routing_key: str,
        message: Any,
        exchange: str | None = None,
        type: str = "topic",
    ) -> MessageEnvelope:
        """Publish to *exchange*, or to the worker's default exchange."""
        target = exchange or self.exchange
        if not target:
            raise RuntimeError("No exchange given and no default exchange set")
        return await self._require_publisher().send(target, routing_key, message, type)

    async def send_delay(
        self, routing_key: str, message: Any, exchange: str, delay: int
    ) -> MessageEnvelope:
        return await self._require_publisher().send_delay(
            routing_key, message, exchange, delay
        )

    async def reply(self, info: DeliveryInfo, message: Any) -> MessageEnvelope:
        return await self._require_publisher().reply(info, message)

    async def ask(
        self,
        queue: str,
        exchange: str,
        routing_key: str,
        message: Any,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> bytes:
        if self.requests is None:
            raise RuntimeError(f"{type(self).__name__} cannot send requests")
        return await self.requests.ask(queue, exchange, routing_key, message, timeout)
