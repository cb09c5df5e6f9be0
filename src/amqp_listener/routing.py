"""Routing-key to handler resolution."""

from __future__ import annotations

import importlib
import inspect
import logging
import re
from typing import TYPE_CHECKING, Any

from .exceptions import ConfigurationError, HandlerResolutionError, RoutingError
from .interpreter import ROUTES_ATTR, IInterpreter, Interpreter

if TYPE_CHECKING:
    from collections.abc import Callable

    from .config import ListenerConfig

    Handler = Callable[..., Any]

logger = logging.getLogger("amqp_listener.routing")

HANDLER_PREFIX = "read_"

_SEPARATORS = re.compile(r"[^0-9A-Za-z]+")
_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


def handler_name(routing_key: str) -> str:
    """Return the handler method name for *routing_key*.

    ``order.created``, ``Order-Created`` and ``orderCreated`` all map to
    ``read_order_created``.
    """
    words = [
        word.lower()
        for part in _SEPARATORS.split(routing_key)
        for word in _CAMEL_BOUNDARY.split(part)
        if word
    ]
    return HANDLER_PREFIX + "_".join(words)


class HandlerRegistry:
    """Explicit mapping of handler names to callables, built at startup.

    **Conflict detection:** registering a second, different callable under the
    same handler name raises :class:`ConfigurationError`.
    """

    def __init__(self, owner: str = "handlers") -> None:
        self.owner = owner
        self._handlers: dict[str, Handler] = {}

    def __contains__(self, routing_key: str) -> bool:
        return handler_name(routing_key) in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)

    def names(self) -> list[str]:
        return sorted(self._handlers)

    def register(self, routing_key: str, handler: Handler) -> None:
        self._register_name(handler_name(routing_key), handler)

    def _register_name(self, name: str, handler: Handler) -> None:
        existing = self._handlers.get(name)
        if existing is not None and existing != handler:
            raise ConfigurationError(
                f"Duplicate handler {name!r} in {self.owner}: "
                f"{_qualname(existing)} already registered, "
                f"cannot register {_qualname(handler)}"
            )
        self._handlers[name] = handler
        logger.debug("Registered handler %s -> %s", name, _qualname(handler))

    def resolve(self, routing_key: str) -> Handler:
        """Return the handler for *routing_key*.

        Raises:
            RoutingError: nothing is registered for it.
        """
        name = handler_name(routing_key)
        try:
            return self._handlers[name]
        except KeyError:
            raise RoutingError(routing_key, name) from None

    @classmethod
    def from_interpreter(cls, interpreter: Any) -> HandlerRegistry:
        """Collect ``read_*`` methods and :func:`route` methods of *interpreter*."""
        registry = cls(type(interpreter).__name__)
        for attr, member in inspect.getmembers(type(interpreter), callable):
            if attr.startswith("__"):
                continue
            bound = getattr(interpreter, attr)
            if attr.startswith(HANDLER_PREFIX):
                registry._register_name(attr, bound)
            for routing_key in getattr(member, ROUTES_ATTR, ()):
                registry.register(routing_key, bound)
        return registry


def _qualname(obj: Any) -> str:
    return getattr(obj, "__qualname__", None) or type(obj).__name__


def import_string(reference: str) -> Any:
    """Import ``"package.module:attribute"`` (or ``"package.module.attribute"``)."""
    if ":" in reference:
        module_name, _, attr_path = reference.partition(":")
    else:
        module_name, _, attr_path = reference.rpartition(".")
    if not module_name or not attr_path:
        raise ImportError(f"{reference!r} is not a 'module:attribute' reference")
    target: Any = importlib.import_module(module_name)
    for attr in attr_path.split("."):
        target = getattr(target, attr)
    return target


def resolve_interpreter(
    queue: str, config: ListenerConfig, *, debug: bool = False
) -> IInterpreter:
    """Build the interpreter for *queue*.

    The queue's own ``interpreter`` wins over ``default_interpreter``; with
    neither, the base :class:`Interpreter` is used.

    Raises:
        HandlerResolutionError: the reference cannot be imported or
            instantiated, or the result lacks the interpreter capability.
    """
    queue_config = config.queues.get(queue)
    reference = (
        queue_config and queue_config.interpreter
    ) or config.default_interpreter
    if not reference:
        return Interpreter(debug=debug)

    try:
        target = import_string(reference)
    except (ImportError, AttributeError) as e:
        raise HandlerResolutionError(queue, reference, str(e)) from e

    if inspect.isclass(target):
        try:
            if issubclass(target, Interpreter):
                instance = target(debug=debug)
            else:
                instance = target()
        except Exception as e:  # noqa: BLE001
            raise HandlerResolutionError(
                queue, reference, f"instantiation failed: {e}"
            ) from e
    else:
        instance = target

    if not isinstance(instance, IInterpreter):
        raise HandlerResolutionError(
            queue, reference, "object does not provide report_error() and debug()"
        )
    if hasattr(instance, "debug_enabled"):
        instance.debug_enabled = debug
    return instance
