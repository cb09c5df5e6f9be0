"""Exceptions for amqp-listener."""

from __future__ import annotations


class ListenerError(Exception):
    """Root exception for the entire amqp-listener package."""


# ── Configuration faults (fatal at startup) ──────────────────────────


class ConfigurationError(ListenerError):
    """Raised when configuration is invalid or references unknown names.

    Fatal: the worker must not start consuming.
    """


class HandlerResolutionError(ConfigurationError):
    """Raised when an interpreter type cannot be imported or lacks the
    required capability."""

    def __init__(self, queue: str, reference: str, reason: str) -> None:
        self.queue = queue
        self.reference = reference
        self.reason = reason
        super().__init__(
            f"Cannot resolve interpreter {reference!r} for queue {queue!r}: {reason}"
        )


# ── Messaging faults ─────────────────────────────────────────────────


class MessagingError(ListenerError):
    """Base class for all messaging-related errors."""


class MessagingConnectionError(MessagingError):
    """Raised when connectivity to the broker fails or is lost.

    Not recovered by the dispatcher: it ends the consume loop.
    """


class MessagingSerializationError(MessagingError):
    """Raised when message serialization or deserialization fails."""


class EmptyMessageError(MessagingSerializationError):
    """Raised when an outbound message has no content."""


class MessageDecodeError(MessagingSerializationError):
    """Raised when a delivery body is not valid JSON."""

    def __init__(self, message: str, body: bytes) -> None:
        self.body = body
        super().__init__(message)


class RoutingError(MessagingError):
    """Raised when no handler is registered for a routing key."""

    def __init__(self, routing_key: str, handler_name: str) -> None:
        self.routing_key = routing_key
        self.handler_name = handler_name
        super().__init__(
            f"Unknown routing key {routing_key!r} (no handler {handler_name!r})"
        )


class HandlingError(MessagingError):
    """Wraps an exception raised by a handler while processing a delivery."""


class ReplyTimeoutError(MessagingError):
    """Raised when ``ask`` does not receive a reply before its deadline."""

    def __init__(self, queue: str, timeout: float) -> None:
        self.queue = queue
        self.timeout = timeout
        super().__init__(f"No reply on queue {queue!r} within {timeout}s")


class DuplicateRequestError(MessagingError):
    """Raised when a second ``ask`` is issued on a reply queue that already
    has a pending request."""


# ── Process-level faults ─────────────────────────────────────────────


class SignalsUnavailableError(ListenerError):
    """Raised when POSIX signal handlers cannot be installed."""


class SupervisionError(ListenerError):
    """Raised when the supervisor cannot spawn or signal a worker process."""

    def __init__(self, message: str, pid: int | None = None) -> None:
        self.pid = pid
        super().__init__(message)
