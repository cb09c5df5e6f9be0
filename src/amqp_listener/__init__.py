"""amqp-listener: AMQP queue workers with signal-driven lifecycle and supervision."""

from __future__ import annotations

from .config import ListenerConfig, load_config
from .dispatcher import MessageDispatcher, Settlement
from .envelope import DeliveryInfo, MessageEnvelope
from .exceptions import (
    ConfigurationError,
    DuplicateRequestError,
    EmptyMessageError,
    HandlerResolutionError,
    HandlingError,
    ListenerError,
    MessageDecodeError,
    MessagingConnectionError,
    MessagingError,
    MessagingSerializationError,
    ReplyTimeoutError,
    RoutingError,
    SignalsUnavailableError,
    SupervisionError,
)
from .interpreter import IInterpreter, Interpreter, route
from .lifecycle import ConsumerLifecycle, ConsumerState
from .ports import BrokerClient
from .publisher import Publisher
from .request_reply import PendingRequest, RequestReplyCoordinator
from .routing import HandlerRegistry, handler_name, resolve_interpreter
from .supervisor import KeepResult, ProcessSupervisor, SupervisedProcess
from .worker import ListenerWorker

__version__ = "0.1.0"

__all__ = [
    "BrokerClient",
    "ConfigurationError",
    "ConsumerLifecycle",
    "ConsumerState",
    "DeliveryInfo",
    "DuplicateRequestError",
    "EmptyMessageError",
    "HandlerRegistry",
    "HandlerResolutionError",
    "HandlingError",
    "IInterpreter",
    "Interpreter",
    "KeepResult",
    "ListenerConfig",
    "ListenerError",
    "ListenerWorker",
    "MessageDecodeError",
    "MessageDispatcher",
    "MessageEnvelope",
    "MessagingConnectionError",
    "MessagingError",
    "MessagingSerializationError",
    "PendingRequest",
    "ProcessSupervisor",
    "Publisher",
    "ReplyTimeoutError",
    "RequestReplyCoordinator",
    "RoutingError",
    "Settlement",
    "SignalsUnavailableError",
    "SupervisedProcess",
    "SupervisionError",
    "handler_name",
    "load_config",
    "resolve_interpreter",
    "route",
]
