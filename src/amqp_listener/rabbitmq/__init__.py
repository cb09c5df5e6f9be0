"""RabbitMQ transport adapter (aio-pika)."""

from __future__ import annotations

from amqp_listener.rabbitmq.client import RabbitMQBrokerClient
from amqp_listener.rabbitmq.connection import RabbitMQConnection

__all__ = [
    "RabbitMQBrokerClient",
    "RabbitMQConnection",
]
