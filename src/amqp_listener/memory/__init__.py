"""In-memory broker adapter for testing."""

from __future__ import annotations

from amqp_listener.memory.client import InMemoryBrokerClient, topic_matches

__all__ = [
    "InMemoryBrokerClient",
    "topic_matches",
]
