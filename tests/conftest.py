"""Pytest fixtures for amqp-listener tests."""

from __future__ import annotations

from typing import Any

import pytest

from amqp_listener.config import ListenerConfig, parse_config
from amqp_listener.memory import InMemoryBrokerClient
from helpers import COMMAND


@pytest.fixture
def config_data() -> dict[str, Any]:
    return {
        "broker": {"host": "localhost", "user": "guest", "password": "guest"},
        "exchanges": {
            "orders": {"type": "topic"},
            "replies": {"type": "direct", "options": {"durable": False}},
        },
        "queues": {
            "orders.worker": {
                "binds": {"order.*": "orders"},
                "interpreter": "sample_interpreters:OrdersInterpreter",
            },
            "replies.cli": {
                "options": {"durable": False, "auto_delete": True},
            },
            "plain": {"binds": {"plain.#": "orders"}},
        },
        "default_exchange": "orders",
        "log_file": None,
        "supervisor": {
            "command": COMMAND,
            "targets": [{"queue": "orders.worker", "count": 2}],
        },
    }


@pytest.fixture
def config(config_data: dict[str, Any]) -> ListenerConfig:
    return parse_config(config_data)


@pytest.fixture
def client() -> InMemoryBrokerClient:
    return InMemoryBrokerClient()

