"""Tests for MessageEnvelope and DeliveryInfo."""

from __future__ import annotations

import re

import pytest
from pydantic import ValidationError

from amqp_listener.envelope import DeliveryInfo, MessageEnvelope, new_message_id


def test_message_ids_are_unique_and_prefixed() -> None:
    first, second = new_message_id(), new_message_id()
    assert first != second
    assert re.fullmatch(r"amqp_[0-9a-f]{32}", first)


def test_envelope_defaults() -> None:
    envelope = MessageEnvelope(body=b"{}")
    assert envelope.routing_key == ""
    assert envelope.delivery_tag is None
    assert envelope.reply_to is None
    assert envelope.message_id.startswith("amqp_")
    assert envelope.headers == {}


def test_envelope_is_frozen() -> None:
    envelope = MessageEnvelope(body=b"{}")
    with pytest.raises(ValidationError):
        envelope.body = b"changed"  # type: ignore[misc]


def test_properties_only_carry_what_is_set() -> None:
    plain = MessageEnvelope(body=b"{}", message_id="amqp_1")
    assert plain.properties() == {"message_id": "amqp_1"}

    request = MessageEnvelope(
        body=b"{}", message_id="amqp_2", reply_to="replies", headers={"x-delay": 500}
    )
    assert request.properties() == {
        "message_id": "amqp_2",
        "reply_to": "replies",
        "application_headers": {"x-delay": 500},
    }


def test_delivery_info() -> None:
    info = DeliveryInfo(exchange="orders", queue="q", routing_key="order.created")
    assert info.reply_to is None
    assert info.model_dump() == {
        "exchange": "orders",
        "queue": "q",
        "routing_key": "order.created",
        "reply_to": None,
    }
