"""MessageEnvelope — immutable wrapper for deliveries and outbound messages."""

from __future__ import annotations

import uuid
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def new_message_id() -> str:
    """Return a unique message id for an outbound message."""
    return f"amqp_{uuid.uuid4().hex}"


class MessageEnvelope(BaseModel):
    """Normalized representation of one message on the wire.

    Inbound envelopes carry the broker's ``delivery_tag`` (used to ack/nack)
    and the ``consumer_tag`` of the subscription that received them.
    """

    model_config = ConfigDict(frozen=True)

    body: bytes
    routing_key: str = ""
    exchange: str = ""
    delivery_tag: int | None = None
    consumer_tag: str | None = None
    reply_to: str | None = None
    message_id: str = Field(default_factory=new_message_id)
    headers: dict[str, Any] = Field(default_factory=dict)

    def properties(self) -> dict[str, Any]:
        """Message properties as logged in the traffic log."""
        props: dict[str, Any] = {"message_id": self.message_id}
        if self.reply_to is not None:
            props["reply_to"] = self.reply_to
        if self.headers:
            props["application_headers"] = dict(self.headers)
        return props


class DeliveryInfo(BaseModel):
    """Context handed to a handler together with the decoded body."""

    model_config = ConfigDict(frozen=True)

    exchange: str
    queue: str
    routing_key: str
    reply_to: str | None = None
