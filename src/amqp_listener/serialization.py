"""JSON encoding of outbound messages and decoding of delivery bodies."""

from __future__ import annotations

import json
from typing import Any

from .exceptions import (
    EmptyMessageError,
    MessageDecodeError,
    MessagingSerializationError,
)


def _json_serializer(obj: Any) -> Any:
    """Serialize datetime and other non-JSON types."""
    if hasattr(obj, "isoformat"):
        return obj.isoformat()
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def encode_message(message: Any) -> bytes:
    """Encode *message* as a delivery body.

    Strings and bytes are sent as-is; dicts, lists and pydantic models are
    JSON-encoded.
    """
    if message is None or (not message and not isinstance(message, (int, float))):
        raise EmptyMessageError("AMQP message can not be empty")
    if isinstance(message, bytes):
        return message
    if isinstance(message, str):
        return message.encode("utf-8")
    if hasattr(message, "model_dump"):
        message = message.model_dump(mode="json")
    try:
        return json.dumps(message, default=_json_serializer).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise MessagingSerializationError(str(e)) from e


def decode_body(body: bytes) -> Any:
    """Decode a JSON delivery body."""
    try:
        return json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MessageDecodeError(f"Invalid or malformed JSON. {e}", body) from e
