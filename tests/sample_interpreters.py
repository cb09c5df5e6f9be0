"""Interpreters imported by reference from the test configuration."""

from __future__ import annotations

import json
from typing import Any

from amqp_listener.envelope import DeliveryInfo
from amqp_listener.exceptions import HandlingError
from amqp_listener.interpreter import Interpreter, route


class OrdersInterpreter(Interpreter):
    def __init__(self, *, debug: bool = False) -> None:
        super().__init__(debug=debug)
        self.seen: list[tuple[Any, DeliveryInfo]] = []
        self.errors: list[str] = []

    def report_error(self, message: str) -> None:
        self.errors.append(message)

    async def read_order_created(self, body: Any, info: DeliveryInfo) -> bool:
        self.seen.append((body, info))
        return True

    def read_order_rejected(self, body: Any, info: DeliveryInfo) -> bool:
        self.seen.append((body, info))
        return False

    async def read_order_broken(self, body: Any, info: DeliveryInfo) -> bool:
        raise ValueError("boom")

    async def read_order_invalid(self, body: Any, info: DeliveryInfo) -> bool:
        raise HandlingError("order id missing")

    @route("order.renamed", "legacy.orderRename")
    async def rename(self, body: Any, info: DeliveryInfo) -> bool:
        self.seen.append((body, info))
        return True

    async def read_order_lookup(self, body: Any, info: DeliveryInfo) -> bool:
        await self.reply(info, {"id": body["id"], "status": "open"})
        return True

    async def read_order_checked(self, body: Any, info: DeliveryInfo) -> bool:
        answer = await self.ask("replies.cli", "replies", "order.lookup", body)
        self.seen.append((json.loads(answer), info))
        return True


class ConsoleOnly:
    """Provides the interpreter capability without subclassing Interpreter."""

    def report_error(self, message: str) -> None:
        pass

    def debug(self, message: Any) -> None:
        pass

    def read_ping(self, body: Any, info: DeliveryInfo) -> bool:
        return True


class NotAnInterpreter:
    pass


class Unbuildable(Interpreter):
    def __init__(self, *, debug: bool = False) -> None:
        raise RuntimeError("needs a database")


console_only = ConsoleOnly()
