"""Shared test helpers."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

from amqp_listener.memory import InMemoryBrokerClient

COMMAND = ["python", "-m", "amqp_listener"]


async def eventually(predicate: Callable[[], Any], attempts: int = 200) -> None:
    """Yield to the event loop until *predicate* holds."""
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


class DroppingBrokerClient(InMemoryBrokerClient):
    """Loses its broker connection while the first wait is blocked."""

    async def wait(
        self, timeout: float | None = None, *, consumer_tag: str | None = None
    ) -> bool:
        if not self.closed:
            asyncio.get_running_loop().call_soon(self.drop_connection)
        return await super().wait(timeout, consumer_tag=consumer_tag)
