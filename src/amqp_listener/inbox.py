"""DeliveryInbox — buffers deliveries until the consume loop asks for one."""

from __future__ import annotations

import asyncio
from collections import deque
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable

    from .envelope import MessageEnvelope
    from .ports import DeliveryCallback


class DeliveryInbox:
    """Per-channel consumer table plus a FIFO of undispatched deliveries.

    Broker adapters :meth:`put` deliveries as they arrive; :meth:`wait` takes
    one and awaits its consumer callback, so callbacks never run concurrently
    with each other. ``None`` in the queue is a wake-up marker pushed by
    cancel/close so that a blocked :meth:`wait` returns.

    A wait restricted to one consumer tag sets deliveries of other consumers
    aside (``_held``); they keep their order and are handed out first by the
    next unrestricted wait.

    After :meth:`fail`, every wait raises the recorded error until the inbox
    is cleared.
    """

    def __init__(self) -> None:
        self._callbacks: dict[str, DeliveryCallback] = {}
        self._pending: asyncio.Queue[MessageEnvelope | None] = asyncio.Queue()
        self._held: deque[MessageEnvelope] = deque()
        self._failure: Exception | None = None

    @property
    def is_consuming(self) -> bool:
        return bool(self._callbacks)

    @property
    def failure(self) -> Exception | None:
        return self._failure

    def consumer_tags(self) -> list[str]:
        return list(self._callbacks)

    def register(self, consumer_tag: str, callback: DeliveryCallback) -> None:
        self._callbacks[consumer_tag] = callback

    def put(self, envelope: MessageEnvelope) -> bool:
        """Buffer *envelope*; ``False`` if its consumer is no longer registered."""
        if envelope.consumer_tag not in self._callbacks or self._failure is not None:
            return False
        self._pending.put_nowait(envelope)
        return True

    def unregister(self, consumer_tag: str) -> list[MessageEnvelope]:
        """Remove a consumer and return its undispatched deliveries."""
        self._callbacks.pop(consumer_tag, None)
        drained = self._drain(lambda e: e.consumer_tag == consumer_tag)
        self.wake()
        return drained

    def clear(self) -> list[MessageEnvelope]:
        """Remove every consumer and return all undispatched deliveries."""
        self._callbacks.clear()
        self._failure = None
        drained = self._drain(lambda _e: True)
        self.wake()
        return drained

    def fail(self, error: Exception) -> list[MessageEnvelope]:
        """Record a transport fault; buffered deliveries are dropped and returned.

        Consumers stay registered so that a consume loop keeps calling
        :meth:`wait` and receives *error*.
        """
        if self._failure is None:
            self._failure = error
        drained = self._drain(lambda _e: True)
        self.wake()
        return drained

    def wake(self) -> None:
        self._pending.put_nowait(None)

    async def wait(
        self, timeout: float | None = None, *, consumer_tag: str | None = None
    ) -> bool:
        """Dispatch one delivery, for *consumer_tag* only when given.

        Raises:
            MessagingConnectionError: the transport failed (see :meth:`fail`).
        """
        self._raise_failure()
        envelope = self._take_held(consumer_tag)
        if envelope is None:
            if not self._expects(consumer_tag):
                return False
            try:
                envelope = await asyncio.wait_for(
                    self._next(consumer_tag), timeout=timeout
                )
            except asyncio.TimeoutError:
                return False
            self._raise_failure()
            if envelope is None:
                return False
        callback = self._callbacks.get(envelope.consumer_tag or "")
        if callback is None:
            return False
        await callback(envelope)
        return True

    def _raise_failure(self) -> None:
        if self._failure is not None:
            raise self._failure

    def _expects(self, consumer_tag: str | None) -> bool:
        if consumer_tag is not None:
            return consumer_tag in self._callbacks
        return bool(self._callbacks) or not self._pending.empty()

    def _take_held(self, consumer_tag: str | None) -> MessageEnvelope | None:
        for envelope in self._held:
            if consumer_tag is None or envelope.consumer_tag == consumer_tag:
                self._held.remove(envelope)
                return envelope
        return None

    async def _next(self, consumer_tag: str | None) -> MessageEnvelope | None:
        while True:
            envelope = await self._pending.get()
            if (
                envelope is None
                or consumer_tag is None
                or envelope.consumer_tag == consumer_tag
            ):
                return envelope
            self._held.append(envelope)

    def _drain(
        self, predicate: Callable[[MessageEnvelope], bool]
    ) -> list[MessageEnvelope]:
        kept: list[MessageEnvelope] = []
        drained: list[MessageEnvelope] = []
        buffered = list(self._held)
        self._held.clear()
        while not self._pending.empty():
            item = self._pending.get_nowait()
            if item is not None:
                buffered.append(item)
        for item in buffered:
            (drained if predicate(item) else kept).append(item)
        for item in kept:
            self._pending.put_nowait(item)
        return drained
