"""ConsumerLifecycle — consume loop state machine driven by POSIX signals."""

from __future__ import annotations

import asyncio
import enum
import logging
import signal
from typing import TYPE_CHECKING, Any

import psutil

from .exceptions import MessagingConnectionError, SignalsUnavailableError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Coroutine

    from .ports import BrokerClient

logger = logging.getLogger("amqp_listener.lifecycle")

HANDLED_SIGNALS = ("SIGTERM", "SIGQUIT", "SIGINT", "SIGHUP", "SIGUSR1", "SIGUSR2")

# Seconds from the signal until the health probe runs.
PROBE_DELAYS = {"SIGUSR1": 1.0, "SIGUSR2": 10.0}


class ConsumerState(str, enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPING_SOFT = "stopping_soft"
    STOPPING_HARD = "stopping_hard"
    RESTARTING = "restarting"
    STOPPED = "stopped"


class ConsumerLifecycle:
    """Owns the consume loop of one worker and its state.

    The loop's only suspension point is ``BrokerClient.wait``; control
    methods never block, they set the state and schedule the broker action
    (cancel, close channel, close connection) that wakes that wait:

    * :meth:`stop` cancels the consumer and lets the in-flight delivery finish.
    * :meth:`stop_hard` closes the connection and cancels the loop task.
    * :meth:`restart` cancels the consumer; once the loop has drained, the
      channel is closed and ``start`` is called again on a fresh one.

    At most one terminal action (soft or hard stop) happens per lifecycle;
    anything requested after ``STOPPED`` is ignored.
    """

    def __init__(
        self,
        client: BrokerClient,
        start: Callable[[], Awaitable[str]],
    ) -> None:
        """
        Args:
            client: Broker client the loop waits on.
            start: Declares the topology and registers the consumer; returns
                the consumer tag. Called again after each restart.
        """
        self._client = client
        self._start = start
        self.state = ConsumerState.IDLE
        self.exit_code = 0
        self.consumer_tag: str | None = None
        self.last_probe: dict[str, Any] | None = None
        self._terminal = False
        self._task: asyncio.Task[Any] | None = None
        self._probe: asyncio.TimerHandle | None = None
        self._actions: set[asyncio.Task[None]] = set()

    @property
    def stopped(self) -> bool:
        return self.state is ConsumerState.STOPPED

    def _set_state(self, state: ConsumerState) -> None:
        if state is not self.state:
            logger.debug("Consumer state %s -> %s", self.state.value, state.value)
            self.state = state

    # ── Loop ─────────────────────────────────────────────────────

    async def run(self) -> int:
        """Consume until stopped; returns the process exit status.

        Raises:
            MessagingConnectionError: the connection or channel was lost.
        """
        self._task = asyncio.current_task()
        try:
            while not self._terminal:
                self.consumer_tag = await self._start()
                if self.state is ConsumerState.STOPPING_SOFT:
                    # stop() arrived while subscribing
                    await self._client.cancel(self.consumer_tag)
                else:
                    self._set_state(ConsumerState.RUNNING)
                logger.debug("Enter wait")
                while self._client.is_consuming:
                    await self._client.wait()
                logger.debug("Exit wait")
                if self.state is not ConsumerState.RESTARTING:
                    break
                await self._client.close_channel()
        except MessagingConnectionError as e:
            logger.error("Consume loop ended by transport fault: %s", e)
            raise
        except asyncio.CancelledError:
            if self.state is not ConsumerState.STOPPING_HARD:
                raise
        finally:
            self._cancel_probe()
            await self._settle_actions()
            self._set_state(ConsumerState.STOPPED)
        return self.exit_code

    def _spawn(self, action: Coroutine[Any, Any, None], name: str) -> None:
        task = asyncio.get_running_loop().create_task(action, name=name)
        self._actions.add(task)
        task.add_done_callback(self._action_done)

    def _action_done(self, task: asyncio.Task[None]) -> None:
        self._actions.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning("%s failed: %s", task.get_name(), task.exception())

    async def _settle_actions(self) -> None:
        if self._actions:
            await asyncio.gather(*self._actions, return_exceptions=True)

    # ── Control ──────────────────────────────────────────────────

    def stop(self) -> None:
        """Soft stop: the broker sends nothing more, the current delivery finishes."""
        if self._terminal or self.stopped:
            return
        logger.info("Stopping consumer by cancel command.")
        self._terminal = True
        previous, self.state = self.state, ConsumerState.STOPPING_SOFT
        if self.consumer_tag is not None and previous is ConsumerState.RUNNING:
            self._spawn(self._client.cancel(self.consumer_tag), "soft-stop")

    def stop_hard(self, signum: int = signal.SIGTERM) -> None:
        """Hard stop: close the connection, abandoning any in-flight delivery."""
        if self._terminal or self.stopped:
            return
        logger.info("Stopping consumer by closing connection.")
        self._terminal = True
        self.exit_code = 128 + int(signum)
        self._set_state(ConsumerState.STOPPING_HARD)
        self._spawn(self._client.close(), "hard-stop")
        if self._task is not None and not self._task.done():
            self._task.cancel()

    def restart(self) -> None:
        """Re-subscribe on a fresh channel of the same connection."""
        if self._terminal or self.state is not ConsumerState.RUNNING:
            return
        logger.info("Restarting consumer.")
        self._set_state(ConsumerState.RESTARTING)
        if self.consumer_tag is not None:
            self._spawn(self._client.cancel(self.consumer_tag), "restart")

    def schedule_probe(self, delay: float) -> None:
        """Log a health report after *delay* seconds, replacing any pending one."""
        if self.stopped:
            return
        self._cancel_probe()
        self._probe = asyncio.get_running_loop().call_later(delay, self._run_probe)

    def _cancel_probe(self) -> None:
        if self._probe is not None:
            self._probe.cancel()
            self._probe = None

    def _run_probe(self) -> None:
        self._probe = None
        rss = psutil.Process().memory_info().rss
        self.last_probe = {"state": self.state.value, "rss": rss}
        logger.info("Health probe: state=%s rss=%d", self.state.value, rss)

    def handle_signal(self, signum: int) -> None:
        name = signal.Signals(signum).name
        logger.info("Handling signal: #%d (%s)", signum, name)
        if self.stopped:
            return
        if name in ("SIGTERM", "SIGQUIT"):
            self.stop_hard(signum)
        elif name == "SIGINT":
            self.stop()
        elif name == "SIGHUP":
            self.restart()
        elif name in PROBE_DELAYS:
            self.schedule_probe(PROBE_DELAYS[name])


def install_signal_handlers(
    lifecycle: ConsumerLifecycle, loop: asyncio.AbstractEventLoop | None = None
) -> list[int]:
    """Route the worker signals to *lifecycle* on the running event loop.

    Raises:
        SignalsUnavailableError: the platform or loop cannot install them.
    """
    loop = loop or asyncio.get_running_loop()
    installed: list[int] = []
    try:
        for name in HANDLED_SIGNALS:
            signum = int(getattr(signal, name))
            loop.add_signal_handler(signum, lifecycle.handle_signal, signum)
            installed.append(signum)
    except (AttributeError, NotImplementedError, RuntimeError, ValueError) as e:
        remove_signal_handlers(installed, loop)
        raise SignalsUnavailableError("Unable to process signals.") from e
    return installed


def remove_signal_handlers(
    signums: list[int], loop: asyncio.AbstractEventLoop | None = None
) -> None:
    loop = loop or asyncio.get_running_loop()
    for signum in signums:
        loop.remove_signal_handler(signum)
