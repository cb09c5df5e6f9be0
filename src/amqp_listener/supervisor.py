"""ProcessSupervisor — keeps worker processes running, via the OS process table.

The supervisor shares no state with workers: a worker is any process whose
argument vector contains the configured worker command followed by the
``run`` sub-command. Counts are best effort (PIDs are reused, and an unrelated
process with a matching command line is counted too).
"""

from __future__ import annotations

import logging
import os
import subprocess
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

import psutil

from .exceptions import SupervisionError

logger = logging.getLogger("amqp_listener.supervisor")

RUN_COMMAND = "run"
QUEUE_OPTION = "--queue"


@dataclass(frozen=True)
class SupervisedProcess:
    """A worker found in the process table."""

    pid: int
    queue: str | None
    cmdline: tuple[str, ...]


@dataclass(frozen=True)
class KeepResult:
    """Outcome of one :meth:`ProcessSupervisor.keep` pass for a queue."""

    queue: str
    desired: int
    running: int
    command: tuple[str, ...]
    spawned: tuple[int, ...] = ()
    errors: tuple[SupervisionError, ...] = field(default=())

    @property
    def missing(self) -> int:
        return max(0, self.desired - self.running)


def _find(haystack: Sequence[str], needle: Sequence[str]) -> int:
    """Index of *needle* as a contiguous run in *haystack*, or -1."""
    size = len(needle)
    for i in range(len(haystack) - size + 1):
        if list(haystack[i : i + size]) == list(needle):
            return i
    return -1


def _queue_option(args: Sequence[str]) -> str | None:
    for i, arg in enumerate(args):
        if arg.startswith(QUEUE_OPTION + "="):
            return arg.split("=", 1)[1]
        if arg == QUEUE_OPTION and i + 1 < len(args):
            return args[i + 1]
    return None


class ProcessSupervisor:
    """Counts, spawns and terminates worker processes.

    Args:
        command: Worker invocation, e.g. ``[sys.executable, "-m", "amqp_listener"]``.
        global_args: Options placed between *command* and ``run`` when
            spawning (``--config <path>``).
        process_iter: Process table enumeration (``psutil.process_iter``).
        process: Factory of process handles by PID (``psutil.Process``).
        popen: Process launcher (``subprocess.Popen``).
    """

    def __init__(
        self,
        command: Sequence[str],
        *,
        global_args: Sequence[str] = (),
        process_iter: Callable[..., Iterable[Any]] = psutil.process_iter,
        process: Callable[[int], Any] = psutil.Process,
        popen: Callable[..., Any] = subprocess.Popen,
    ) -> None:
        if not command:
            raise ValueError("Worker command must not be empty")
        self.command = tuple(command)
        self.global_args = tuple(global_args)
        self._process_iter = process_iter
        self._process = process
        self._popen = popen
        self._own_pid = os.getpid()

    def worker_argv(self, queue: str) -> list[str]:
        return [
            *self.command,
            *self.global_args,
            RUN_COMMAND,
            f"{QUEUE_OPTION}={queue}",
        ]

    def match(self, cmdline: Sequence[str]) -> tuple[bool, str | None]:
        """Return ``(is_worker, queue)`` for a process argument vector."""
        start = _find(cmdline, self.command)
        if start < 0:
            return False, None
        rest = list(cmdline[start + len(self.command) :])
        if RUN_COMMAND not in rest:
            return False, None
        return True, _queue_option(rest[rest.index(RUN_COMMAND) + 1 :])

    def scan(self, queue: str | None = None) -> list[SupervisedProcess]:
        """Workers currently in the process table, optionally for one *queue*."""
        found: list[SupervisedProcess] = []
        for proc in self._process_iter(["pid", "cmdline"]):
            info = proc.info
            pid = info.get("pid")
            cmdline = info.get("cmdline") or []
            if pid is None or pid == self._own_pid:
                continue
            is_worker, worker_queue = self.match(cmdline)
            if not is_worker or (queue is not None and worker_queue != queue):
                continue
            found.append(SupervisedProcess(pid, worker_queue, tuple(cmdline)))
        return found

    def keep(self, queue: str, desired: int) -> KeepResult:
        """Spawn workers for *queue* until *desired* are running; never kills."""
        running = len(self.scan(queue))
        argv = self.worker_argv(queue)
        spawned: list[int] = []
        errors: list[SupervisionError] = []
        for _ in range(max(0, desired - running)):
            try:
                proc = self._popen(
                    argv,
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.DEVNULL,
                    start_new_session=True,
                    close_fds=True,
                )
            except OSError as e:
                error = SupervisionError(f"Cannot spawn worker for {queue!r}: {e}")
                logger.error("%s", error)
                errors.append(error)
                continue
            spawned.append(proc.pid)
            logger.info("Spawned worker %d for %s", proc.pid, queue)
        return KeepResult(
            queue=queue,
            desired=desired,
            running=running,
            command=tuple(argv),
            spawned=tuple(spawned),
            errors=tuple(errors),
        )

    def keep_all(self, targets: Iterable[tuple[str, int]]) -> list[KeepResult]:
        return [self.keep(queue, count) for queue, count in targets]

    def kill_all(self) -> list[int]:
        """Send SIGTERM to every worker of every queue; returns the PIDs signalled."""
        signalled: list[int] = []
        for worker in self.scan():
            try:
                self._process(worker.pid).terminate()
            except psutil.Error as e:
                error = SupervisionError(
                    f"Cannot terminate worker: {e}", pid=worker.pid
                )
                logger.warning("%s (pid %d)", error, error.pid)
                continue
            signalled.append(worker.pid)
            logger.info("Terminated worker %d (%s)", worker.pid, worker.queue)
        return signalled
