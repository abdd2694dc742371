"""Supervisor: spawn every command, relay interrupts, wait for all exits.

Flow:
1. Compute aligned prefixes and spawn one ChildHandle per CommandSpec, in
   order. The first spawn failure aborts the run.
2. Freeze the list of handles and arm a process-wide handler for SIGINT and
   SIGTERM. The handler only enqueues the signal number; a broadcaster
   thread turns it into termination requests. The handler never blocks,
   never takes a lock and never raises.
3. Wait on every handle in spawn order. runall returns only after every
   child has exited, however each one ended.

When a run aborts (spawn, handler or wait failure) with isolation on, children that
are already running are sent SIGTERM directly, since they sit in their own
sessions where a terminal Ctrl-C cannot reach them.
"""

from __future__ import annotations

import logging
import queue
import signal
import threading
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from .config import Config, ExitCodeMode, get_config
from .errors import InterruptHandlerError, SpawnError, WaitError
from .models import CommandSpec, make_prefixes
from .runtime import ChildHandle, ChildState, ConsoleSink

__all__ = ["ChildExit", "Supervisor", "aggregate_exit_code"]

logger = logging.getLogger(__name__)

INTERRUPT_SIGNALS: tuple[signal.Signals, ...] = (signal.SIGINT, signal.SIGTERM)

BROADCASTER_JOIN_TIMEOUT = 2.0


@dataclass(frozen=True)
class ChildExit:
    """How one child ended.

    Attributes:
        name: Command name
        pid: OS process id
        returncode: Exit status (negative N when killed by signal N on POSIX)
    """

    name: str
    pid: int
    returncode: int


class Supervisor:
    """Owns every ChildHandle for one run.

    Example:
        ```python
        specs = build_specs(["echo hi", "echo bye"])
        supervisor = Supervisor(specs)
        exits = supervisor.run()
        sys.exit(aggregate_exit_code(exits))
        ```
    """

    def __init__(
        self,
        specs: Sequence[CommandSpec],
        sink: ConsoleSink | None = None,
        config: Config | None = None,
    ) -> None:
        self.specs = list(specs)
        self.sink = sink or ConsoleSink()
        self.config = config or get_config()
        self._handles: tuple[ChildHandle, ...] = ()
        self._previous_handlers: dict[signal.Signals, Any] = {}
        # Signal numbers from the handler, None stops the broadcaster
        self._interrupts: queue.SimpleQueue[int | None] = queue.SimpleQueue()
        self._broadcaster: threading.Thread | None = None

    @property
    def handles(self) -> tuple[ChildHandle, ...]:
        return self._handles

    def spawn_all(self) -> tuple[ChildHandle, ...]:
        """Spawn every command in order.

        Raises:
            SpawnError: On the first command that cannot be started
        """
        prefixes = make_prefixes(self.specs)
        handles: list[ChildHandle] = []
        try:
            for spec, prefix in zip(self.specs, prefixes):
                handles.append(ChildHandle.spawn(spec, prefix, self.sink, self.config))
        except SpawnError:
            self._abort(handles)
            raise

        # Registered once, never mutated after the handler is armed
        self._handles = tuple(handles)
        return self._handles

    def broadcast_termination(self) -> int:
        """Request termination of every child.

        Returns:
            Number of requests that were accepted
        """
        accepted = 0
        for handle in self._handles:
            try:
                if handle.request_termination():
                    accepted += 1
            except Exception as e:
                logger.error(f"error sending stop signal to {handle.name}: {e}")

        logger.debug(f"Termination requested for {accepted}/{len(self._handles)} child(ren)")
        return accepted

    def install_interrupt_handler(self) -> None:
        """Arm the process-wide interrupt handler and start the broadcaster.

        Must be called from the main thread.

        Raises:
            InterruptHandlerError: If a handler cannot be installed
        """
        for sig in INTERRUPT_SIGNALS:
            try:
                self._previous_handlers[sig] = signal.signal(sig, self._handle_interrupt)
            except (ValueError, OSError) as e:
                raise InterruptHandlerError(f"set {sig.name} handler: {e}") from e

        if self._broadcaster is None:
            self._broadcaster = threading.Thread(
                target=self._broadcast_loop,
                name="interrupt-broadcaster",
                daemon=True,
            )
            self._broadcaster.start()

        logger.debug(f"Interrupt handler installed for {len(self._handles)} child(ren)")

    def restore_interrupt_handler(self) -> None:
        for sig, previous in self._previous_handlers.items():
            try:
                signal.signal(sig, previous)
            except (ValueError, OSError, TypeError) as e:
                logger.debug(f"Error restoring {sig.name} handler: {e}")
        self._previous_handlers.clear()

        if self._broadcaster is not None:
            self._interrupts.put_nowait(None)
            self._broadcaster.join(BROADCASTER_JOIN_TIMEOUT)
            if self._broadcaster.is_alive():
                logger.warning("interrupt broadcaster did not stop in time")
            self._broadcaster = None

    def wait_all(self) -> list[ChildExit]:
        """Wait for every child in spawn order.

        Raises:
            WaitError: If waiting on any child fails
        """
        exits = []
        try:
            for handle in self._handles:
                returncode = handle.wait()
                exits.append(ChildExit(name=handle.name, pid=handle.pid, returncode=returncode))
        except WaitError:
            self._abort(self._handles)
            raise
        return exits

    def run(self) -> list[ChildExit]:
        """Spawn, arm the interrupt handler and wait for every child."""
        self.spawn_all()
        try:
            try:
                self.install_interrupt_handler()
            except InterruptHandlerError:
                self._abort(self._handles)
                raise
            return self.wait_all()
        finally:
            self.restore_interrupt_handler()

    def _handle_interrupt(self, signum: int, frame: Any) -> None:
        # Runs on the main thread, possibly inside ChildHandle.wait() while it
        # holds a lock. SimpleQueue.put_nowait is reentrant; nothing else is.
        self._interrupts.put_nowait(signum)

    def _broadcast_loop(self) -> None:
        while True:
            signum = self._interrupts.get()
            if signum is None:
                return
            if signum == signal.SIGINT:
                logger.info("got ctrl-c")
            else:
                logger.info(f"got {signal.Signals(signum).name}")
            self.broadcast_termination()

    def _abort(self, handles: Sequence[ChildHandle]) -> None:
        """Stop children left running by a failed run.

        Without isolation they share our process group and receive the
        terminal's Ctrl-C themselves, so only isolated children are signalled.
        """
        if not self.config.isolate:
            return
        for handle in handles:
            if handle.state is ChildState.EXITED:
                continue
            try:
                handle.terminate_now()
            except Exception as e:
                logger.error(f"error stopping {handle.name} after abort: {e}")


def aggregate_exit_code(
    exits: Sequence[ChildExit],
    mode: ExitCodeMode = ExitCodeMode.ZERO,
) -> int:
    """Derive runall's own exit status from its children's.

    ZERO always yields 0. PROPAGATE yields the first non-zero status in
    command order, mapping death by signal N to 128 + N.
    """
    if mode is ExitCodeMode.ZERO:
        return 0

    for child_exit in exits:
        code = child_exit.returncode
        if code == 0:
            continue
        return 128 - code if code < 0 else code
    return 0
