"""Child process handle: one spawned command, end to end.

A ``ChildHandle`` owns:
- the shell process running the command (stdout/stderr piped, stdin inherited)
- two ``LineForwarder`` threads, one per output stream
- a relay thread blocked on a single-slot ``TerminationChannel``

Requesting termination only posts to the channel and never blocks; the relay
thread delivers the actual OS signal. Termination is advisory: a child that
ignores SIGTERM keeps ``wait()`` blocked.

Lifecycle: SPAWNED -> RUNNING -> (TERMINATION_REQUESTED) -> EXITED
"""

from __future__ import annotations

import enum
import logging
import os
import signal
import subprocess
import sys
import threading
import time
from typing import Any

from ..config import Config, get_config
from ..errors import SpawnError, WaitError
from ..models import CommandSpec
from .channel import Message, TerminationChannel
from .forwarder import ConsoleSink, LineForwarder

__all__ = ["ChildHandle", "ChildState"]

logger = logging.getLogger(__name__)

IS_WINDOWS = sys.platform == "win32"


class ChildState(enum.Enum):
    SPAWNED = "spawned"
    RUNNING = "running"
    TERMINATION_REQUESTED = "termination_requested"
    EXITED = "exited"


class ChildHandle:
    """Handle for one running command.

    Use ``ChildHandle.spawn()`` rather than the constructor.

    Example:
        sink = ConsoleSink()
        spec = CommandSpec(name="web", command="python -m http.server")
        child = ChildHandle.spawn(spec, "[web]", sink)
        ...
        child.request_termination()
        returncode = child.wait()
    """

    def __init__(
        self,
        spec: CommandSpec,
        prefix: str,
        process: subprocess.Popen,
        sink: ConsoleSink,
        config: Config,
    ) -> None:
        self.spec = spec
        self.prefix = prefix
        self._process = process
        self._sink = sink
        self._config = config
        self._lock = threading.Lock()
        self._state = ChildState.SPAWNED
        self._returncode: int | None = None
        self._channel = TerminationChannel(label=spec.name)
        self._forwarders: list[LineForwarder] = []
        self._relay_thread: threading.Thread | None = None
        self._signals_sent = 0

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def spawn(
        cls,
        spec: CommandSpec,
        prefix: str,
        sink: ConsoleSink,
        config: Config | None = None,
    ) -> "ChildHandle":
        """Start ``spec.command`` through the shell and begin forwarding.

        Raises:
            SpawnError: If the OS cannot create the shell process
        """
        config = config or get_config()
        argv = config.shell_argv(spec.command)

        logger.info(f"starting {spec.command} as {spec.name}")

        try:
            process = subprocess.Popen(
                argv,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                **_build_popen_kwargs(config),
            )
        except OSError as e:
            raise SpawnError(spec.name, spec.command, str(e)) from e

        logger.debug(f"Started pid={process.pid} argv={argv}")

        handle = cls(spec, prefix, process, sink, config)
        handle._start_workers()
        return handle

    def _start_workers(self) -> None:
        streams = (("stdout", self._process.stdout), ("stderr", self._process.stderr))
        for stream_name, stream in streams:
            if stream is None:
                continue
            forwarder = LineForwarder(
                stream,
                self.prefix,
                self._sink,
                name=f"{self.name}-{stream_name}",
                flush_partial=self._config.flush_partial,
            )
            forwarder.start()
            self._forwarders.append(forwarder)

        self._relay_thread = threading.Thread(
            target=self._relay,
            name=f"{self.name}-relay",
            daemon=True,
        )
        self._relay_thread.start()

        with self._lock:
            if self._state is ChildState.SPAWNED:
                self._state = ChildState.RUNNING

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def state(self) -> ChildState:
        return self._state

    @property
    def returncode(self) -> int | None:
        return self._returncode

    @property
    def signals_sent(self) -> int:
        """Number of termination signals the relay has delivered (0 or 1)."""
        return self._signals_sent

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def request_termination(self) -> bool:
        """Ask the relay thread to send SIGTERM. Never blocks, never raises.

        Returns:
            True if the request was accepted
        """
        with self._lock:
            state = self._state
            if state is ChildState.RUNNING or state is ChildState.SPAWNED:
                self._state = ChildState.TERMINATION_REQUESTED

        if state is ChildState.EXITED:
            logger.info(f"{self.prefix} already exited, ignoring stop request")
            return False
        if state is ChildState.TERMINATION_REQUESTED:
            logger.warning(f"{self.prefix} stop already requested, ignoring")
            return False

        return self._channel.send()

    def terminate_now(self) -> bool:
        """Send SIGTERM from the calling thread, bypassing the relay.

        Used when the run aborts and nothing will wait on this child.

        Returns:
            True if a signal was sent
        """
        with self._lock:
            if self._state is ChildState.EXITED:
                return False
            self._state = ChildState.TERMINATION_REQUESTED

        if self._process.poll() is not None:
            return False

        logger.info(f"{self.prefix} sending sigterm to {self.pid}")
        self._send_sigterm()
        return True

    def wait(self) -> int:
        """Block until the process exits and its output has been drained.

        Returns:
            The process return code (negative N when killed by signal N on POSIX)

        Raises:
            WaitError: If the wait call itself fails
        """
        try:
            returncode = self._process.wait()
        except OSError as e:
            raise WaitError(self.name, self.pid, str(e)) from e

        with self._lock:
            self._returncode = returncode
            self._state = ChildState.EXITED

        self._channel.close()
        self._drain()

        logger.debug(f"{self.prefix} pid={self.pid} exited with returncode={returncode}")
        return returncode

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _relay(self) -> None:
        """Wait for one message and turn a termination request into SIGTERM."""
        message = self._channel.receive()
        if message is Message.CLOSE:
            return

        if self._process.returncode is not None:
            logger.info(f"{self.prefix} pid={self.pid} already exited, not sending sigterm")
            return

        logger.info(f"{self.prefix} sending sigterm to {self.pid}")
        self._send_sigterm()

    def _send_sigterm(self) -> None:
        pid = self.pid
        try:
            if IS_WINDOWS:
                if self._config.isolate:
                    os.kill(pid, signal.CTRL_BREAK_EVENT)
                else:
                    self._process.terminate()
            elif self._config.isolate:
                pgid = os.getpgid(pid)
                os.killpg(pgid, signal.SIGTERM)
                logger.debug(f"Sent SIGTERM to process group pgid={pgid}")
            else:
                os.kill(pid, signal.SIGTERM)
            self._signals_sent += 1
        except ProcessLookupError:
            logger.info(f"{self.prefix} pid={pid} is already gone")
        except OSError as e:
            logger.warning(f"{self.prefix} signalling pid={pid} failed: {e}, falling back to terminate()")
            try:
                self._process.terminate()
                self._signals_sent += 1
            except OSError as e2:
                logger.error(f"{self.prefix} terminate() failed for pid={pid}: {e2}")

    def _drain(self) -> None:
        """Give the forwarders a bounded time to flush the remaining output."""
        deadline = time.monotonic() + self._config.drain_timeout
        for forwarder in self._forwarders:
            remaining = max(0.0, deadline - time.monotonic())
            if not forwarder.join(remaining):
                # Typically a background process still holds the pipe open
                logger.warning(
                    f"{self.prefix} {forwarder.name} still open after exit, "
                    f"leaving it to finish in the background"
                )

        if any(f.is_alive() for f in self._forwarders):
            return
        for stream in (self._process.stdout, self._process.stderr):
            if stream is not None:
                stream.close()


def _build_popen_kwargs(config: Config) -> dict[str, Any]:
    """Build platform-specific Popen kwargs for process isolation."""
    kwargs: dict[str, Any] = {}
    if not config.isolate:
        return kwargs

    if IS_WINDOWS:
        kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
    else:
        # POSIX: new session, so the child leads its own process group
        kwargs["start_new_session"] = True

    return kwargs
