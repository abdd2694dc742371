"""runall exception classes.

Every exception defined here is fatal: it propagates to ``cli.main``, which
logs it and exits with a non-zero status. Recoverable conditions (stream read
errors, rejected termination requests) are logged where they happen and never
raised.
"""

from __future__ import annotations

__all__ = [
    "RunallError",
    "NameCountError",
    "SpawnError",
    "WaitError",
    "InterruptHandlerError",
]


class RunallError(Exception):
    """Base exception for runall."""
    pass


class NameCountError(RunallError):
    """Name list does not match the number of commands.

    Attributes:
        expected: Number of commands
        actual: Number of names after reconciliation
    """

    def __init__(self, expected: int, actual: int) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(f"expected {expected} names, got {actual}")


class SpawnError(RunallError):
    """The OS could not create the shell process for a command.

    Attributes:
        name: Command name
        command: Command string
    """

    def __init__(self, name: str, command: str, reason: str) -> None:
        self.name = name
        self.command = command
        super().__init__(f"failed to start {command!r} as {name}: {reason}")


class WaitError(RunallError):
    """Waiting for a child process failed.

    Attributes:
        name: Command name
        pid: Process id that could not be waited on
    """

    def __init__(self, name: str, pid: int, reason: str) -> None:
        self.name = name
        self.pid = pid
        super().__init__(f"failed to wait for {name} (pid={pid}): {reason}")


class InterruptHandlerError(RunallError):
    """The process-wide interrupt handler could not be installed."""
    pass
