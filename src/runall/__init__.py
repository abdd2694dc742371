"""runall - run multiple shell commands in parallel.

Every command runs through a shell; its stdout and stderr are forwarded line
by line with a ``[name]`` prefix. Ctrl+C asks every child to terminate, and
runall exits once all of them have.

Usage:
    runall "make watch" "npm run dev"
"""

__version__ = "0.1.0"

from .config import Config, ExitCodeMode, get_config
from .errors import (
    InterruptHandlerError,
    NameCountError,
    RunallError,
    SpawnError,
    WaitError,
)
from .models import CommandSpec, build_specs
from .supervisor import ChildExit, Supervisor, aggregate_exit_code

__all__ = [
    "__version__",
    "ChildExit",
    "CommandSpec",
    "Config",
    "ExitCodeMode",
    "InterruptHandlerError",
    "NameCountError",
    "RunallError",
    "SpawnError",
    "Supervisor",
    "WaitError",
    "aggregate_exit_code",
    "build_specs",
    "get_config",
]
