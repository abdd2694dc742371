"""runall environment configuration.

Environment variables:
    RUNALL_SHELL: Shell used to run each command string
        - Default "bash" ("cmd" on Windows)
        - Invoked as ``<shell> -c <command>`` (``cmd /c <command>`` on Windows)

    RUNALL_FLUSH_PARTIAL: Emit an unterminated final output line
        - true/1/yes/on = emit it, with a newline appended
        - false/0/no/off = drop it (default)

    RUNALL_ISOLATE: Run each child in its own session / process group
        - true/1/yes/on = isolate, and signal the whole group (default)
        - false/0/no/off = share our process group, signal the pid only

    RUNALL_DRAIN_TIMEOUT: Seconds to wait for output forwarders after a child exits
        - Default 1.0, limited to 0-60

    RUNALL_EXIT_CODE: How runall's own exit status is derived
        - zero = always exit 0 once every child has exited (default)
        - propagate = first non-zero child exit status, in command order

    RUNALL_LOG_DEBUG: Debug logging
        - true/1/yes/on = log at DEBUG to a file in the temp directory
        - false/0/no/off = log at INFO to stderr (default)
"""

from __future__ import annotations

import os
import sys
import tempfile
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path

__all__ = ["Config", "ExitCodeMode", "load_config", "get_config", "reload_config"]

IS_WINDOWS = sys.platform == "win32"

DEFAULT_SHELL = "cmd" if IS_WINDOWS else "bash"
DEFAULT_DRAIN_TIMEOUT = 1.0


class ExitCodeMode(Enum):
    """How the supervisor's exit status reflects its children.

    - ZERO: always 0
    - PROPAGATE: first non-zero child exit status in command order
    """

    ZERO = "zero"
    PROPAGATE = "propagate"

    @classmethod
    def from_string(cls, value: str) -> "ExitCodeMode":
        """Parse a mode name; unknown values fall back to ZERO."""
        value = value.lower().strip()
        for mode in cls:
            if mode.value == value:
                return mode
        return cls.ZERO


@dataclass
class Config:
    """runall configuration.

    Attributes:
        shell: Shell executable used to run command strings
        flush_partial: Emit a trailing line that has no newline
        isolate: Start children in a new session and signal the process group
        drain_timeout: Seconds to wait for forwarders once a child has exited
        exit_code_mode: How runall's own exit status is computed
        log_debug: Log at DEBUG level to a file
        log_file: Log file path (set when log_debug is on)
    """

    shell: str = DEFAULT_SHELL
    flush_partial: bool = False
    isolate: bool = True
    drain_timeout: float = DEFAULT_DRAIN_TIMEOUT
    exit_code_mode: ExitCodeMode = ExitCodeMode.ZERO
    log_debug: bool = False
    log_file: str | None = None

    def shell_argv(self, command: str) -> list[str]:
        """Build the argv that runs ``command`` through the configured shell."""
        flag = "/c" if Path(self.shell).stem.lower() == "cmd" else "-c"
        return [self.shell, flag, command]

    def __repr__(self) -> str:
        return (
            f"Config(shell={self.shell}, "
            f"flush_partial={self.flush_partial}, "
            f"isolate={self.isolate}, "
            f"drain_timeout={self.drain_timeout}, "
            f"exit_code_mode={self.exit_code_mode.value}, "
            f"log_debug={self.log_debug}, "
            f"log_file={self.log_file})"
        )


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """Parse a boolean environment variable."""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_drain_timeout(value: str | None) -> float:
    if not value:
        return DEFAULT_DRAIN_TIMEOUT
    try:
        timeout = float(value)
    except ValueError:
        return DEFAULT_DRAIN_TIMEOUT
    return max(0.0, min(timeout, 60.0))


def _generate_log_file_path() -> str:
    """Build a timestamped log file path under the temp directory."""
    log_dir = Path(tempfile.gettempdir()) / "runall"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"runall_debug_{timestamp}.log"

    return str(log_file.resolve())


def load_config() -> Config:
    """Load configuration from the environment."""
    log_debug = _parse_bool(os.environ.get("RUNALL_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    return Config(
        shell=os.environ.get("RUNALL_SHELL", "").strip() or DEFAULT_SHELL,
        flush_partial=_parse_bool(os.environ.get("RUNALL_FLUSH_PARTIAL"), default=False),
        isolate=_parse_bool(os.environ.get("RUNALL_ISOLATE"), default=True),
        drain_timeout=_parse_drain_timeout(os.environ.get("RUNALL_DRAIN_TIMEOUT")),
        exit_code_mode=ExitCodeMode.from_string(os.environ.get("RUNALL_EXIT_CODE", "")),
        log_debug=log_debug,
        log_file=log_file,
    )


# Global instance, loaded lazily
_config: Config | None = None


def get_config() -> Config:
    """Return the process-wide configuration."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """Re-read the environment (used by tests)."""
    global _config
    _config = load_config()
    return _config
