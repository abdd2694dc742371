"""runall command-line entry point.

Usage:
    runall [-n NAMES] [COMMANDS ...]

Examples:
    runall "npm run dev" "npm run worker"
    runall -n web,worker "npm run dev" "npm run worker"
    runall -n web -n worker "npm run dev" "npm run worker"
"""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Sequence

from . import __version__
from .config import Config, get_config
from .errors import RunallError
from .models import build_specs
from .supervisor import Supervisor, aggregate_exit_code

__all__ = ["build_parser", "configure_logging", "main"]

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="runall",
        description="Run multiple commands in parallel.",
    )
    parser.add_argument(
        "-n", "--names",
        action="append",
        metavar="NAMES",
        help="Names for the commands, repeated or comma separated (default: cmd-1, cmd-2, ...)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument("commands", nargs="*", metavar="COMMANDS")
    return parser


def configure_logging(config: Config) -> None:
    """Send diagnostics to stderr, or to a debug log file when enabled."""
    log_handlers: list[logging.Handler] = []

    if config.log_debug and config.log_file:
        file_handler = logging.FileHandler(config.log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log_handlers.append(file_handler)
        log_level = logging.DEBUG
    else:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log_handlers.append(stderr_handler)
        log_level = logging.INFO

    # Root logger stays at WARNING; only the runall namespace is verbose
    logging.basicConfig(
        level=logging.WARNING,
        handlers=log_handlers,
    )
    logging.getLogger("runall").setLevel(log_level)


def main(argv: Sequence[str] | None = None) -> int:
    """Run the commands given on the command line.

    Returns:
        Process exit status
    """
    args = build_parser().parse_args(argv)

    config = get_config()
    configure_logging(config)
    logger.debug(f"Starting runall: {config}")

    try:
        specs = build_specs(args.commands, args.names)
        exits = Supervisor(specs, config=config).run()
    except RunallError as e:
        logger.critical(f"fatal: {e}")
        return 1

    for child_exit in exits:
        logger.debug(f"{child_exit.name} (pid={child_exit.pid}) exited with {child_exit.returncode}")

    return aggregate_exit_code(exits, config.exit_code_mode)


if __name__ == "__main__":
    sys.exit(main())
