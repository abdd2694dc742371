"""Line forwarding from child output streams to the shared console.

Each child has two forwarders (stdout and stderr), each running on its own
thread. A forwarder reads its stream incrementally, splits it into lines and
writes ``prefix + b" " + line`` to a shared ``ConsoleSink``. The sink performs
one locked write per line, so output from different commands interleaves only
at line granularity.
"""

from __future__ import annotations

import logging
import sys
import threading
from collections.abc import Iterator
from typing import BinaryIO

__all__ = [
    "ConsoleSink",
    "LineForwarder",
    "iter_lines",
]

logger = logging.getLogger(__name__)


class ConsoleSink:
    """Shared binary output that accepts whole prefixed lines.

    Example:
        sink = ConsoleSink()  # writes to sys.stdout.buffer
        sink.write_line("[web]", b"listening\\n")
    """

    def __init__(self, stream: BinaryIO | None = None) -> None:
        self._stream = stream if stream is not None else sys.stdout.buffer
        self._lock = threading.Lock()

    @property
    def stream(self) -> BinaryIO:
        return self._stream

    def write_line(self, prefix: str, line: bytes) -> None:
        """Write one prefixed line as a single write call."""
        data = prefix.encode("utf-8") + b" " + line
        with self._lock:
            self._stream.write(data)
            self._stream.flush()


def iter_lines(stream: BinaryIO, flush_partial: bool = False) -> Iterator[bytes]:
    """Yield complete lines from ``stream`` until end of data.

    Lines keep their own trailing newline. A final fragment without a newline
    is dropped unless ``flush_partial`` is set, in which case it is yielded
    with a newline appended.

    Read errors propagate to the caller.
    """
    while True:
        line = stream.readline()
        if not line:
            return
        if line.endswith(b"\n"):
            yield line
            continue
        # readline() only returns without a newline at end of stream
        if flush_partial:
            yield line + b"\n"
        else:
            logger.debug(f"Dropping unterminated final line ({len(line)} bytes)")
        return


class LineForwarder:
    """Forward one child stream to a ConsoleSink on a background thread.

    Attributes:
        name: Thread name, e.g. ``"cmd-1-stdout"``
        lines_forwarded: Number of lines written so far
    """

    def __init__(
        self,
        stream: BinaryIO,
        prefix: str,
        sink: ConsoleSink,
        *,
        name: str = "forwarder",
        flush_partial: bool = False,
    ) -> None:
        self.name = name
        self.lines_forwarded = 0
        self._stream = stream
        self._prefix = prefix
        self._sink = sink
        self._flush_partial = flush_partial
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the forwarder to finish.

        Returns:
            True if the forwarder has finished
        """
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self) -> None:
        try:
            for line in iter_lines(self._stream, self._flush_partial):
                self._sink.write_line(self._prefix, line)
                self.lines_forwarded += 1
        except (OSError, ValueError) as e:
            logger.error(f"error reading line: {e} ({self.name})")
        finally:
            logger.debug(f"Forwarder {self.name} finished after {self.lines_forwarded} line(s)")
