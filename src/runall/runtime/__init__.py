"""Process supervision runtime.

Provides the building blocks the supervisor is made of:
- LineForwarder / ConsoleSink: prefixed, line-atomic output forwarding
- TerminationChannel: single-slot stop-request mailbox
- ChildHandle: one spawned command with its forwarders and signal relay
"""

from __future__ import annotations

from .channel import TerminationChannel
from .child import ChildHandle, ChildState
from .forwarder import ConsoleSink, LineForwarder, iter_lines

__all__ = [
    "ChildHandle",
    "ChildState",
    "ConsoleSink",
    "LineForwarder",
    "TerminationChannel",
    "iter_lines",
]
