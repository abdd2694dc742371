"""Single-slot termination mailbox between a requester and a relay worker."""

from __future__ import annotations

import enum
import logging
import queue

__all__ = ["TerminationChannel", "Message"]

logger = logging.getLogger(__name__)

class Message(enum.Enum):
    TERMINATE = "terminate"
    CLOSE = "close"

class TerminationChannel:
    """Capacity-1 channel carrying at most one pending message.

    ``send()`` never blocks: when a message is already pending the new one is
    dropped and the rejection is logged.
    """

    def __init__(self, label: str = "") -> None:
        self.label = label
        self._queue: queue.Queue[Message] = queue.Queue(maxsize=1)

    def send(self) -> bool:
        """Post a termination request.

        Returns:
            True if the request was queued, False if one was already pending
        """
        try:
            self._queue.put_nowait(Message.TERMINATE)
            return True
        except queue.Full:
            logger.warning(f"error sending stop signal: {self.label} channel is full")
            return False

    def close(self) -> None:
        """Wake an idle receiver so it can exit."""
        try:
            self._queue.put_nowait(Message.CLOSE)
        except queue.Full:
            # A pending message will wake the receiver instead
            logger.debug(f"{self.label} channel already has a pending message")

    def receive(self) -> Message:
        """Block until a message arrives."""
        return self._queue.get()

