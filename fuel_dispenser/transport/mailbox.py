"""
Inbound mailboxes for line channels.

Two buffering policies are offered and selected per peripheral:

- FifoMailbox keeps every message, oldest first. Used for
  request/response and event peripherals (bank, card reader, hose).
- LatestMailbox keeps only the most recent message and clears it when
  read. Used for continuously updating telemetry (flow meter).

Both are filled by a channel's reader task and drained by the
controller on the same event loop.
"""

import asyncio
from typing import Optional, Union

from fuel_dispenser.core.interfaces import MailboxMode
from fuel_dispenser.core.value_objects import Message


class FifoMailbox:
    """Unbounded first-in first-out mailbox."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Message] = asyncio.Queue()

    def put(self, message: Message) -> None:
        """Append a message."""
        self._queue.put_nowait(message)

    def take(self) -> Optional[Message]:
        """Remove and return the oldest message, or None if empty."""
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None

    async def wait(self, timeout: float) -> Optional[Message]:
        """
        Wait for the oldest message.

        Args:
            timeout: Maximum time to wait in seconds.

        Returns:
            The message, or None if nothing arrived in time.
        """
        message = self.take()
        if message is not None or timeout <= 0:
            return message
        try:
            return await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

    def clear(self) -> int:
        """Discard all buffered messages and return how many were dropped."""
        dropped = 0
        while self.take() is not None:
            dropped += 1
        return dropped

    def __len__(self) -> int:
        return self._queue.qsize()


class LatestMailbox:
    """Single-slot mailbox: a new message replaces any unread one."""

    def __init__(self) -> None:
        self._slot: Optional[Message] = None
        self._ready = asyncio.Event()

    def put(self, message: Message) -> None:
        """Store a message, overwriting any unread one."""
        self._slot = message
        self._ready.set()

    def take(self) -> Optional[Message]:
        """Return the stored message and clear the slot."""
        message, self._slot = self._slot, None
        self._ready.clear()
        return message

    async def wait(self, timeout: float) -> Optional[Message]:
        """Wait for a message to be stored, up to ``timeout`` seconds."""
        message = self.take()
        if message is not None or timeout <= 0:
            return message
        try:
            await asyncio.wait_for(self._ready.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return None
        return self.take()

    def clear(self) -> int:
        return 0 if self.take() is None else 1

    def __len__(self) -> int:
        return 0 if self._slot is None else 1


Mailbox = Union[FifoMailbox, LatestMailbox]


def create_mailbox(mode: Union[MailboxMode, str]) -> Mailbox:
    """
    Create a mailbox for the given buffering mode.

    Args:
        mode: MailboxMode or its string value.

    Returns:
        A fresh mailbox.
    """
    if MailboxMode(mode) is MailboxMode.LATEST:
        return LatestMailbox()
    return FifoMailbox()
