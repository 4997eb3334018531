"""
Transport layer - Reconnecting line channels to peripherals.

Contains:
- Channel (server/client roles, reader/writer tasks)
- Inbound mailboxes (FIFO and latest-value)
- Wire constants
"""

from .channel import Channel
from .mailbox import (
    FifoMailbox,
    LatestMailbox,
    Mailbox,
    create_mailbox,
)


__all__ = [
    "Channel",
    "FifoMailbox",
    "LatestMailbox",
    "Mailbox",
    "create_mailbox",
]
