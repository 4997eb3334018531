"""
Interfaces (Protocols) for the fuel dispenser controller.

Defines the channel contract that device managers depend on, using
Python's Protocol for structural subtyping. Managers pick the subset of
operations they need; nothing inherits from a base port class.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional, Protocol, runtime_checkable

from .value_objects import Message


# =============================================================================
# Enums
# =============================================================================


class ChannelRole(str, Enum):
    """Which side of the TCP connection a channel plays."""

    SERVER = "server"  # Listen and accept a single client
    CLIENT = "client"  # Dial the peer


class ConnectionState(str, Enum):
    """Connection lifecycle of a channel."""

    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSED = "closed"


class MailboxMode(str, Enum):
    """How a channel buffers inbound messages."""

    FIFO = "fifo"      # Every message, oldest first
    LATEST = "latest"  # Only the most recent message, cleared on read


# =============================================================================
# Channel Interface
# =============================================================================


@runtime_checkable
class MessageChannel(Protocol):
    """Protocol for a two-way line channel to one peripheral."""

    @property
    def name(self) -> str:
        """Get the channel name."""
        ...

    @property
    def is_connected(self) -> bool:
        """Check if a peer is currently connected."""
        ...

    async def start(self) -> None:
        """Start connecting in the background."""
        ...

    def send(self, message: Message) -> bool:
        """
        Queue a message for transmission.

        Returns:
            True if queued, False if dropped because no peer is connected.
        """
        ...

    def try_receive(self) -> Optional[Message]:
        """Take the next buffered inbound message without waiting."""
        ...

    async def receive(self, timeout: float) -> Optional[Message]:
        """Wait up to ``timeout`` seconds for an inbound message."""
        ...

    async def close(self) -> None:
        """Release the channel; safe to call more than once."""
        ...
