"""
Core module - Foundation layer with no I/O.

Contains:
- Exceptions
- Interfaces (Protocols)
- Value Objects
"""

from .exceptions import (
    DispenserError,
    DeviceError,
    ChannelClosedError,
    ProtocolError,
    MalformedMessageError,
    InvalidDurationError,
    RepositoryError,
    RedisConnectionError,
)
from .interfaces import (
    ChannelRole,
    ConnectionState,
    MailboxMode,
    MessageChannel,
)
from .value_objects import (
    AuthorizationStatus,
    FuelGrade,
    FuelingUpdate,
    HoseEvent,
    Message,
)


__all__ = [
    # Exceptions
    "DispenserError",
    "DeviceError",
    "ChannelClosedError",
    "ProtocolError",
    "MalformedMessageError",
    "InvalidDurationError",
    "RepositoryError",
    "RedisConnectionError",
    # Interfaces
    "ChannelRole",
    "ConnectionState",
    "MailboxMode",
    "MessageChannel",
    # Value Objects
    "AuthorizationStatus",
    "FuelGrade",
    "FuelingUpdate",
    "HoseEvent",
    "Message",
]
