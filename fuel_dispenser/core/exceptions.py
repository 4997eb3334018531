"""
Custom exceptions for the fuel dispenser controller.

Provides a hierarchy of typed exceptions for better error handling
and more informative error messages.
"""

from typing import Any, Optional


class DispenserError(Exception):
    """Base exception for all fuel dispenser errors."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        """
        Initialize the exception.

        Args:
            message: Human-readable error message.
            code: Optional error code for programmatic handling.
            details: Optional additional error details.
        """
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for status reporting."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


# =============================================================================
# Device Errors
# =============================================================================


class DeviceError(DispenserError):
    """Base exception for peripheral-related errors."""

    def __init__(
        self,
        message: str,
        device_name: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.device_name = device_name
        if device_name:
            self.details["device"] = device_name


class ChannelClosedError(DeviceError):
    """Operation attempted on a channel that has been closed."""

    pass


class ProtocolError(DeviceError):
    """Peer sent data that violates the line protocol."""

    pass


class MalformedMessageError(ProtocolError):
    """A wire payload could not be parsed."""

    def __init__(
        self,
        message: str,
        payload: str = "",
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.payload = payload
        self.details["payload"] = payload


# =============================================================================
# Controller Errors
# =============================================================================


class InvalidDurationError(DispenserError):
    """Timer armed with a non-positive duration."""

    pass


# =============================================================================
# Repository Errors
# =============================================================================


class RepositoryError(DispenserError):
    """Base exception for repository errors."""

    pass


class RedisConnectionError(RepositoryError):
    """Error connecting to Redis."""

    pass
