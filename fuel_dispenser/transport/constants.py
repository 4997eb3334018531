"""
Line Channel Constants.

Timing and framing values for the newline-delimited TCP channels used
to talk to every peripheral.
"""

from typing import Final


# Framing
DEFAULT_ENCODING: Final[str] = "utf-8"
MAX_LINE_LENGTH: Final[int] = 64 * 1024  # Longer lines are a protocol fault

# Timing
DEFAULT_RECONNECT_DELAY_S: Final[float] = 3.0  # Backoff after a failure or drop
DEFAULT_CONNECT_TIMEOUT_S: Final[float] = 5.0  # Dial attempt budget before backing off
CLOSE_TIMEOUT_S: Final[float] = 1.0  # Upper bound for a graceful socket close
