"""
Timer Manager - One shared one-shot deadline for the controller.

The controller arms the timer on entering a timed state and polls it on
every tick. Once the deadline passes the timer stays timed out until it
is reset or armed again.
"""

import time
from typing import Callable, Optional

from fuel_dispenser.core.exceptions import InvalidDurationError


class TimerManager:
    """
    Non-blocking one-shot timer.

    Example:
        timer = TimerManager()
        timer.set_timer(15)
        ...
        if timer.is_timed_out():
            timer.reset_timer()
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        """
        Initialize the timer.

        Args:
            clock: Monotonic clock returning seconds.
        """
        self._clock = clock
        self._deadline: Optional[float] = None
        self._timed_out = False

    def set_timer(self, seconds: float) -> None:
        """
        Arm (or re-arm) the timer.

        Args:
            seconds: Duration until the timer fires.

        Raises:
            InvalidDurationError: If the duration is not positive.
        """
        if seconds <= 0:
            raise InvalidDurationError(
                f"Timer duration must be positive, got {seconds}",
                details={"seconds": seconds},
            )
        self._deadline = self._clock() + seconds
        self._timed_out = False

    def is_timed_out(self) -> bool:
        """Check if the armed deadline has passed. Sticky until reset."""
        if not self._timed_out and self._deadline is not None:
            if self._clock() >= self._deadline:
                self._timed_out = True
                self._deadline = None
        return self._timed_out

    def reset_timer(self) -> None:
        """Disarm the timer and clear the timed-out flag."""
        self._deadline = None
        self._timed_out = False

    @property
    def is_running(self) -> bool:
        """Check if the timer is armed and has not fired yet."""
        return self._deadline is not None and not self.is_timed_out()

    @property
    def remaining(self) -> float:
        """Seconds until the deadline, 0 if not running."""
        if not self.is_running:
            return 0.0
        return max(self._deadline - self._clock(), 0.0)
