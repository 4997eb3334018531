"""
Pump states and the per-transaction session context.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum, auto
from typing import Optional

from fuel_dispenser.core.value_objects import FuelGrade, FuelingUpdate


# =============================================================================
# Pump States
# =============================================================================


class PumpState(Enum):
    """States of the dispenser controller."""

    OFF = auto()                        # Just started, screen shows unavailable
    STANDBY = auto()                    # Waiting for a price list
    IDLE = auto()                       # Waiting for a card tap
    WAITING_FOR_AUTHORIZATION = auto()  # Bank request in flight
    NO_AUTHORIZATION = auto()           # Card refused, showing failure
    SELECT_GAS = auto()                 # Grade menu shown
    READY_TO_PUMP = auto()              # Waiting for nozzle removal
    FUELING = auto()                    # Pump running
    PAUSED = auto()                     # Nozzle returned mid-transaction
    TRANSACTION_COMPLETE = auto()       # Charged, showing receipt

    @property
    def has_session(self) -> bool:
        """Check if a customer session is meaningful in this state."""
        return self not in (PumpState.OFF, PumpState.STANDBY, PumpState.IDLE)


# =============================================================================
# Session Context
# =============================================================================


@dataclass
class SessionContext:
    """
    Data of the transaction in progress.

    Cleared on every return to IDLE.
    """

    card_number: Optional[str] = None
    fuel_grade: Optional[FuelGrade] = None
    gallons: Decimal = field(default_factory=lambda: Decimal("0"))
    total_cost: Decimal = field(default_factory=lambda: Decimal("0"))

    def apply(self, update: FuelingUpdate) -> None:
        """Overwrite the running totals with a flow meter reading."""
        self.gallons = update.gallons
        self.total_cost = update.total_cost

    def reset(self) -> None:
        """Reset the session context."""
        self.card_number = None
        self.fuel_grade = None
        self.apply(FuelingUpdate.zero())

    @property
    def masked_card(self) -> Optional[str]:
        """Card number with all but the last four digits hidden."""
        if not self.card_number:
            return None
        return "*" * max(len(self.card_number) - 4, 0) + self.card_number[-4:]
