"""
Value Objects for the fuel dispenser controller.

Immutable objects that represent values exchanged with peripherals.
Value objects are compared by value, not by identity.
"""

import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum, auto
from typing import Final, Optional

from .exceptions import MalformedMessageError


# Some peripherals terminate their lines with "//" in addition to the newline.
LEGACY_TERMINATOR: Final[str] = "//"


# =============================================================================
# Enums
# =============================================================================


class AuthorizationStatus(Enum):
    """Outcome of a card authorization request."""

    APPROVED = auto()
    DECLINED = auto()
    ERROR = auto()  # Unknown reply or no reply in time


class HoseEvent(Enum):
    """Events reported by the hose sensor."""

    REMOVED = "removed"      # Nozzle taken out of the holster
    ATTACHED = "attached"    # Nozzle put back into the holster
    TANK_FULL = "tank-full"  # Vehicle tank is full

    @classmethod
    def from_token(cls, token: str) -> Optional["HoseEvent"]:
        """Map a wire token to an event, or None if unknown."""
        try:
            return cls(token)
        except ValueError:
            return None


# =============================================================================
# Message Value Object
# =============================================================================


@dataclass(frozen=True)
class Message:
    """
    One line of protocol text.

    Attributes:
        content: Line content without the trailing newline.
        device: Optional tag naming the peripheral the line came from.
            It does not take part in equality.
    """

    content: str
    device: Optional[str] = field(default=None, compare=False)

    @classmethod
    def from_wire(cls, line: str, device: Optional[str] = None) -> "Message":
        """
        Build a message from a line read off the wire.

        Args:
            line: Raw line, possibly still carrying its terminator.
            device: Optional source tag.

        Returns:
            Message instance.
        """
        return cls(content=line.rstrip("\r\n"), device=device)

    def to_wire(self) -> str:
        """Serialize to the wire form (content followed by a newline)."""
        return f"{self.content}\n"

    @property
    def body(self) -> str:
        """Content without surrounding whitespace or legacy terminator."""
        text = self.content.strip()
        if text.endswith(LEGACY_TERMINATOR):
            text = text[: -len(LEGACY_TERMINATOR)].rstrip()
        return text

    def __str__(self) -> str:
        return self.content


# =============================================================================
# Fuel Value Objects
# =============================================================================


@dataclass(frozen=True)
class FuelGrade:
    """
    A fuel grade offered by the station.

    Attributes:
        name: Display name (e.g. "Regular").
        price_per_gallon: Price per gallon in dollars.
        octane_rating: Octane rating (e.g. 87).
    """

    name: str
    price_per_gallon: Decimal
    octane_rating: int

    @classmethod
    def from_wire(cls, entry: str) -> "FuelGrade":
        """
        Parse one ``name,octane,price`` price-list entry.

        Args:
            entry: A single entry of the station price list.

        Returns:
            FuelGrade instance.

        Raises:
            MalformedMessageError: If the entry is not well formed.
        """
        parts = [part.strip() for part in entry.split(",")]
        if len(parts) != 3 or not parts[0]:
            raise MalformedMessageError(
                f"Price entry must have 3 fields: {entry!r}", payload=entry
            )

        name, octane, price = parts
        try:
            grade = cls(
                name=name,
                price_per_gallon=Decimal(price),
                octane_rating=int(octane),
            )
        except (ValueError, InvalidOperation) as e:
            raise MalformedMessageError(
                f"Invalid price entry {entry!r}: {e}", payload=entry
            ) from e

        if not grade.price_per_gallon.is_finite() or grade.price_per_gallon < 0:
            raise MalformedMessageError(f"Invalid price in entry {entry!r}", payload=entry)
        return grade

    def __str__(self) -> str:
        return f"{self.name} ({self.octane_rating}) ${self.price_per_gallon:.2f}/gal"


@dataclass(frozen=True)
class FuelingUpdate:
    """
    A flow meter reading taken during fueling.

    Attributes:
        gallons: Volume dispensed so far.
        total_cost: Cost of the volume dispensed so far.
    """

    gallons: Decimal
    total_cost: Decimal

    GALLONS_PATTERN = re.compile(r"(\d+\.\d+)\s+gal")
    COST_PATTERN = re.compile(r"\$(\d+\.\d+)")

    @classmethod
    def from_wire(cls, text: str) -> "FuelingUpdate":
        """
        Extract gallons and cost from a flow meter screen fragment.

        The flow meter reports fragments such as
        ``t:3/s:3/st:2/c:0/1.234 gal;t:5/s:3/st:2/c:0/$5.67;``.

        Raises:
            MalformedMessageError: If either token is missing.
        """
        gallons = cls.GALLONS_PATTERN.search(text)
        cost = cls.COST_PATTERN.search(text)
        if gallons is None or cost is None:
            raise MalformedMessageError(
                f"No fueling totals in flow meter message: {text!r}", payload=text
            )
        return cls(gallons=Decimal(gallons.group(1)), total_cost=Decimal(cost.group(1)))

    @classmethod
    def zero(cls) -> "FuelingUpdate":
        """Totals before any fuel has been dispensed."""
        return cls(gallons=Decimal("0"), total_cost=Decimal("0"))
