"""
Device Managers - Domain-level access to the dispenser peripherals.

Each manager hides the wire protocol of one peripheral group behind
plain async methods. Managers never raise on timeouts or peer faults;
they return a typed "no answer" (None, ERROR, [] or False) and log it.

Managers:
- BankManager: card authorization and final charge
- CustomerManager: card reader and customer screen
- GasStationManager: price list and sale log
- PumpAssemblyManager: pump motor, flow meter and hose sensor
"""

from __future__ import annotations

import asyncio
from decimal import Decimal
from typing import Callable, Optional, Sequence, TypeVar

from fuel_dispenser.core.exceptions import MalformedMessageError
from fuel_dispenser.core.interfaces import MailboxMode, MessageChannel
from fuel_dispenser.core.value_objects import (
    AuthorizationStatus,
    FuelGrade,
    FuelingUpdate,
    HoseEvent,
    Message,
)
from fuel_dispenser.infrastructure.settings import Settings
from fuel_dispenser.loggers import logger
from fuel_dispenser.transport.channel import Channel

from .screen_markup import (
    ACTION_CELL,
    MAX_GRADE_BUTTONS,
    MESSAGE_CELL,
    RECEIPT_CELL,
    TITLE_CELL,
    ButtonType,
    CellColor,
    FontSize,
    FontStyle,
    ScreenLayout,
    grade_cell,
    parse_button_press,
)


T = TypeVar("T")


# =============================================================================
# Base Manager
# =============================================================================


class BaseDeviceManager:
    """
    Common lifecycle and receive helpers for device managers.

    Attributes:
        name: Manager name used in logs.
        channels: Channels owned by the manager, by peripheral name.
    """

    def __init__(self, name: str, channels: dict[str, MessageChannel]) -> None:
        """
        Initialize the manager.

        Args:
            name: Manager name.
            channels: Channels owned by the manager.
        """
        self.name = name
        self._channels = channels
        self._closed = False

    @property
    def channels(self) -> dict[str, MessageChannel]:
        """Get the owned channels."""
        return dict(self._channels)

    @property
    def is_connected(self) -> bool:
        """Check if every owned channel has a connected peer."""
        return all(channel.is_connected for channel in self._channels.values())

    async def start(self) -> None:
        """Start every owned channel."""
        for channel in self._channels.values():
            await channel.start()
        logger.info(f"{self.name} started ({', '.join(self._channels)})")

    async def close(self) -> None:
        """Close every owned channel once. Safe to call again."""
        if self._closed:
            return
        self._closed = True
        for channel in self._channels.values():
            await channel.close()
        logger.info(f"{self.name} closed")

    async def _wait_for(
        self,
        channel: MessageChannel,
        timeout: float,
        matcher: Callable[[Message], Optional[T]],
    ) -> Optional[T]:
        """
        Wait for the first message the matcher accepts.

        Messages the matcher rejects (returns None for) are discarded.

        Args:
            channel: Channel to read from.
            timeout: Overall deadline in seconds.
            matcher: Maps a message to a result, or None to skip it.

        Returns:
            The matcher result, or None if the deadline passed.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            remaining = max(deadline - loop.time(), 0.0)
            message = await channel.receive(remaining)
            if message is None:
                return None

            result = matcher(message)
            if result is not None:
                return result

            logger.debug(f"{self.name}: ignoring message from {channel.name}: {message}")
            if remaining <= 0:
                return None

    def _drain(self, channel: MessageChannel) -> int:
        """Discard stale inbound messages before sending a request."""
        dropped = 0
        while channel.try_receive() is not None:
            dropped += 1
        if dropped:
            logger.debug(f"{self.name}: discarded {dropped} stale message(s) from {channel.name}")
        return dropped


# =============================================================================
# Bank
# =============================================================================


class BankManager(BaseDeviceManager):
    """Card authorization and charging against the bank server."""

    AUTHORIZE_PREFIX = "Authorize:"
    CHARGE_PREFIX = "Charge:"
    APPROVE_REPLY = "Approve"
    DECLINE_REPLY = "Decline"
    CHARGED_PREFIX = "Charged:"

    def __init__(self, bank: MessageChannel, response_timeout: float = 5.0) -> None:
        super().__init__("BankManager", {"bank": bank})
        self._bank = bank
        self._response_timeout = response_timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> BankManager:
        bank = Channel.from_endpoint(
            "bank", settings.devices.bank, MailboxMode.FIFO, settings.channel
        )
        return cls(bank, response_timeout=settings.timeouts.bank_response)

    async def authorize(self, card_number: str) -> AuthorizationStatus:
        """
        Ask the bank to authorize a card.

        Args:
            card_number: Card number read from the card reader.

        Returns:
            APPROVED or DECLINED from the bank's reply; ERROR for any
            other reply or if nothing arrived in time.
        """
        self._drain(self._bank)
        if not self._bank.send(Message(f"{self.AUTHORIZE_PREFIX}{card_number}")):
            logger.warning("Bank not connected, authorization request dropped")
            return AuthorizationStatus.ERROR

        reply = await self._wait_for(self._bank, self._response_timeout, lambda m: m)
        if reply is None:
            logger.warning(f"No authorization reply within {self._response_timeout}s")
            return AuthorizationStatus.ERROR

        if reply.body == self.APPROVE_REPLY:
            return AuthorizationStatus.APPROVED
        if reply.body == self.DECLINE_REPLY:
            return AuthorizationStatus.DECLINED

        logger.warning(f"Unexpected authorization reply: {reply}")
        return AuthorizationStatus.ERROR

    async def charge(self, card_number: str, amount: Decimal) -> bool:
        """
        Charge the final amount to the card.

        Args:
            card_number: Authorized card number.
            amount: Amount in dollars.

        Returns:
            True only if the bank confirmed with ``Charged:...``.
        """
        self._drain(self._bank)
        request = Message(f"{self.CHARGE_PREFIX}{card_number},{amount:.2f}")
        if not self._bank.send(request):
            logger.warning("Bank not connected, charge request dropped")
            return False

        reply = await self._wait_for(self._bank, self._response_timeout, lambda m: m)
        if reply is None:
            logger.warning(f"No charge reply within {self._response_timeout}s")
            return False

        charged = reply.body.startswith(self.CHARGED_PREFIX)
        if not charged:
            logger.warning(f"Charge refused: {reply}")
        return charged


# =============================================================================
# Customer (card reader + screen)
# =============================================================================


class CustomerManager(BaseDeviceManager):
    """Card reader input and customer screen output."""

    CARD_ERROR = "error"
    CARD_APPROVED = "approved"
    CARD_DECLINED = "declined"
    CARD_COMPLETE = "complete"

    def __init__(self, card_reader: MessageChannel, screen: MessageChannel) -> None:
        super().__init__("CustomerManager", {"card_reader": card_reader, "screen": screen})
        self._card_reader = card_reader
        self._screen = screen

    @classmethod
    def from_settings(cls, settings: Settings) -> CustomerManager:
        devices = settings.devices
        return cls(
            card_reader=Channel.from_endpoint(
                "card_reader", devices.card_reader, MailboxMode.FIFO, settings.channel
            ),
            screen=Channel.from_endpoint(
                "screen", devices.screen, MailboxMode.FIFO, settings.channel
            ),
        )

    # -------------------------------------------------------------------------
    # Card reader
    # -------------------------------------------------------------------------

    async def wait_for_card_tap(self, timeout: float) -> Optional[str]:
        """
        Wait for a card tap.

        Args:
            timeout: Maximum time to wait in seconds.

        Returns:
            The card number, or None on timeout or card reader error.
        """
        message = await self._card_reader.receive(timeout)
        if message is None:
            return None

        content = message.body
        if content.lower() == self.CARD_ERROR:
            logger.warning("Card reader reported an error")
            return None
        return content

    def notify_card_reader(self, approved: bool) -> None:
        """Tell the card reader whether the card was approved."""
        self._card_reader.send(Message(self.CARD_APPROVED if approved else self.CARD_DECLINED))

    def notify_transaction_complete(self) -> None:
        """Tell the card reader the transaction is over so it can reset."""
        self._card_reader.send(Message(self.CARD_COMPLETE))

    def clear_pending(self) -> None:
        """Discard card taps and button presses left from earlier screens."""
        self._drain(self._card_reader)
        self._drain(self._screen)

    # -------------------------------------------------------------------------
    # Screen input
    # -------------------------------------------------------------------------

    async def wait_for_button_press(self, timeout: float) -> Optional[str]:
        """
        Wait for a ``b:<id>`` button press.

        Other screen messages are discarded.

        Args:
            timeout: Maximum time to wait in seconds.

        Returns:
            The pressed cell id, or None if no press arrived in time.
        """
        return await self._wait_for(
            self._screen, timeout, lambda m: parse_button_press(m.content)
        )

    # -------------------------------------------------------------------------
    # Screen output
    # -------------------------------------------------------------------------

    def _show(self, layout: ScreenLayout) -> None:
        self._screen.send(Message(layout.render()))

    def show_unavailable(self) -> None:
        self.show_message("Pump Unavailable")

    def show_welcome(self) -> None:
        self._show(
            ScreenLayout()
            .text(TITLE_CELL, "Welcome!", FontSize.LARGE, FontStyle.BOLD)
            .text(MESSAGE_CELL, "Please tap your card to begin.")
        )

    def show_authorizing(self) -> None:
        self._show(
            ScreenLayout().text(
                MESSAGE_CELL, "Authorizing, please wait...", FontSize.MEDIUM, FontStyle.ITALIC
            )
        )

    def show_grade_selection(self, grades: Sequence[FuelGrade]) -> list[FuelGrade]:
        """
        Show the grade menu with one button per grade and a cancel button.

        Args:
            grades: Grades offered by the station.

        Returns:
            The grades actually shown, in button order.
        """
        shown = list(grades[:MAX_GRADE_BUTTONS])
        if len(grades) > MAX_GRADE_BUTTONS:
            logger.warning(
                f"Only {MAX_GRADE_BUTTONS} of {len(grades)} fuel grades fit on the screen"
            )

        layout = ScreenLayout().text(TITLE_CELL, "Select Fuel Grade", FontSize.LARGE, FontStyle.BOLD)
        for index, grade in enumerate(shown):
            cell = grade_cell(index)
            layout.text(
                cell,
                f"{grade.name} (${grade.price_per_gallon:.2f})",
                color=CellColor.GREEN,
            ).button(cell, ButtonType.MUTUALLY_EXCLUSIVE)
        layout.text(ACTION_CELL, "Cancel", FontSize.SMALL).button(ACTION_CELL, ButtonType.EXIT)
        self._show(layout)
        return shown

    def show_ready_to_pump(self) -> None:
        self.show_message("Ready to Pump. Please remove nozzle from holster.")

    def show_pumping(self, grade_name: str, gallons: Decimal, cost: Decimal) -> None:
        self._show(
            ScreenLayout()
            .text("0", f"Fueling: {grade_name}")
            .text("2", "Gallons Dispensed:")
            .text("3", f"{gallons:.3f} gal", FontSize.LARGE, FontStyle.BOLD)
            .text("4", "Total Cost:")
            .text("5", f"${cost:.2f}", FontSize.LARGE, FontStyle.BOLD)
            .text(ACTION_CELL, "Stop", FontSize.SMALL, color=CellColor.RED)
            .button(ACTION_CELL, ButtonType.EXIT)
        )

    def show_paused(self, seconds: float) -> None:
        self._show(
            ScreenLayout()
            .text(TITLE_CELL, "Fueling Paused", FontSize.LARGE, FontStyle.BOLD)
            .text(
                MESSAGE_CELL,
                f"Remove the nozzle within {seconds:g} seconds to resume.",
                style=FontStyle.BOLD,
            )
        )

    def show_thank_you(self, gallons: Decimal, cost: Decimal) -> None:
        self._show(
            ScreenLayout()
            .text(TITLE_CELL, "Thank You!", FontSize.LARGE, FontStyle.BOLD, CellColor.PURPLE)
            .text("3", f"Total Gallons: {gallons:.3f}")
            .text("4", f"Total Charge: ${cost:.2f}")
            .text(RECEIPT_CELL, "Your receipt will be emailed to you.")
        )

    def show_message(self, text: str) -> None:
        """Show a single centered message."""
        self._show(ScreenLayout().text(MESSAGE_CELL, text, style=FontStyle.BOLD))


# =============================================================================
# Gas Station
# =============================================================================


class GasStationManager(BaseDeviceManager):
    """Price list retrieval and sale logging against the station server."""

    GET_PRICES = "get-prices"
    LOG_SALE_PREFIX = "log-sale:"
    ENTRY_SEPARATOR = ";"

    def __init__(self, station: MessageChannel, response_timeout: float = 5.0) -> None:
        super().__init__("GasStationManager", {"station": station})
        self._station = station
        self._response_timeout = response_timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> GasStationManager:
        station = Channel.from_endpoint(
            "station", settings.devices.station, MailboxMode.FIFO, settings.channel
        )
        return cls(station, response_timeout=settings.timeouts.station_response)

    async def get_available_fuel_grades(self) -> list[FuelGrade]:
        """
        Fetch the current price list.

        The station answers with ``name,octane,price`` entries separated
        by ``;``. Malformed entries are skipped.

        Returns:
            Parsed grades in station order; empty on timeout.
        """
        self._drain(self._station)
        if not self._station.send(Message(self.GET_PRICES)):
            logger.debug("Station not connected, price request dropped")
            return []

        reply = await self._wait_for(
            self._station, self._response_timeout, lambda m: m.body or None
        )
        if reply is None:
            logger.warning(f"No price list within {self._response_timeout}s")
            return []

        grades: list[FuelGrade] = []
        for entry in reply.split(self.ENTRY_SEPARATOR):
            if not entry.strip():
                continue
            try:
                grades.append(FuelGrade.from_wire(entry))
            except MalformedMessageError as e:
                logger.warning(f"Skipping price entry: {e.message}")
        return grades

    def log_transaction(
        self,
        card_number: str,
        grade_name: str,
        gallons: Decimal,
        cost: Decimal,
    ) -> None:
        """Send the completed sale to the station. No reply is expected."""
        record = (
            f"{self.LOG_SALE_PREFIX}card={card_number},grade={grade_name},"
            f"gallons={gallons:.3f},cost={cost:.2f}"
        )
        if not self._station.send(Message(record)):
            logger.warning(f"Station not connected, sale not logged: {record}")


# =============================================================================
# Pump Assembly
# =============================================================================


class PumpAssemblyManager(BaseDeviceManager):
    """Pump motor, flow meter and hose sensor."""

    PUMP_ON = "on"
    PUMP_OFF = "off"

    FLOW_START = "CMD:START ppg={price:.2f} gas={name}"
    FLOW_PAUSE = "CMD:PAUSE"
    FLOW_RESET = "CMD:RESET"

    HOSE_START = "CMD:FUELING:START"
    HOSE_PAUSE = "CMD:FUELING:PAUSE"
    HOSE_STOP = "CMD:FUELING:STOP"

    def __init__(
        self,
        pump: MessageChannel,
        flow_meter: MessageChannel,
        hose: MessageChannel,
    ) -> None:
        super().__init__(
            "PumpAssemblyManager",
            {"pump": pump, "flow_meter": flow_meter, "hose": hose},
        )
        self._pump = pump
        self._flow_meter = flow_meter
        self._hose = hose

    @classmethod
    def from_settings(cls, settings: Settings) -> PumpAssemblyManager:
        devices = settings.devices
        return cls(
            pump=Channel.from_endpoint("pump", devices.pump, MailboxMode.FIFO, settings.channel),
            flow_meter=Channel.from_endpoint(
                "flow_meter", devices.flow_meter, MailboxMode.LATEST, settings.channel
            ),
            hose=Channel.from_endpoint("hose", devices.hose, MailboxMode.FIFO, settings.channel),
        )

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def start_pumping(self, grade: FuelGrade) -> None:
        """Turn the pump on and start metering at the grade's price."""
        logger.info(f"Start pumping {grade}")
        self._pump.send(Message(self.PUMP_ON))
        self._flow_meter.send(
            Message(self.FLOW_START.format(price=grade.price_per_gallon, name=grade.name))
        )
        self._hose.send(Message(self.HOSE_START))

    def pause_pumping(self) -> None:
        """Turn the pump off, keeping the flow meter totals."""
        logger.info("Pause pumping")
        self._pump.send(Message(self.PUMP_OFF))
        self._flow_meter.send(Message(self.FLOW_PAUSE))
        self._hose.send(Message(self.HOSE_PAUSE))

    def stop_pumping(self) -> None:
        """Turn the pump off for good."""
        logger.info("Stop pumping")
        self._pump.send(Message(self.PUMP_OFF))
        self._flow_meter.send(Message(self.FLOW_PAUSE))
        self._hose.send(Message(self.HOSE_STOP))

    def reset_flow_meter(self) -> None:
        """Zero the flow meter totals for the next customer."""
        self._flow_meter.send(Message(self.FLOW_RESET))

    # -------------------------------------------------------------------------
    # Telemetry
    # -------------------------------------------------------------------------

    def get_fueling_update(self) -> Optional[FuelingUpdate]:
        """
        Get the latest flow meter reading since the previous call.

        Returns:
            The reading, or None if nothing new or it could not be parsed.
        """
        message = self._flow_meter.try_receive()
        if message is None:
            return None
        try:
            return FuelingUpdate.from_wire(message.content)
        except MalformedMessageError as e:
            logger.debug(f"Ignoring flow meter message: {e.message}")
            return None

    def get_hose_event(self) -> Optional[HoseEvent]:
        """
        Get the next hose event, skipping unknown tokens.

        Returns:
            The event, or None if none is pending.
        """
        while True:
            message = self._hose.try_receive()
            if message is None:
                return None
            event = HoseEvent.from_token(message.body.lower())
            if event is not None:
                return event
            logger.debug(f"Ignoring hose message: {message}")

    def clear_pending(self) -> None:
        """Discard stale hose events and flow readings."""
        self._drain(self._hose)
        self._drain(self._flow_meter)
