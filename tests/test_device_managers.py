"""
Unit tests for the device managers.

Managers run against scripted in-memory channels.
"""

from decimal import Decimal

import pytest

from fuel_dispenser.core.value_objects import AuthorizationStatus, FuelGrade, HoseEvent
from fuel_dispenser.domain.device_managers import (
    BankManager,
    CustomerManager,
    GasStationManager,
    PumpAssemblyManager,
)
from fuel_dispenser.infrastructure.settings import Settings
from fuel_dispenser.transport.channel import Channel
from fuel_dispenser.core.interfaces import MailboxMode


REGULAR = FuelGrade("Regular", Decimal("4.59"), 87)
PREMIUM = FuelGrade("Premium", Decimal("4.99"), 91)


# =============================================================================
# Bank Manager Tests
# =============================================================================


class TestBankManager:
    """Tests for BankManager."""

    @pytest.mark.asyncio
    async def test_authorize_approved(self, fake_channel):
        """Test that Approve maps to APPROVED."""
        bank = fake_channel("bank", responder=lambda m: ["Approve"])
        manager = BankManager(bank, response_timeout=0.1)

        status = await manager.authorize("4111111111111111")

        assert status is AuthorizationStatus.APPROVED
        assert bank.sent_contents == ["Authorize:4111111111111111"]

    @pytest.mark.asyncio
    async def test_authorize_declined(self, fake_channel):
        bank = fake_channel("bank", responder=lambda m: ["Decline//"])
        manager = BankManager(bank, response_timeout=0.1)
        assert await manager.authorize("4111111111111119") is AuthorizationStatus.DECLINED

    @pytest.mark.asyncio
    async def test_authorize_unknown_reply_is_error(self, fake_channel):
        bank = fake_channel("bank", responder=lambda m: ["Maybe"])
        manager = BankManager(bank, response_timeout=0.1)
        assert await manager.authorize("4111111111111111") is AuthorizationStatus.ERROR

    @pytest.mark.asyncio
    async def test_authorize_no_reply_is_error(self, fake_channel):
        """Test that silence becomes ERROR, not an exception."""
        manager = BankManager(fake_channel("bank"), response_timeout=0.05)
        assert await manager.authorize("4111111111111111") is AuthorizationStatus.ERROR

    @pytest.mark.asyncio
    async def test_authorize_disconnected_is_error(self, fake_channel):
        bank = fake_channel("bank", connected=False)
        manager = BankManager(bank, response_timeout=0.05)
        assert await manager.authorize("4111111111111111") is AuthorizationStatus.ERROR
        assert bank.sent == []

    @pytest.mark.asyncio
    async def test_authorize_drains_stale_replies(self, fake_channel):
        """Test that a reply left over from an earlier request is ignored."""
        bank = fake_channel("bank", responder=lambda m: ["Decline"])
        bank.push("Approve")
        manager = BankManager(bank, response_timeout=0.1)
        assert await manager.authorize("4111111111111111") is AuthorizationStatus.DECLINED

    @pytest.mark.asyncio
    async def test_charge_success(self, fake_channel):
        """Test the charge request format and confirmation."""
        bank = fake_channel(
            "bank", responder=lambda m: ["Charged:" + m.content.split(":", 1)[1]]
        )
        manager = BankManager(bank, response_timeout=0.1)

        assert await manager.charge("4111111111111111", Decimal("12.5")) is True
        assert bank.sent_contents == ["Charge:4111111111111111,12.50"]

    @pytest.mark.asyncio
    async def test_charge_declined_or_silent(self, fake_channel):
        declined = BankManager(fake_channel("bank", responder=lambda m: ["Decline"]), 0.1)
        silent = BankManager(fake_channel("bank"), 0.05)
        assert await declined.charge("4111111111111111", Decimal("250")) is False
        assert await silent.charge("4111111111111111", Decimal("5")) is False

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, fake_channel):
        """Test that every channel is closed exactly once."""
        bank = fake_channel("bank")
        manager = BankManager(bank)
        await manager.close()
        await manager.close()
        assert bank.close_count == 1


# =============================================================================
# Customer Manager Tests
# =============================================================================


class TestCustomerManager:
    """Tests for CustomerManager."""

    @pytest.fixture
    def channels(self, fake_channel):
        return fake_channel("card_reader"), fake_channel("screen")

    @pytest.fixture
    def manager(self, channels):
        return CustomerManager(*channels)

    @pytest.mark.asyncio
    async def test_card_tap(self, manager, channels):
        """Test reading a card number."""
        card_reader, _ = channels
        card_reader.push("4111111111111111//")
        assert await manager.wait_for_card_tap(0.1) == "4111111111111111"

    @pytest.mark.asyncio
    async def test_card_tap_error_and_timeout(self, manager, channels):
        card_reader, _ = channels
        card_reader.push("error")
        assert await manager.wait_for_card_tap(0.1) is None
        assert await manager.wait_for_card_tap(0.01) is None

    def test_notify_card_reader(self, manager, channels):
        card_reader, _ = channels
        manager.notify_card_reader(True)
        manager.notify_card_reader(False)
        manager.notify_transaction_complete()
        assert card_reader.sent_contents == ["approved", "declined", "complete"]

    @pytest.mark.asyncio
    async def test_clear_pending(self, manager, channels):
        """Test that queued taps and presses are discarded."""
        card_reader, screen = channels
        card_reader.push("4111111111111111", "4111111111111111")
        screen.push("b:8", "b:8")
        manager.clear_pending()
        assert await manager.wait_for_card_tap(0.01) is None
        assert await manager.wait_for_button_press(0.01) is None

    @pytest.mark.asyncio
    async def test_button_press(self, manager, channels):
        """Test that b:4 yields 4 and other screen messages are skipped."""
        _, screen = channels
        screen.push("t:01/hello;", "b:4//")
        assert await manager.wait_for_button_press(0.1) == "4"

    @pytest.mark.asyncio
    async def test_button_press_none_without_match(self, manager, channels):
        _, screen = channels
        screen.push("noise")
        assert await manager.wait_for_button_press(0.05) is None
        assert screen.try_receive() is None

    def test_grade_selection_layout(self, manager, channels):
        """Test the grade menu markup."""
        _, screen = channels
        shown = manager.show_grade_selection([REGULAR, PREMIUM])

        assert shown == [REGULAR, PREMIUM]
        assert screen.sent_contents == [
            "t:01/s:3/f:2/c:0/Select Fuel Grade;"
            "t:2/s:2/f:1/c:3/Regular ($4.59);b:2/m;"
            "t:3/s:2/f:1/c:3/Premium ($4.99);b:3/m;"
            "t:8/s:1/f:1/c:0/Cancel;b:8/x;"
        ]

    def test_grade_selection_is_capped(self, manager):
        grades = [FuelGrade(f"G{i}", Decimal("1.00"), 80 + i) for i in range(8)]
        assert len(manager.show_grade_selection(grades)) == 6

    def test_pumping_layout(self, manager, channels):
        _, screen = channels
        manager.show_pumping("Regular", Decimal("1.5"), Decimal("6.886"))
        content = screen.sent_contents[-1]
        assert "t:0/s:2/f:1/c:0/Fueling: Regular;" in content
        assert "1.500 gal;" in content
        assert "$6.89;" in content
        assert content.endswith("b:8/x;")

    def test_messages(self, manager, channels):
        _, screen = channels
        manager.show_unavailable()
        manager.show_welcome()
        assert screen.sent_contents == [
            "t:45/s:2/f:2/c:0/Pump Unavailable;",
            "t:01/s:3/f:2/c:0/Welcome!;t:45/s:2/f:1/c:0/Please tap your card to begin.;",
        ]


# =============================================================================
# Gas Station Manager Tests
# =============================================================================


class TestGasStationManager:
    """Tests for GasStationManager."""

    @pytest.mark.asyncio
    async def test_get_prices(self, fake_channel):
        """Test parsing the station price list."""
        station = fake_channel(
            "station",
            responder=lambda m: ["Regular,87,4.59;Premium,91,4.99;Super,93,5.19"],
        )
        manager = GasStationManager(station, response_timeout=0.1)

        grades = await manager.get_available_fuel_grades()

        assert station.sent_contents == ["get-prices"]
        assert [g.name for g in grades] == ["Regular", "Premium", "Super"]
        assert grades[2].price_per_gallon == Decimal("5.19")

    @pytest.mark.asyncio
    async def test_malformed_entries_skipped(self, fake_channel):
        station = fake_channel(
            "station", responder=lambda m: ["Regular,87,4.59;broken;Super,xx,5.19;"]
        )
        manager = GasStationManager(station, response_timeout=0.1)
        grades = await manager.get_available_fuel_grades()
        assert grades == [REGULAR]

    @pytest.mark.asyncio
    async def test_timeout_returns_empty(self, fake_channel):
        manager = GasStationManager(fake_channel("station"), response_timeout=0.05)
        assert await manager.get_available_fuel_grades() == []

    @pytest.mark.asyncio
    async def test_unreachable_returns_empty(self, fake_channel):
        manager = GasStationManager(fake_channel("station", connected=False))
        assert await manager.get_available_fuel_grades() == []

    def test_log_transaction(self, fake_channel):
        """Test the sale log record format."""
        station = fake_channel("station")
        GasStationManager(station).log_transaction(
            "4111111111111111", "Regular", Decimal("2"), Decimal("9.18")
        )
        assert station.sent_contents == [
            "log-sale:card=4111111111111111,grade=Regular,gallons=2.000,cost=9.18"
        ]


# =============================================================================
# Pump Assembly Manager Tests
# =============================================================================


class TestPumpAssemblyManager:
    """Tests for PumpAssemblyManager."""

    @pytest.fixture
    def channels(self, fake_channel):
        return (
            fake_channel("pump"),
            fake_channel("flow_meter", latest=True),
            fake_channel("hose"),
        )

    @pytest.fixture
    def manager(self, channels):
        return PumpAssemblyManager(*channels)

    def test_start_pause_stop_commands(self, manager, channels):
        """Test the commands sent to each pump peripheral."""
        pump, flow_meter, hose = channels

        manager.start_pumping(REGULAR)
        manager.pause_pumping()
        manager.stop_pumping()
        manager.reset_flow_meter()

        assert pump.sent_contents == ["on", "off", "off"]
        assert flow_meter.sent_contents == [
            "CMD:START ppg=4.59 gas=Regular",
            "CMD:PAUSE",
            "CMD:PAUSE",
            "CMD:RESET",
        ]
        assert hose.sent_contents == [
            "CMD:FUELING:START",
            "CMD:FUELING:PAUSE",
            "CMD:FUELING:STOP",
        ]

    def test_fueling_update_latest_only(self, manager, channels):
        """Test that only the newest flow reading is returned, once."""
        _, flow_meter, _ = channels
        flow_meter.push(
            "t:3/s:3/st:2/c:0/1.000 gal;t:5/s:3/st:2/c:0/$4.59;",
            "t:3/s:3/st:2/c:0/2.000 gal;t:5/s:3/st:2/c:0/$9.18;",
        )
        update = manager.get_fueling_update()
        assert update.gallons == Decimal("2.000")
        assert update.total_cost == Decimal("9.18")
        assert manager.get_fueling_update() is None

    def test_fueling_update_garbage_ignored(self, manager, channels):
        _, flow_meter, _ = channels
        flow_meter.push("t:2.5/s:2/st:1/c:0/;")
        assert manager.get_fueling_update() is None

    def test_hose_events(self, manager, channels):
        """Test that unknown hose tokens are skipped."""
        _, _, hose = channels
        hose.push("wiggle", "removed//", "TANK-FULL")
        assert manager.get_hose_event() is HoseEvent.REMOVED
        assert manager.get_hose_event() is HoseEvent.TANK_FULL
        assert manager.get_hose_event() is None

    def test_clear_pending(self, manager, channels):
        _, flow_meter, hose = channels
        hose.push("attached")
        flow_meter.push("t:3/s:3/st:2/c:0/0.000 gal;t:5/s:3/st:2/c:0/$0.00;")
        manager.clear_pending()
        assert manager.get_hose_event() is None
        assert manager.get_fueling_update() is None

    @pytest.mark.asyncio
    async def test_start_and_close(self, manager, channels):
        await manager.start()
        await manager.close()
        await manager.close()
        assert [c.start_count for c in channels] == [1, 1, 1]
        assert [c.close_count for c in channels] == [1, 1, 1]
        assert manager.is_connected is True


# =============================================================================
# Construction From Settings
# =============================================================================


class TestFromSettings:
    """Tests for building managers from settings."""

    def test_pump_assembly_channels(self):
        """Test that the flow meter keeps only the latest reading."""
        manager = PumpAssemblyManager.from_settings(Settings())
        channels = manager.channels
        assert all(isinstance(c, Channel) for c in channels.values())
        assert channels["flow_meter"].mailbox_mode is MailboxMode.LATEST
        assert channels["hose"].mailbox_mode is MailboxMode.FIFO

    def test_bank_endpoint(self):
        manager = BankManager.from_settings(Settings())
        bank = manager.channels["bank"]
        assert bank.name == "bank"
        assert "1238" in repr(bank)
