"""
Main Controller - The dispenser's fueling state machine.

Drives one transaction at a time through the pump states:

    OFF -> STANDBY -> IDLE -> WAITING_FOR_AUTHORIZATION
        -> SELECT_GAS -> READY_TO_PUMP -> FUELING <-> PAUSED
        -> TRANSACTION_COMPLETE -> IDLE

Each state has an entry action, run once on the first tick spent in the
state, and a poll, run on every tick after that. Polls never block for
longer than the input poll interval, so timers are checked every tick.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional

from fuel_dispenser.core.value_objects import AuthorizationStatus, FuelGrade, HoseEvent
from fuel_dispenser.domain.device_managers import (
    BankManager,
    BaseDeviceManager,
    CustomerManager,
    GasStationManager,
    PumpAssemblyManager,
)
from fuel_dispenser.domain.pump_state_machine import PumpState, SessionContext
from fuel_dispenser.domain.screen_markup import ACTION_CELL, grade_index
from fuel_dispenser.domain.timer_manager import TimerManager
from fuel_dispenser.infrastructure.redis_repository import PumpStatus, PumpStatusRepository
from fuel_dispenser.infrastructure.settings import ControllerSettings, Settings
from fuel_dispenser.loggers import logger
from fuel_dispenser.redis_error_handler import redis_error_handler


# Screen texts
UNAVAILABLE_TEXT = "Pump Unavailable"
AUTHORIZATION_FAILED_TEXT = "Authorization Failed"
CHARGE_FAILED_TEXT = "Final charge failed. Please see attendant."


StateHandler = Callable[[], Awaitable[None]]


class MainController:
    """
    Fueling state machine.

    Owns the four device managers, the shared timer and the session of
    the transaction in progress.

    Example:
        controller = MainController.from_settings(get_settings())
        await controller.start()
        try:
            await controller.run()
        finally:
            await controller.shutdown()
    """

    def __init__(
        self,
        bank: BankManager,
        customer: CustomerManager,
        station: GasStationManager,
        pump: PumpAssemblyManager,
        timer: Optional[TimerManager] = None,
        settings: Optional[ControllerSettings] = None,
        input_poll: float = 0.05,
        status_repository: Optional[PumpStatusRepository] = None,
    ) -> None:
        """
        Initialize the controller.

        Args:
            bank: Bank manager.
            customer: Card reader and screen manager.
            station: Gas station manager.
            pump: Pump assembly manager.
            timer: Shared timer (a new one if omitted).
            settings: State machine timing.
            input_poll: Seconds to wait for customer input per tick.
            status_repository: Optional Redis status mirror.
        """
        self._bank = bank
        self._customer = customer
        self._station = station
        self._pump = pump
        self._timer = timer or TimerManager()
        self._settings = settings or ControllerSettings()
        self._input_poll = input_poll
        self._status_repository = status_repository

        self._state = PumpState.OFF
        self._entered = False
        self._session = SessionContext()
        self._fuel_grades: list[FuelGrade] = []
        self._menu: list[FuelGrade] = []
        self._running = False

        self._entry_actions: dict[PumpState, StateHandler] = {
            PumpState.OFF: self._enter_off,
            PumpState.STANDBY: self._no_action,
            PumpState.IDLE: self._enter_idle,
            PumpState.WAITING_FOR_AUTHORIZATION: self._enter_waiting_for_authorization,
            PumpState.NO_AUTHORIZATION: self._enter_no_authorization,
            PumpState.SELECT_GAS: self._enter_select_gas,
            PumpState.READY_TO_PUMP: self._enter_ready_to_pump,
            PumpState.FUELING: self._enter_fueling,
            PumpState.PAUSED: self._enter_paused,
            PumpState.TRANSACTION_COMPLETE: self._enter_transaction_complete,
        }
        self._polls: dict[PumpState, StateHandler] = {
            PumpState.OFF: self._poll_off,
            PumpState.STANDBY: self._poll_standby,
            PumpState.IDLE: self._poll_idle,
            PumpState.WAITING_FOR_AUTHORIZATION: self._no_action,
            PumpState.NO_AUTHORIZATION: self._poll_until_timeout,
            PumpState.SELECT_GAS: self._poll_select_gas,
            PumpState.READY_TO_PUMP: self._poll_ready_to_pump,
            PumpState.FUELING: self._poll_fueling,
            PumpState.PAUSED: self._poll_paused,
            PumpState.TRANSACTION_COMPLETE: self._poll_until_timeout,
        }

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        status_repository: Optional[PumpStatusRepository] = None,
    ) -> MainController:
        """
        Build the controller and every device channel from settings.

        Args:
            settings: Application settings.
            status_repository: Optional Redis status mirror.

        Returns:
            A controller whose channels have not been started yet.
        """
        return cls(
            bank=BankManager.from_settings(settings),
            customer=CustomerManager.from_settings(settings),
            station=GasStationManager.from_settings(settings),
            pump=PumpAssemblyManager.from_settings(settings),
            settings=settings.controller,
            input_poll=settings.timeouts.input_poll,
            status_repository=status_repository,
        )

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def state(self) -> PumpState:
        """Get the current pump state."""
        return self._state

    @property
    def session(self) -> SessionContext:
        """Get the session of the transaction in progress."""
        return self._session

    @property
    def fuel_grades(self) -> list[FuelGrade]:
        """Get the price list fetched in STANDBY."""
        return list(self._fuel_grades)

    @property
    def is_running(self) -> bool:
        """Check if the run loop is active."""
        return self._running

    @property
    def managers(self) -> list[BaseDeviceManager]:
        return [self._bank, self._customer, self._station, self._pump]

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """Start every manager's channels."""
        for manager in self.managers:
            await manager.start()
        await self._mirror_status()

    async def step(self) -> None:
        """
        Run one tick of the state machine.

        The entry action runs on the first tick in a state; the poll runs
        on every tick unless the entry action already changed state.
        """
        state = self._state
        if not self._entered:
            self._entered = True
            await self._entry_actions[state]()
            if self._state is not state:
                return
        await self._polls[state]()

    async def run(self) -> None:
        """Tick until ``stop()`` is called. Errors in a tick are logged."""
        self._running = True
        logger.info("Main controller loop started")
        try:
            while self._running:
                try:
                    await self.step()
                except Exception as e:
                    logger.exception(f"Unexpected error in state {self._state.name}: {e}")
                await asyncio.sleep(self._settings.tick_interval)
        finally:
            self._running = False
            logger.info("Main controller loop stopped")

    def stop(self) -> None:
        """Ask the run loop to exit after the current tick."""
        self._running = False

    async def shutdown(self) -> None:
        """Stop the loop and close every manager."""
        self.stop()
        for manager in self.managers:
            await manager.close()

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    async def _transition(self, new_state: PumpState) -> None:
        logger.info(f"{self._state.name} -> {new_state.name}")
        self._state = new_state
        self._entered = False
        self._timer.reset_timer()
        await self._mirror_status()

    async def _mirror_status(self) -> None:
        if self._status_repository is not None:
            await self._save_status()

    @redis_error_handler("Pump status mirrored")
    async def _save_status(self) -> None:
        session = self._session
        await self._status_repository.save_status(
            PumpStatus(
                state=self._state.name,
                card=session.masked_card,
                grade=session.fuel_grade.name if session.fuel_grade else None,
                gallons=session.gallons,
                total_cost=session.total_cost,
            )
        )

    @redis_error_handler("Price list mirrored")
    async def _save_prices(self) -> None:
        await self._status_repository.save_prices(self._fuel_grades)

    async def _no_action(self) -> None:
        pass

    async def _poll_until_timeout(self) -> None:
        if self._timer.is_timed_out():
            await self._transition(PumpState.IDLE)

    # -------------------------------------------------------------------------
    # OFF / STANDBY / IDLE
    # -------------------------------------------------------------------------

    async def _enter_off(self) -> None:
        self._customer.show_message(UNAVAILABLE_TEXT)

    async def _poll_off(self) -> None:
        await self._transition(PumpState.STANDBY)

    async def _poll_standby(self) -> None:
        grades = await self._station.get_available_fuel_grades()
        if not grades:
            logger.debug("No price list yet, staying in STANDBY")
            return

        self._fuel_grades = grades
        logger.info(f"Price list: {', '.join(str(grade) for grade in grades)}")
        if self._status_repository is not None:
            await self._save_prices()
        await self._transition(PumpState.IDLE)

    async def _enter_idle(self) -> None:
        self._session.reset()
        self._menu = []
        self._pump.clear_pending()
        self._customer.clear_pending()
        self._customer.show_welcome()

    async def _poll_idle(self) -> None:
        card_number = await self._customer.wait_for_card_tap(self._input_poll)
        if card_number:
            self._session.card_number = card_number
            logger.info(f"Card tapped: {self._session.masked_card}")
            await self._transition(PumpState.WAITING_FOR_AUTHORIZATION)

    # -------------------------------------------------------------------------
    # Authorization
    # -------------------------------------------------------------------------

    async def _enter_waiting_for_authorization(self) -> None:
        self._customer.show_authorizing()
        status = await self._bank.authorize(self._session.card_number)
        approved = status is AuthorizationStatus.APPROVED
        self._customer.notify_card_reader(approved)
        logger.info(f"Authorization {status.name} for {self._session.masked_card}")

        if approved:
            await self._transition(PumpState.SELECT_GAS)
        else:
            await self._transition(PumpState.NO_AUTHORIZATION)

    async def _enter_no_authorization(self) -> None:
        self._customer.show_message(AUTHORIZATION_FAILED_TEXT)
        self._timer.set_timer(self._settings.no_authorization_delay)

    # -------------------------------------------------------------------------
    # Grade selection
    # -------------------------------------------------------------------------

    async def _enter_select_gas(self) -> None:
        self._customer.clear_pending()
        self._menu = self._customer.show_grade_selection(self._fuel_grades)
        self._timer.set_timer(self._settings.selection_timeout)

    async def _poll_select_gas(self) -> None:
        button = await self._customer.wait_for_button_press(self._input_poll)
        if button == ACTION_CELL:
            logger.info("Grade selection cancelled")
            await self._transition(PumpState.IDLE)
            return

        if button is not None:
            index = grade_index(button)
            if index is not None and index < len(self._menu):
                self._session.fuel_grade = self._menu[index]
                logger.info(f"Selected {self._session.fuel_grade}")
                await self._transition(PumpState.READY_TO_PUMP)
                return
            logger.debug(f"Ignoring button {button} on grade menu")

        if self._timer.is_timed_out():
            logger.info("Grade selection timed out")
            await self._transition(PumpState.IDLE)

    # -------------------------------------------------------------------------
    # Pumping
    # -------------------------------------------------------------------------

    async def _enter_ready_to_pump(self) -> None:
        self._customer.show_ready_to_pump()
        self._timer.set_timer(self._settings.nozzle_timeout)

    async def _poll_ready_to_pump(self) -> None:
        if self._pump.get_hose_event() is HoseEvent.REMOVED:
            await self._transition(PumpState.FUELING)
        elif self._timer.is_timed_out():
            logger.info("Nozzle not removed in time")
            await self._transition(PumpState.IDLE)

    async def _enter_fueling(self) -> None:
        grade = self._session.fuel_grade
        self._pump.start_pumping(grade)
        self._customer.show_pumping(grade.name, self._session.gallons, self._session.total_cost)

    async def _poll_fueling(self) -> None:
        session = self._session

        update = self._pump.get_fueling_update()
        if update is not None:
            session.apply(update)
            self._customer.show_pumping(session.fuel_grade.name, session.gallons, session.total_cost)

        event = self._pump.get_hose_event()
        if event is HoseEvent.TANK_FULL:
            logger.info("Tank full")
            self._pump.stop_pumping()
            await self._transition(PumpState.TRANSACTION_COMPLETE)
            return
        if event is HoseEvent.ATTACHED:
            logger.info("Nozzle returned, pausing")
            await self._transition(PumpState.PAUSED)
            return

        button = await self._customer.wait_for_button_press(self._input_poll)
        if button == ACTION_CELL:
            logger.info("Stop pressed")
            self._pump.stop_pumping()
            await self._transition(PumpState.TRANSACTION_COMPLETE)

    async def _enter_paused(self) -> None:
        self._pump.pause_pumping()
        self._customer.show_paused(self._settings.pause_timeout)
        self._timer.set_timer(self._settings.pause_timeout)

    async def _poll_paused(self) -> None:
        update = self._pump.get_fueling_update()
        if update is not None:
            self._session.apply(update)

        if self._pump.get_hose_event() is HoseEvent.REMOVED:
            logger.info("Nozzle removed, resuming")
            await self._transition(PumpState.FUELING)
        elif self._timer.is_timed_out():
            logger.info("Pause timed out, completing partial sale")
            self._pump.stop_pumping()
            await self._transition(PumpState.TRANSACTION_COMPLETE)

    # -------------------------------------------------------------------------
    # Settlement
    # -------------------------------------------------------------------------

    async def _enter_transaction_complete(self) -> None:
        session = self._session
        grade_name = session.fuel_grade.name if session.fuel_grade else ""
        logger.info(
            f"Transaction complete. Charging card {session.masked_card} "
            f"for ${session.total_cost:.2f}"
        )

        if await self._bank.charge(session.card_number, session.total_cost):
            self._station.log_transaction(
                session.card_number, grade_name, session.gallons, session.total_cost
            )
            self._customer.show_thank_you(session.gallons, session.total_cost)
        else:
            logger.error(f"Final charge failed for {session.masked_card}")
            self._customer.show_message(CHARGE_FAILED_TEXT)

        self._customer.notify_transaction_complete()
        self._pump.reset_flow_meter()
        self._timer.set_timer(self._settings.completion_delay)
