"""
Domain layer - Business logic and domain models.

Contains:
- Device managers for each peripheral group
- Screen markup builder
- Timer and pump states
"""

from .device_managers import (
    BaseDeviceManager,
    BankManager,
    CustomerManager,
    GasStationManager,
    PumpAssemblyManager,
)
from .pump_state_machine import (
    PumpState,
    SessionContext,
)
from .screen_markup import (
    ScreenLayout,
    parse_button_press,
)
from .timer_manager import TimerManager


__all__ = [
    # Device Managers
    "BaseDeviceManager",
    "BankManager",
    "CustomerManager",
    "GasStationManager",
    "PumpAssemblyManager",
    # Pump State
    "PumpState",
    "SessionContext",
    # Screen
    "ScreenLayout",
    "parse_button_press",
    # Timer
    "TimerManager",
]
