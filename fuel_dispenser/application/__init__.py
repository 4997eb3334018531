"""
Application layer - The dispenser controller.

Contains:
- MainController (fueling state machine)
"""

from .main_controller import MainController


__all__ = [
    "MainController",
]
