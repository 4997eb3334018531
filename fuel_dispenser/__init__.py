"""
Fuel dispenser controller.

Coordinates a card reader, customer screen, bank, gas station server
and pump assembly over reconnecting line channels to run one fueling
transaction at a time.
"""

__version__ = "1.0.0"
