"""
Customer screen markup.

The screen peripheral renders a compact markup made of ``;``-terminated
commands:

    t:<cell>/s:<size>/f:<style>/c:<color>/<text>;   text in a cell
    b:<cell>/<type>;                                 button on a cell

Cells are numbered 0..9; a two-digit cell such as ``45`` spans cells 4
and 5. The screen answers a button press with ``b:<cell>``.
"""

import re
from enum import Enum, IntEnum
from typing import Final, Optional

from fuel_dispenser.core.value_objects import LEGACY_TERMINATOR


# =============================================================================
# Markup Attributes
# =============================================================================


class FontSize(IntEnum):
    SMALL = 1
    MEDIUM = 2
    LARGE = 3


class FontStyle(IntEnum):
    REGULAR = 1
    BOLD = 2
    ITALIC = 3


class CellColor(IntEnum):
    DEFAULT = 0
    PURPLE = 1
    RED = 2
    GREEN = 3
    BLUE = 4


class ButtonType(str, Enum):
    """Button behaviour on the screen."""

    MUTUALLY_EXCLUSIVE = "m"  # Selectable choice
    EXIT = "x"                # Cancel / stop


# =============================================================================
# Cell Layout
# =============================================================================

TITLE_CELL: Final[str] = "01"
MESSAGE_CELL: Final[str] = "45"
RECEIPT_CELL: Final[str] = "67"
ACTION_CELL: Final[str] = "8"  # Cancel during selection, stop during fueling

GRADE_FIRST_CELL: Final[int] = 2
MAX_GRADE_BUTTONS: Final[int] = 6


def grade_cell(index: int) -> str:
    """Cell holding the grade button at ``index`` (0-based)."""
    return str(GRADE_FIRST_CELL + index)


def grade_index(cell: str) -> Optional[int]:
    """
    Map a pressed cell back to a grade index.

    Args:
        cell: Cell id reported by the screen.

    Returns:
        0-based grade index, or None if the cell is not a grade button.
    """
    if not cell.isdigit():
        return None
    index = int(cell) - GRADE_FIRST_CELL
    if 0 <= index < MAX_GRADE_BUTTONS:
        return index
    return None


# =============================================================================
# Layout Builder
# =============================================================================


class ScreenLayout:
    """
    Fluent builder for one screen message.

    Example:
        layout = (
            ScreenLayout()
            .text(TITLE_CELL, "Welcome!", FontSize.LARGE, FontStyle.BOLD)
            .button(ACTION_CELL, ButtonType.EXIT)
            .render()
        )
    """

    def __init__(self) -> None:
        self._commands: list[str] = []

    def text(
        self,
        cell: str,
        text: str,
        size: FontSize = FontSize.MEDIUM,
        style: FontStyle = FontStyle.REGULAR,
        color: CellColor = CellColor.DEFAULT,
    ) -> "ScreenLayout":
        """Add a text command. ``;`` in the text is replaced by ``,``."""
        safe = text.replace(";", ",").replace("\n", " ")
        self._commands.append(
            f"t:{cell}/s:{int(size)}/f:{int(style)}/c:{int(color)}/{safe};"
        )
        return self

    def button(self, cell: str, kind: ButtonType) -> "ScreenLayout":
        """Add a button command."""
        self._commands.append(f"b:{cell}/{kind.value};")
        return self

    def render(self) -> str:
        """Concatenate every command into one line."""
        return "".join(self._commands)

    def __str__(self) -> str:
        return self.render()


# =============================================================================
# Button Press Parsing
# =============================================================================

BUTTON_PRESS_PATTERN = re.compile(r"^b:([0-9]+);?$")


def parse_button_press(content: str) -> Optional[str]:
    """
    Extract the cell id from a ``b:<id>`` button press.

    Trailing ``;`` and the legacy ``//`` terminator are accepted.

    Args:
        content: Raw message content from the screen.

    Returns:
        The cell id, or None if the content is not a button press.
    """
    text = content.strip()
    if text.endswith(LEGACY_TERMINATOR):
        text = text[: -len(LEGACY_TERMINATOR)].rstrip()
    match = BUTTON_PRESS_PATTERN.match(text)
    return match.group(1) if match else None
