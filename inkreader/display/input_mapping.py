"""Translation of raw key and touch input into reader events.

Backends turn their native key identifiers into ``KeyCode`` values and report
taps in surface pixels; everything that is not bound here is dropped.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional

from inkreader.models.input import (
    ACTION_EXIT,
    ACTION_FIRST_PAGE,
    ACTION_HOME,
    ACTION_LAST_PAGE,
    NEXT,
    PREVIOUS,
    InputEvent,
)

logger = logging.getLogger(__name__)

# Taps left of this fraction of the width go back a page
PREVIOUS_ZONE = 1 / 3


class KeyCode(Enum):
    """Backend-neutral key identifiers."""

    LEFT_ARROW = "left"
    RIGHT_ARROW = "right"
    UP_ARROW = "up"
    DOWN_ARROW = "down"
    PAGE_UP = "page_up"
    PAGE_DOWN = "page_down"
    SPACE = "space"
    HOME = "home"
    END = "end"
    ESCAPE = "escape"
    UNKNOWN = "unknown"


KEY_BINDINGS: dict[KeyCode, InputEvent] = {
    KeyCode.LEFT_ARROW: PREVIOUS,
    KeyCode.UP_ARROW: PREVIOUS,
    KeyCode.PAGE_UP: PREVIOUS,
    KeyCode.RIGHT_ARROW: NEXT,
    KeyCode.DOWN_ARROW: NEXT,
    KeyCode.PAGE_DOWN: NEXT,
    KeyCode.SPACE: NEXT,
    KeyCode.HOME: InputEvent.custom(ACTION_FIRST_PAGE),
    KeyCode.END: InputEvent.custom(ACTION_LAST_PAGE),
    KeyCode.ESCAPE: InputEvent.custom(ACTION_EXIT),
}

# Hardware button codes from linux/input-event-codes.h
EVDEV_KEY_CODES: dict[int, KeyCode] = {
    102: KeyCode.HOME,  # KEY_HOME, the middle button on reMarkable tablets
    103: KeyCode.UP_ARROW,
    104: KeyCode.PAGE_UP,
    105: KeyCode.LEFT_ARROW,
    106: KeyCode.RIGHT_ARROW,
    108: KeyCode.DOWN_ARROW,
    109: KeyCode.PAGE_DOWN,
    107: KeyCode.END,
    1: KeyCode.ESCAPE,
    57: KeyCode.SPACE,
}

HARDWARE_HOME = InputEvent.custom(ACTION_HOME)


def map_key(code: KeyCode) -> Optional[InputEvent]:
    """Map a key press to an event, None for unbound keys."""
    event = KEY_BINDINGS.get(code)
    if event is None:
        logger.debug("Dropping unbound key %s", code.value)
    return event


def map_evdev_key(code: int) -> Optional[InputEvent]:
    """Map a hardware button press.

    The home button is reported as its own custom action instead of
    jumping to the first page.

    Args:
        code: evdev key code

    Returns:
        InputEvent or None for unbound buttons
    """
    key = EVDEV_KEY_CODES.get(code, KeyCode.UNKNOWN)
    if key is KeyCode.HOME:
        return HARDWARE_HOME
    return map_key(key)


def map_tap(x: float, y: float, width: int) -> Optional[InputEvent]:
    """Map a tap at surface coordinates.

    Args:
        x: Horizontal position in pixels
        y: Vertical position in pixels
        width: Surface width in pixels

    Returns:
        PREVIOUS for the left third, NEXT elsewhere, None when outside the surface
    """
    if x < 0 or y < 0 or x >= width or width <= 0:
        return None
    return PREVIOUS if x < width * PREVIOUS_ZONE else NEXT
