"""Backend-independent input vocabulary."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class InputKind(Enum):
    NEXT = "next"
    PREVIOUS = "previous"
    CUSTOM_ACTION = "custom_action"


@dataclass(frozen=True)
class InputEvent:
    """Input event shared by every display backend.

    ``action_id`` is only set for ``InputKind.CUSTOM_ACTION``.
    """

    kind: InputKind
    action_id: str | None = None

    @classmethod
    def custom(cls, action_id: str) -> "InputEvent":
        return cls(InputKind.CUSTOM_ACTION, action_id)


NEXT = InputEvent(InputKind.NEXT)
PREVIOUS = InputEvent(InputKind.PREVIOUS)

# Custom action ids understood by the pagination controller
ACTION_FIRST_PAGE = "first_page"
ACTION_LAST_PAGE = "last_page"
ACTION_EXIT = "exit"
ACTION_HOME = "home"
