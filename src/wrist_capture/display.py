"""Display collaborator port.

The capture core only emits state-change notifications; drawing them is
left to whatever implements ``Display``.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

logger = logging.getLogger(__name__)


class DisplayKind(Enum):
    SHOW_IDLE = "idle"
    SHOW_COUNTDOWN = "countdown"
    SHOW_CAPTURING = "capturing"
    SHOW_DONE = "done"
    SHOW_ERROR = "error"


@dataclass(frozen=True)
class DisplayEvent:
    """One notification for the display.

    Attributes:
        kind: What to show.
        count: Countdown number for ``SHOW_COUNTDOWN``.
        message: Text for ``SHOW_ERROR``.
    """

    kind: DisplayKind
    count: Optional[int] = None
    message: Optional[str] = None

    @staticmethod
    def idle() -> "DisplayEvent":
        return DisplayEvent(DisplayKind.SHOW_IDLE)

    @staticmethod
    def countdown(count: int) -> "DisplayEvent":
        return DisplayEvent(DisplayKind.SHOW_COUNTDOWN, count=count)

    @staticmethod
    def capturing() -> "DisplayEvent":
        return DisplayEvent(DisplayKind.SHOW_CAPTURING)

    @staticmethod
    def done() -> "DisplayEvent":
        return DisplayEvent(DisplayKind.SHOW_DONE)

    @staticmethod
    def error(message: str) -> "DisplayEvent":
        return DisplayEvent(DisplayKind.SHOW_ERROR, message=message)

    def text(self) -> str:
        if self.kind is DisplayKind.SHOW_IDLE:
            return "Start"
        if self.kind is DisplayKind.SHOW_COUNTDOWN:
            return str(self.count)
        if self.kind is DisplayKind.SHOW_CAPTURING:
            return "Go"
        if self.kind is DisplayKind.SHOW_DONE:
            return "Done"
        return self.message or "Error"


class Display(ABC):
    """Receives presentation updates; return values are never consumed."""

    @abstractmethod
    def show(self, event: DisplayEvent) -> None:
        pass


class LogDisplay(Display):
    """Writes display updates through logging (console front end)."""

    def show(self, event: DisplayEvent) -> None:
        if event.kind is DisplayKind.SHOW_ERROR:
            logger.warning("[display] %s", event.text())
        else:
            logger.info("[display] %s", event.text())


class RecordingDisplay(Display):
    """Keeps every event in order; handy for diagnostics and tests."""

    def __init__(self) -> None:
        self.events: List[DisplayEvent] = []

    def show(self, event: DisplayEvent) -> None:
        self.events.append(event)

    @property
    def kinds(self) -> List[DisplayKind]:
        return [e.kind for e in self.events]

    @property
    def errors(self) -> List[str]:
        return [e.text() for e in self.events if e.kind is DisplayKind.SHOW_ERROR]
