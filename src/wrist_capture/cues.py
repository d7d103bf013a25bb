"""Audio cue collaborator port."""

from __future__ import annotations

import logging
import sys
from abc import ABC, abstractmethod
from enum import Enum
from typing import TextIO

logger = logging.getLogger(__name__)


class CueKind(Enum):
    START = "start"  # capture window opens
    STOP = "stop"  # capture window closes


class CuePlayer(ABC):
    """Fire-and-forget cue playback.

    Implementations may raise; the state machine logs and ignores failures.
    """

    @abstractmethod
    def play(self, kind: CueKind) -> None:
        pass


class LogCuePlayer(CuePlayer):
    def play(self, kind: CueKind) -> None:
        logger.info("[cue] %s", kind.value)


class BellCuePlayer(CuePlayer):
    """Rings the terminal bell: once to start, twice to stop."""

    def __init__(self, stream: TextIO = sys.stderr) -> None:
        self._stream = stream

    def play(self, kind: CueKind) -> None:
        self._stream.write("\a" if kind is CueKind.START else "\a\a")
        self._stream.flush()
