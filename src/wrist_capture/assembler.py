"""Fusion of the accelerometer and gyroscope streams into dataset rows."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from .buffer import SessionBuffer
from .models import DRIVER_ROLE, FusedRow, MotionSample, SensorRole

logger = logging.getLogger(__name__)


class RowAssembler:
    """Stateful two-slot fusion filter feeding a ``SessionBuffer``.

    The accelerometer is the driver stream: every accelerometer reading that
    arrives while a gyroscope reading is known produces exactly one row. The
    gyroscope only refreshes its slot, so the row carries the most recent
    gyroscope value, which may be up to one driver interval old. The output
    row rate is therefore the accelerometer delivery rate.

    Timestamps are milliseconds between the session start and the moment the
    driver sample is processed, read from ``clock`` (seconds, monotonic).

    Once ``close()`` is called the assembler drops everything it receives.
    This covers deliveries that were already queued when the sampler was
    deactivated.

    Attributes:
        rows_emitted: Number of rows appended to the buffer.
        samples_dropped: Number of samples received after ``close()``.
    """

    def __init__(
        self,
        buffer: SessionBuffer,
        started_at: float,
        clock: Callable[[], float],
    ) -> None:
        self._buffer = buffer
        self._started_at = started_at
        self._clock = clock
        self._latest: dict[SensorRole, MotionSample] = {}
        self._open = True
        self._last_timestamp = 0
        self.rows_emitted = 0
        self.samples_dropped = 0

    def accept(self, role: SensorRole, sample: MotionSample) -> Optional[FusedRow]:
        """Consume one sample and return the row it produced, if any.

        Gyroscope samples only replace the latest co-sample. An accelerometer
        sample produces a row paired with that co-sample, stamped with
        milliseconds since ``started_at``, and appends it to the buffer.

        Args:
            role: Which sensor produced the sample.
            sample: The three-axis reading.

        Returns:
            The appended row, or None when the sample was a co-sample, no
            gyroscope reading has arrived yet, or the window is closed.

        Raises:
            AlreadySealed: If the buffer was sealed while the window was
                still open.
        """
        if not self._open:
            self.samples_dropped += 1
            logger.debug("Dropping late %s sample after capture window", role.value)
            return None

        self._latest[role] = sample
        if role is not DRIVER_ROLE:
            return None

        gyro = self._latest.get(SensorRole.GYROSCOPE)
        if gyro is None:
            return None

        elapsed_ms = int((self._clock() - self._started_at) * 1000)
        # Clamp so a coarse clock can never make timestamps go backwards
        timestamp = max(elapsed_ms, self._last_timestamp)
        self._last_timestamp = timestamp

        row = FusedRow.fuse(timestamp, sample, gyro)
        self._buffer.append(row)
        self.rows_emitted += 1
        return row

    def close(self) -> None:
        """Stop producing rows; further samples are counted and discarded."""
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open
