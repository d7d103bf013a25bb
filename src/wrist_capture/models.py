"""Data models for wrist motion capture.

The capture pipeline works with two kinds of records:

- ``MotionSample``: one instantaneous reading of a single sensor stream.
  Samples are ephemeral and overwritten by the next reading of the same role.
- ``FusedRow``: one output row combining the latest accelerometer and
  gyroscope readings at the moment an accelerometer reading arrived.

The CSV layout of a ``FusedRow`` is the wire format sent to the collector:
``timestamp,accel_x,accel_y,accel_z,gyro_x,gyro_y,gyro_z``
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum


CSV_FIELDS = (
    "timestamp",
    "accel_x",
    "accel_y",
    "accel_z",
    "gyro_x",
    "gyro_y",
    "gyro_z",
)
CSV_HEADER = ",".join(CSV_FIELDS)


class SensorRole(Enum):
    """Identifies one of the two motion streams."""

    ACCELEROMETER = "accelerometer"
    GYROSCOPE = "gyroscope"

    @property
    def label(self) -> str:
        return self.value.capitalize()


# Arrival of a driver sample is what produces a row.
DRIVER_ROLE = SensorRole.ACCELEROMETER


@dataclass(frozen=True)
class MotionSample:
    """Single three-axis reading from one sensor stream."""

    x: float
    y: float
    z: float


def format_value(value: float) -> str:
    """Render a number in its natural decimal form.

    Integral values drop the fractional part (``1.0`` becomes ``1``); other
    values use the shortest representation that round-trips.
    """
    number = float(value)
    if math.isfinite(number) and number.is_integer():
        return str(int(number))
    return repr(number)


@dataclass(frozen=True)
class FusedRow:
    """One row of the capture dataset.

    Attributes:
        timestamp: Milliseconds since the capture started. Non-negative and
            non-decreasing across the rows of a session.
        accel_x: Accelerometer X axis.
        accel_y: Accelerometer Y axis.
        accel_z: Accelerometer Z axis.
        gyro_x: Gyroscope X axis.
        gyro_y: Gyroscope Y axis.
        gyro_z: Gyroscope Z axis.
    """

    timestamp: int
    accel_x: float
    accel_y: float
    accel_z: float
    gyro_x: float
    gyro_y: float
    gyro_z: float

    @staticmethod
    def fuse(timestamp: int, accel: MotionSample, gyro: MotionSample) -> "FusedRow":
        return FusedRow(
            timestamp=timestamp,
            accel_x=accel.x,
            accel_y=accel.y,
            accel_z=accel.z,
            gyro_x=gyro.x,
            gyro_y=gyro.y,
            gyro_z=gyro.z,
        )

    def to_csv(self) -> str:
        """Format the row as one CSV line without a line terminator."""
        return ",".join(
            format_value(v)
            for v in (
                self.timestamp,
                self.accel_x,
                self.accel_y,
                self.accel_z,
                self.gyro_x,
                self.gyro_y,
                self.gyro_z,
            )
        )

    @staticmethod
    def parse_csv(line: str) -> "FusedRow":
        """Parse one CSV line back into a row.

        Raises:
            ValueError: If the line does not hold exactly seven numeric fields.
        """
        parts = [p.strip() for p in line.split(",")]
        if len(parts) != len(CSV_FIELDS):
            raise ValueError(f"Unexpected CSV fields count: {len(parts)} in '{line}'")

        timestamp = int(float(parts[0]))
        ax, ay, az = float(parts[1]), float(parts[2]), float(parts[3])
        gx, gy, gz = float(parts[4]), float(parts[5]), float(parts[6])
        return FusedRow(
            timestamp=timestamp,
            accel_x=ax,
            accel_y=ay,
            accel_z=az,
            gyro_x=gx,
            gyro_y=gy,
            gyro_z=gz,
        )
