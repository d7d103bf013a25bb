"""Motion sensor samplers for wrist gesture capture.

This module defines the port through which the capture pipeline receives
motion data, plus two implementations of it:

- **MockSensorSampler**: synthetic accelerometer and gyroscope streams with
  independent cadences, used for tests, demos and development without a
  device. Individual sensors can be marked as missing.
- **BleSensorSampler**: a XIAO nRF52840 Sense style wearable that streams
  ``millis,ax,ay,az,gx,gy,gz[,...]`` CSV lines over the Nordic UART Service
  (NUS). Every line is split into one accelerometer and one gyroscope sample.

Architecture:
- Samples are delivered through a role-tagged sink callable rather than a
  listener base class, so the consumer never depends on the delivery
  mechanism of a particular platform.
- Sinks may be invoked from any thread or callback context. The consumer is
  responsible for marshalling them onto its own event loop.
- ``deactivate()`` is always safe to call, including before ``activate()``.

Requirements:
- bleak: Cross-platform BLE library for device communication
- asyncio: Async I/O support for concurrent operation
"""

from __future__ import annotations

import asyncio
import logging
import math
import random
import time
from abc import ABC, abstractmethod
from typing import Callable, Iterable, Optional

from bleak import BleakClient, BleakScanner
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData
from bleak.exc import BleakError

from .errors import SensorUnavailable
from .models import MotionSample, SensorRole

logger = logging.getLogger(__name__)


# Nordic UART Service (NUS) UUID constants
NUS_SERVICE = "6e400001-b5a3-f393-e0a9-e50e24dcca9e"
NUS_TX_CHAR = "6e400003-b5a3-f393-e0a9-e50e24dcca9e"  # Notify (device to client)

DEVICE_NAME = "XIAO Sense IMU"

# Requested delivery interval; actual delivery is platform dependent.
DEFAULT_SAMPLING_INTERVAL = 0.01

SampleSink = Callable[[SensorRole, MotionSample], None]


class SensorSampler(ABC):
    """Abstract port over the accelerometer and gyroscope streams.

    Implementations own their connection and subscription management. The
    contract the capture state machine relies on:

    1. ``activate(sink)`` subscribes both streams or raises
       ``SensorUnavailable`` naming the missing role. No retry is attempted.
    2. While active, every reading is passed to ``sink(role, sample)``.
       Readings of one role arrive in order; nothing is guaranteed about
       ordering between roles.
    3. ``deactivate()`` unsubscribes both streams and is idempotent. Samples
       already in flight may still reach the sink afterwards.
    """

    @abstractmethod
    async def activate(self, sink: SampleSink) -> None:
        """Subscribe both streams and start delivering samples to ``sink``.

        Raises:
            SensorUnavailable: If either sensor does not exist.
        """

    @abstractmethod
    async def deactivate(self) -> None:
        """Unsubscribe both streams. Safe when inactive or never activated."""

    @property
    @abstractmethod
    def is_active(self) -> bool:
        """True between a successful ``activate()`` and ``deactivate()``."""


class MockSensorSampler(SensorSampler):
    """Synthetic sampler producing realistic wrist motion.

    Each role runs its own asyncio task with its own cadence, so the two
    streams drift relative to each other the way real sensors do.

    Data generation characteristics:
    - **Accelerometer**: 1g gravity on Z with sinusoidal swing and noise
      (m/s^2 scaled by 9.81).
    - **Gyroscope**: multi-frequency rotation per axis with noise (rad/s).

    Attributes:
        available: Roles that "exist" on this simulated device. Activating
            with a role missing raises ``SensorUnavailable``.
    """

    def __init__(
        self,
        sampling_interval: float = DEFAULT_SAMPLING_INTERVAL,
        gyro_interval: Optional[float] = None,
        available: Iterable[SensorRole] = tuple(SensorRole),
    ) -> None:
        """Initialize the mock sampler.

        Args:
            sampling_interval: Seconds between accelerometer samples.
            gyro_interval: Seconds between gyroscope samples. Defaults to a
                slightly slower cadence than the accelerometer.
            available: Roles present on the simulated device.
        """
        self._intervals = {
            SensorRole.ACCELEROMETER: sampling_interval,
            SensorRole.GYROSCOPE: gyro_interval or sampling_interval * 1.2,
        }
        self.available = frozenset(available)
        self._tasks: list[asyncio.Task[None]] = []
        self._start_time = time.monotonic()

    @property
    def is_active(self) -> bool:
        return bool(self._tasks)

    async def activate(self, sink: SampleSink) -> None:
        for role in SensorRole:
            if role not in self.available:
                raise SensorUnavailable(role)

        if self._tasks:
            logger.debug("Mock sampler already active")
            return

        self._start_time = time.monotonic()
        loop = asyncio.get_running_loop()
        for role in SensorRole:
            self._tasks.append(loop.create_task(self._run(role, sink)))
        logger.info("Mock sampler active: %s", self._intervals)

    async def deactivate(self) -> None:
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        if tasks:
            logger.info("Mock sampler stopped")

    async def _run(self, role: SensorRole, sink: SampleSink) -> None:
        interval = self._intervals[role]
        while True:
            sink(role, self._generate(role))
            await asyncio.sleep(interval)

    def _generate(self, role: SensorRole) -> MotionSample:
        elapsed = time.monotonic() - self._start_time
        if role is SensorRole.ACCELEROMETER:
            return MotionSample(
                x=4.9 * math.sin(2 * math.pi * 1.5 * elapsed) + random.gauss(0, 0.1),
                y=2.9 * math.cos(2 * math.pi * 0.9 * elapsed) + random.gauss(0, 0.1),
                z=9.81 + 1.9 * math.sin(2 * math.pi * 0.4 * elapsed)
                + random.gauss(0, 0.05),
            )
        return MotionSample(
            x=1.7 * math.sin(2 * math.pi * 0.8 * elapsed) + random.gauss(0, 0.03),
            y=2.6 * math.cos(2 * math.pi * 0.6 * elapsed) + random.gauss(0, 0.03),
            z=0.9 * math.sin(2 * math.pi * 0.4 * elapsed) + random.gauss(0, 0.02),
        )


def parse_device_line(line: str) -> tuple[MotionSample, MotionSample]:
    """Split one device telemetry line into accelerometer and gyroscope samples.

    Args:
        line: CSV string starting with ``millis,ax,ay,az,gx,gy,gz``. Trailing
            fields (temperature, audio level, ...) are ignored. Whitespace
            around commas is stripped.

    Returns:
        ``(accel, gyro)`` samples.

    Raises:
        ValueError: If fewer than seven fields are present or a motion field
            is not numeric.
    """
    parts = [p.strip() for p in line.split(",")]
    if len(parts) < 7:
        raise ValueError(f"Unexpected CSV fields count: {len(parts)} in '{line}'")

    ax, ay, az = float(parts[1]), float(parts[2]), float(parts[3])
    gx, gy, gz = float(parts[4]), float(parts[5]), float(parts[6])
    return MotionSample(ax, ay, az), MotionSample(gx, gy, gz)


def _parse_line_from_buffer(buffer: bytearray) -> Optional[str]:
    """Extract one complete line from the BLE receive buffer.

    BLE notifications arrive as arbitrary-sized fragments. This accumulates
    them until a delimiter (LF, CR, CRLF or NUL) shows up. Empty lines and
    lines holding only whitespace and commas are discarded as noise.

    Returns:
        Decoded line, an empty string for a consumed noise line, or None if
        no complete line is available yet.
    """
    candidates = [
        idx for idx in (buffer.find(token) for token in (b"\n", b"\r", b"\x00"))
        if idx != -1
    ]
    if not candidates:
        # Buffer overflow protection (trim if exceeds 64KB)
        if len(buffer) > 64 * 1024:
            drop = len(buffer) - 64 * 1024
            logger.warning("Buffer overflow protection: trimming %d bytes", drop)
            del buffer[:drop]
        return None

    idx = min(candidates)
    consume = 2 if buffer[idx : idx + 2] == b"\r\n" else 1
    line = bytes(buffer[:idx])
    del buffer[: idx + consume]

    try:
        text = line.decode("utf-8", errors="strict")
    except UnicodeDecodeError:
        logger.error("UTF-8 decode failed: %r", line)
        return ""

    if text.replace(",", "").strip() == "":
        return ""
    return text


def _match_device(
    dev: BLEDevice, adv: AdvertisementData, device_name: str, service_uuid: str
) -> bool:
    """Match a discovered device by exact name, falling back to service UUID."""
    logger.debug(
        "Device discovered: addr=%s name=%s rssi=%s",
        getattr(dev, "address", "?"),
        getattr(dev, "name", None),
        getattr(adv, "rssi", None),
    )
    if dev.name == device_name:
        return True
    uuids: Iterable[str] = adv.service_uuids or []
    return any(u.lower() == service_uuid.lower() for u in uuids)


async def find_device(
    *,
    device_name: str = DEVICE_NAME,
    service_uuid: str = NUS_SERVICE,
    timeout: float = 10.0,
) -> Optional[BLEDevice]:
    """Scan for BLE devices and return the first one matching the criteria.

    Raises:
        RuntimeError: If the BLE scanner cannot be initialized.
    """
    logger.info(
        "BLE device discovery started: name='%s' service='%s' timeout=%.1fs",
        device_name,
        service_uuid,
        timeout,
    )
    try:
        devices_adv = await BleakScanner.discover(timeout=timeout, return_adv=True)
    except BleakError as e:
        raise RuntimeError(
            "BLE scanner initialization failed. Check that Bluetooth is enabled."
        ) from e

    for dev, adv in devices_adv.values():
        if _match_device(dev, adv, device_name, service_uuid):
            logger.info("Device selected: %s (%s)", dev.name, dev.address)
            return dev
    return None


class BleSensorSampler(SensorSampler):
    """Sampler backed by a wearable streaming motion CSV over BLE NUS.

    The device sends both sensors in one line, so each line yields one
    accelerometer and one gyroscope delivery. The gyroscope sample is
    delivered first so the row assembler always has a co-sample when the
    driver sample for the same line arrives.

    Connection failures at activation time are reported as
    ``SensorUnavailable`` for the accelerometer, since without a device no
    stream exists at all. Malformed lines are logged and skipped.

    Attributes:
        sampling_interval: Requested interval; the device firmware decides
            the real rate, so this is advisory and only logged.
    """

    def __init__(
        self,
        address: Optional[str] = None,
        *,
        device_name: str = DEVICE_NAME,
        scan_timeout: float = 10.0,
        sampling_interval: float = DEFAULT_SAMPLING_INTERVAL,
    ) -> None:
        self._address = address
        self._device_name = device_name
        self._scan_timeout = scan_timeout
        self.sampling_interval = sampling_interval
        self._client: Optional[BleakClient] = None
        self._rx = bytearray()
        self.lines_received = 0
        self.lines_rejected = 0

    @property
    def is_active(self) -> bool:
        return self._client is not None

    async def activate(self, sink: SampleSink) -> None:
        if self._client is not None:
            logger.debug("BLE sampler already active")
            return

        address = self._address
        if address is None:
            try:
                dev = await find_device(
                    device_name=self._device_name, timeout=self._scan_timeout
                )
            except RuntimeError as e:
                raise SensorUnavailable(SensorRole.ACCELEROMETER, str(e)) from e
            if dev is None:
                raise SensorUnavailable(
                    SensorRole.ACCELEROMETER, f"'{self._device_name}' not found"
                )
            address = dev.address

        client = BleakClient(address, disconnected_callback=self._on_disconnect)
        try:
            await client.connect()
            self._rx.clear()
            await client.start_notify(
                NUS_TX_CHAR, lambda _, data: self._handle(data, sink)
            )
        except (BleakError, OSError, asyncio.TimeoutError) as e:
            logger.error("BLE connection to %s failed: %s", address, e)
            try:
                await client.disconnect()
            except (BleakError, OSError) as disconnect_error:
                logger.debug("Disconnect after failure: %s", disconnect_error)
            raise SensorUnavailable(SensorRole.ACCELEROMETER, str(e)) from e

        self._client = client
        logger.info(
            "BLE sampler active: %s (requested interval %.3fs)",
            address,
            self.sampling_interval,
        )

    async def deactivate(self) -> None:
        client, self._client = self._client, None
        if client is None:
            return
        try:
            if client.is_connected:
                await client.stop_notify(NUS_TX_CHAR)
            await client.disconnect()
        except (BleakError, OSError) as e:
            logger.warning("BLE unsubscribe failed: %s", e)
        logger.info(
            "BLE sampler stopped: %d lines received, %d rejected",
            self.lines_received,
            self.lines_rejected,
        )

    def _on_disconnect(self, _: BleakClient) -> None:
        logger.warning("BLE connection lost (callback)")

    def _handle(self, data: bytearray, sink: SampleSink) -> None:
        self._rx.extend(data)
        while True:
            text = _parse_line_from_buffer(self._rx)
            if text is None:
                break
            if not text:
                continue
            try:
                accel, gyro = parse_device_line(text)
            except ValueError as ex:
                self.lines_rejected += 1
                logger.warning("CSV parsing failed: %s (error=%s)", text, ex)
                continue
            self.lines_received += 1
            sink(SensorRole.GYROSCOPE, gyro)
            sink(SensorRole.ACCELEROMETER, accel)
