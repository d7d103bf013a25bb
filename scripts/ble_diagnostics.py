#!/usr/bin/env python3
"""
BLE wearable diagnostics: scan, subscribe, and check both motion streams.
"""

import asyncio
import logging
import sys
from collections import Counter

from bleak import BleakScanner

from wrist_capture.errors import SensorUnavailable
from wrist_capture.models import MotionSample, SensorRole
from wrist_capture.sensors import DEVICE_NAME, BleSensorSampler

# Configure logging for diagnostics tool
logging.basicConfig(
    level=logging.INFO,
    format="%(message)s",  # Simple format for user-friendly output
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)


async def scan_for_devices(duration: float = 10.0) -> None:
    """List nearby BLE devices and flag likely wearables."""
    logger.info(f"Scanning for BLE devices for {duration}s...")

    devices = await BleakScanner.discover(timeout=duration)
    if not devices:
        logger.error("No BLE devices found")
        logger.info("   - Make sure the wearable is powered on and advertising")
        return

    logger.info(f"Found {len(devices)} BLE device(s):")
    for device in devices:
        name = device.name or "Unknown"
        marker = "  <- expected device" if name == DEVICE_NAME else ""
        logger.info(f"   {name} ({device.address}){marker}")


async def check_streams(seconds: float = 3.0) -> bool:
    """Activate the sampler and count deliveries per role."""
    counts: Counter = Counter()
    last: dict = {}

    def sink(role: SensorRole, sample: MotionSample) -> None:
        counts[role] += 1
        last[role] = sample

    sampler = BleSensorSampler(scan_timeout=15.0)
    try:
        await sampler.activate(sink)
    except SensorUnavailable as e:
        logger.error(f"Activation failed: {e}")
        return False

    try:
        await asyncio.sleep(seconds)
    finally:
        await sampler.deactivate()

    ok = True
    for role in SensorRole:
        n = counts[role]
        rate = n / seconds
        if n == 0:
            logger.error(f"{role.label}: no samples received")
            ok = False
            continue
        s = last[role]
        logger.info(
            f"{role.label}: {n} samples ({rate:.1f}Hz), "
            f"last x={s.x:.2f} y={s.y:.2f} z={s.z:.2f}"
        )
    return ok


async def main() -> None:
    logger.info("Wrist capture BLE diagnostics")
    logger.info("=" * 40)
    await scan_for_devices(duration=10.0)
    ok = await check_streams()
    logger.info("Diagnostics complete: %s", "OK" if ok else "FAILED")
    if not ok:
        sys.exit(1)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Diagnostics cancelled by user")
