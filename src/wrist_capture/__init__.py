from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Optional

from .config import CaptureConfig
from .cues import BellCuePlayer, CuePlayer, LogCuePlayer
from .display import LogDisplay
from .sensors import BleSensorSampler, DEVICE_NAME, MockSensorSampler, SensorSampler
from .state_machine import CaptureStateMachine
from .uploader import HttpUploader

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    defaults = CaptureConfig()
    parser = argparse.ArgumentParser(
        prog="wrist-capture",
        description="Capture short wrist motion bursts (accelerometer + gyroscope) "
        "and upload each one as CSV to a remote collector.",
    )

    # Collector
    parser.add_argument(
        "--server-url",
        default=defaults.server_url,
        help=f"Collector endpoint (default: {defaults.server_url})",
    )
    parser.add_argument(
        "--request-timeout",
        type=float,
        default=defaults.request_timeout_s,
        help="Upload timeout in seconds (default: no client-side timeout)",
    )
    parser.add_argument(
        "--file-prefix",
        default=defaults.file_prefix,
        help=f"Uploaded file name prefix (default: {defaults.file_prefix})",
    )
    parser.add_argument(
        "--file-ext",
        default=defaults.file_ext,
        help=f"Uploaded file name extension (default: {defaults.file_ext})",
    )

    # Timing
    parser.add_argument(
        "--countdown",
        type=int,
        default=defaults.countdown_from,
        help=f"Countdown start number (default: {defaults.countdown_from})",
    )
    parser.add_argument(
        "--countdown-step",
        type=float,
        default=defaults.countdown_step_s,
        help=f"Seconds per countdown number (default: {defaults.countdown_step_s})",
    )
    parser.add_argument(
        "--duration",
        type=float,
        default=defaults.capture_duration_s,
        help=f"Capture duration in seconds (default: {defaults.capture_duration_s})",
    )
    parser.add_argument(
        "--cooldown",
        type=float,
        default=defaults.cooldown_s,
        help=f"Seconds before a new capture is accepted (default: {defaults.cooldown_s})",
    )
    parser.add_argument(
        "--sampling-interval",
        type=float,
        default=defaults.sampling_interval_s,
        help=f"Requested sensor interval in seconds (default: {defaults.sampling_interval_s})",
    )

    # Sensors
    parser.add_argument(
        "--mock",
        action="store_true",
        help="Use synthetic motion data (no device required)",
    )
    parser.add_argument(
        "--address", help="BLE address of the wearable (auto-discovered if omitted)"
    )
    parser.add_argument(
        "--device-name",
        default=DEVICE_NAME,
        help=f"Device name to look for during discovery (default: {DEVICE_NAME})",
    )
    parser.add_argument(
        "--scan-timeout",
        type=float,
        default=10.0,
        help="BLE scan timeout in seconds (default: 10.0)",
    )

    # Run mode
    parser.add_argument(
        "--cycles",
        type=int,
        default=None,
        help="Run N capture cycles back to back and exit (default: interactive)",
    )
    parser.add_argument(
        "--bell",
        action="store_true",
        help="Ring the terminal bell for start/stop cues",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG", "NOTSET"],
        help="Log level (default: WARNING)",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Also write logs to this file (default: stderr only)",
    )
    return parser


def config_from_args(args: argparse.Namespace) -> CaptureConfig:
    return CaptureConfig(
        server_url=args.server_url,
        countdown_from=args.countdown,
        countdown_step_s=args.countdown_step,
        capture_duration_s=args.duration,
        cooldown_s=args.cooldown,
        sampling_interval_s=args.sampling_interval,
        file_prefix=args.file_prefix,
        file_ext=args.file_ext,
        request_timeout_s=args.request_timeout,
    ).validate()


def setup_logging(level_name: str, log_file: Optional[str] = None) -> None:
    level = getattr(logging, str(level_name).upper(), logging.WARNING)
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        try:
            handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
        except OSError as e:
            # Keep running with stderr only
            print(f"Cannot open log file {log_file}: {e}", file=sys.stderr)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        handlers=handlers,
        force=True,
    )


async def run_cycles(machine: CaptureStateMachine, cycles: int) -> None:
    """Run ``cycles`` capture cycles back to back."""
    for _ in range(cycles):
        machine.trigger()
        await machine.wait_idle()


async def run_interactive(machine: CaptureStateMachine) -> None:
    """Enter triggers a capture, 'q' (or EOF) quits."""
    loop = asyncio.get_running_loop()
    print("Press Enter to capture, 'q' + Enter to quit.", file=sys.stderr)
    while True:
        line = await loop.run_in_executor(None, sys.stdin.readline)
        if not line or line.strip().lower() == "q":
            break
        if not machine.trigger():
            print("Busy, capture already in progress.", file=sys.stderr)


async def run(args: argparse.Namespace, config: CaptureConfig) -> None:
    sampler: SensorSampler
    if args.mock:
        sampler = MockSensorSampler(sampling_interval=config.sampling_interval_s)
    else:
        sampler = BleSensorSampler(
            args.address,
            device_name=args.device_name,
            scan_timeout=args.scan_timeout,
            sampling_interval=config.sampling_interval_s,
        )
    cues: CuePlayer = BellCuePlayer() if args.bell else LogCuePlayer()
    uploader = HttpUploader(
        config.server_url,
        file_prefix=config.file_prefix,
        file_ext=config.file_ext,
        request_timeout=config.request_timeout_s,
    )
    machine = CaptureStateMachine(
        sampler, uploader, display=LogDisplay(), cues=cues, config=config
    )
    try:
        if args.cycles is not None:
            await run_cycles(machine, args.cycles)
        else:
            await run_interactive(machine)
    finally:
        await machine.close()
        await uploader.close()


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()
    setup_logging(args.log_level, args.log_file)

    try:
        config = config_from_args(args)
    except ValueError as e:
        parser.error(str(e))

    logger.info("Uploading to %s", config.server_url)
    try:
        asyncio.run(run(args, config))
    except KeyboardInterrupt:
        logger.info("Stopped by user")
        raise SystemExit(130)
