from __future__ import annotations

import asyncio
from typing import Optional, Sequence

from wrist_capture.config import CaptureConfig
from wrist_capture.errors import SensorUnavailable, UploadError
from wrist_capture.models import FusedRow, MotionSample, SensorRole
from wrist_capture.sensors import SampleSink, SensorSampler
from wrist_capture.state_machine import CaptureState, CaptureStateMachine
from wrist_capture.uploader import (
    UploadResult,
    UploadStatus,
    Uploader,
    build_file_name,
)


FAST_CONFIG = CaptureConfig(
    countdown_step_s=0.01,
    capture_duration_s=0.2,
    cooldown_s=0.05,
)


class ManualSampler(SensorSampler):
    """Sampler whose deliveries are pushed by the test."""

    def __init__(self, missing: Optional[SensorRole] = None) -> None:
        self.missing = missing
        self.sink: Optional[SampleSink] = None
        self.active = False
        self.activations = 0
        self.deactivations = 0

    @property
    def is_active(self) -> bool:
        return self.active

    async def activate(self, sink: SampleSink) -> None:
        self.activations += 1
        if self.missing is not None:
            raise SensorUnavailable(self.missing)
        self.sink = sink
        self.active = True

    async def deactivate(self) -> None:
        self.deactivations += 1
        self.active = False

    def deliver(self, role: SensorRole, x: float, y: float, z: float) -> None:
        # Keeps working after deactivate() to mimic in-flight deliveries
        assert self.sink is not None
        self.sink(role, MotionSample(x, y, z))


class RecordingUploader(Uploader):
    """Uploader that records every hand-off and resolves immediately."""

    def __init__(self, error: Optional[UploadError] = None) -> None:
        self.calls: list[tuple[list[FusedRow], int]] = []
        self.error = error

    def upload(
        self, rows: Sequence[FusedRow], session_index: int
    ) -> "asyncio.Task[UploadResult]":
        rows = list(rows)
        self.calls.append((rows, session_index))
        return asyncio.get_running_loop().create_task(
            self._result(rows, session_index)
        )

    async def _result(self, rows: list[FusedRow], index: int) -> UploadResult:
        name = build_file_name("gesture", index, "csv")
        if not rows:
            return UploadResult(index, name, 0, UploadStatus.SKIPPED)
        if self.error is not None:
            return UploadResult(
                index, name, len(rows), UploadStatus.FAILED, error=self.error
            )
        return UploadResult(index, name, len(rows), UploadStatus.SENT, 200)


async def wait_for_state(
    machine: CaptureStateMachine, state: CaptureState, timeout: float = 2.0
) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while machine.state is not state:
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError(f"timed out waiting for {state}, at {machine.state}")
        await asyncio.sleep(0.001)


async def settle() -> None:
    """Let callbacks queued with call_soon_threadsafe run."""
    for _ in range(3):
        await asyncio.sleep(0)
