"""Timed capture cycle: countdown, capture, finalize, cooldown.

The state machine owns every piece of mutable capture state (current state,
session counter, active session) and only mutates it from the asyncio event
loop thread. Sensor deliveries are marshalled onto the loop with
``call_soon_threadsafe`` and upload results come back as task
done-callbacks, so there is no locking anywhere in the pipeline.

Cycle timeline (defaults)::

    trigger      +1s          +2s          +3s             +6s
    IDLE -> COUNTING_DOWN(3) -> (2) -> (1) -> CAPTURING -> FINALIZING
         -> COOLDOWN -> (+0.5s) -> IDLE

All delayed steps are registered with a ``TransitionScheduler`` so that
``abort()`` can cancel them deterministically.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .assembler import RowAssembler
from .buffer import SessionBuffer
from .config import CaptureConfig
from .cues import CueKind, CuePlayer, LogCuePlayer
from .display import Display, DisplayEvent, LogDisplay
from .errors import AlreadySealed, SensorUnavailable
from .models import MotionSample, SensorRole
from .scheduler import TransitionScheduler
from .sensors import SampleSink, SensorSampler
from .uploader import Uploader, UploadResult, build_file_name

logger = logging.getLogger(__name__)


class CaptureState(Enum):
    IDLE = "idle"
    COUNTING_DOWN = "counting_down"
    CAPTURING = "capturing"
    FINALIZING = "finalizing"
    COOLDOWN = "cooldown"


@dataclass(eq=False)
class CaptureSession:
    """One capture cycle's data.

    Attributes:
        index: Value of the session counter when the session was created.
        buffer: Rows captured so far.
        started_at: Loop clock at capture start, set once sensors are active.
        assembler: Row fusion for this session, created with ``started_at``.
    """

    index: int
    buffer: SessionBuffer = field(default_factory=SessionBuffer)
    started_at: Optional[float] = None
    assembler: Optional[RowAssembler] = None


@dataclass(frozen=True)
class SessionSummary:
    """Statistics recorded when a session is handed to the uploader."""

    index: int
    row_count: int
    duration_s: float
    row_rate_hz: float
    file_name: str
    samples_dropped: int = 0


class CaptureStateMachine:
    """Orchestrates one capture cycle at a time.

    Args:
        sampler: Motion sensor port, activated only while capturing.
        uploader: Receives each sealed session exactly once.
        display: Presentation collaborator. Defaults to ``LogDisplay``.
        cues: Audio cue collaborator. Defaults to ``LogCuePlayer``.
        config: Timings and naming. Defaults to ``CaptureConfig()``.
        scheduler: Timed-transition queue. Defaults to one bound to the
            running loop.
    """

    def __init__(
        self,
        sampler: SensorSampler,
        uploader: Uploader,
        *,
        display: Optional[Display] = None,
        cues: Optional[CuePlayer] = None,
        config: Optional[CaptureConfig] = None,
        scheduler: Optional[TransitionScheduler] = None,
    ) -> None:
        self.sampler = sampler
        self.uploader = uploader
        self.display = display or LogDisplay()
        self.cues = cues or LogCuePlayer()
        self.config = (config or CaptureConfig()).validate()
        self.scheduler = scheduler or TransitionScheduler()

        self._state = CaptureState.IDLE
        self._remaining: Optional[int] = None
        self._session_counter = 0
        self._session: Optional[CaptureSession] = None
        self._transition: Optional[asyncio.Task[None]] = None
        self._idle = asyncio.Event()
        self._idle.set()
        self.last_summary: Optional[SessionSummary] = None
        self.last_upload: Optional["asyncio.Task[UploadResult]"] = None

    # ----------------------- Public API -----------------------

    @property
    def state(self) -> CaptureState:
        return self._state

    @property
    def remaining(self) -> Optional[int]:
        """Countdown number while counting down, otherwise None."""
        return self._remaining

    @property
    def session_counter(self) -> int:
        return self._session_counter

    @property
    def session(self) -> Optional[CaptureSession]:
        return self._session

    def trigger(self) -> bool:
        """Start a cycle if idle.

        Returns:
            True if a cycle was started. Triggers in any other state are
            ignored and leave state, session and counter untouched.
        """
        if self._state is not CaptureState.IDLE:
            logger.debug("Trigger ignored in state %s", self._state.value)
            return False

        self._idle.clear()
        count = self.config.countdown_from
        step = self.config.countdown_step_s
        logger.info("Capture cycle started (session %d)", self._session_counter)

        if count > 0:
            self._enter_countdown(count)
        else:
            # Leave IDLE now so triggers and abort see a cycle in progress
            self._set_state(CaptureState.COUNTING_DOWN)
            self._remaining = 0
        for i in range(1, count):
            self.scheduler.schedule(i * step, self._enter_countdown, count - i)
        self.scheduler.schedule(count * step, self._start_capture)
        return True

    async def wait_idle(self) -> None:
        """Return once the machine is back in ``IDLE``."""
        await self._idle.wait()

    async def abort(self) -> None:
        """Cancel the current cycle and return to ``IDLE``.

        Pending transitions are cancelled and an in-flight activation or
        finalize step is cancelled and awaited. Then the sampler is
        deactivated and an unfinished session is discarded without being
        uploaded.

        Note:
            The session counter is left unchanged. Uploads that were already
            dispatched are not affected. Calling this while idle does nothing.
        """
        if self._state is CaptureState.IDLE:
            return

        logger.info("Aborting capture cycle in state %s", self._state.value)
        self.scheduler.cancel_all()

        transition, self._transition = self._transition, None
        if transition is not None and not transition.done():
            transition.cancel()
            try:
                await transition
            except asyncio.CancelledError:
                pass

        session, self._session = self._session, None
        if session is not None and session.assembler is not None:
            session.assembler.close()

        await self._deactivate_sampler()
        self._enter_idle()

    async def close(self) -> None:
        """Abort any cycle and wait for outstanding uploads."""
        await self.abort()
        await self.uploader.drain()

    # ----------------------- Transitions -----------------------

    def _set_state(self, state: CaptureState) -> None:
        logger.debug("State %s -> %s", self._state.value, state.value)
        self._state = state
        if state is not CaptureState.COUNTING_DOWN:
            self._remaining = None

    def _enter_countdown(self, count: int) -> None:
        self._set_state(CaptureState.COUNTING_DOWN)
        self._remaining = count
        self._show(DisplayEvent.countdown(count))

    def _start_capture(self) -> None:
        self._transition = self.scheduler.loop.create_task(self._enter_capturing())

    async def _enter_capturing(self) -> None:
        session = CaptureSession(index=self._session_counter)

        try:
            await self.sampler.activate(self._make_sink(session))
        except SensorUnavailable as e:
            logger.error("Capture aborted: %s", e)
            await self._fail_activation(str(e))
            return
        except Exception as e:
            logger.exception("Sensor registration failed")
            await self._fail_activation(f"Sensor init failed: {e}")
            return

        now = self.scheduler.time()
        session.started_at = now
        session.assembler = RowAssembler(session.buffer, now, self.scheduler.time)
        self._session = session
        self._transition = None
        self._play_cue(CueKind.START)
        self._set_state(CaptureState.CAPTURING)
        self._show(DisplayEvent.capturing())
        logger.info("Capturing session %d", session.index)

        self.scheduler.schedule(self.config.capture_duration_s, self._start_finalize)

    async def _fail_activation(self, message: str) -> None:
        self._transition = None
        await self._deactivate_sampler()
        self._show(DisplayEvent.error(message))
        self._enter_idle()

    def _start_finalize(self) -> None:
        session = self._session
        if session is None or session.assembler is None:
            return
        # Close first so samples queued behind this step are dropped
        session.assembler.close()
        self._set_state(CaptureState.FINALIZING)
        self._transition = self.scheduler.loop.create_task(self._finalize(session))

    async def _finalize(self, session: CaptureSession) -> None:
        await self._deactivate_sampler()
        self._play_cue(CueKind.STOP)

        try:
            rows = session.buffer.seal_and_take()
        except AlreadySealed:
            logger.exception("Session %d sealed twice", session.index)
            rows = []

        self.last_upload = self.uploader.upload(rows, session.index)
        self.last_upload.add_done_callback(self._on_upload_done)
        self._session_counter += 1
        self._session = None
        self._transition = None

        self.last_summary = self._summarize(session, len(rows))
        logger.info(
            "Session %d finalized: %d rows in %.2fs (%.1f rows/s)",
            self.last_summary.index,
            self.last_summary.row_count,
            self.last_summary.duration_s,
            self.last_summary.row_rate_hz,
        )

        self._set_state(CaptureState.COOLDOWN)
        self._show(DisplayEvent.done())
        self.scheduler.schedule(self.config.cooldown_s, self._enter_idle)

    def _enter_idle(self) -> None:
        self._set_state(CaptureState.IDLE)
        self._show(DisplayEvent.idle())
        self._idle.set()

    # ----------------------- Callbacks -----------------------

    def _make_sink(self, session: CaptureSession) -> SampleSink:
        loop = self.scheduler.loop

        def sink(role: SensorRole, sample: MotionSample) -> None:
            try:
                loop.call_soon_threadsafe(self._on_sample, session, role, sample)
            except RuntimeError:
                logger.debug("Event loop closed, dropping %s sample", role.value)

        return sink

    def _on_sample(
        self, session: CaptureSession, role: SensorRole, sample: MotionSample
    ) -> None:
        assembler = session.assembler
        if assembler is None:
            logger.debug("Dropping %s sample before capture start", role.value)
            return
        try:
            assembler.accept(role, sample)
        except AlreadySealed:
            logger.exception("Row delivered to sealed session %d", session.index)

    def _on_upload_done(self, task: "asyncio.Task[UploadResult]") -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Upload task crashed: %s", exc)
            self._show(DisplayEvent.error(f"Upload error: {exc}"))
            return
        result = task.result()
        if result.error is not None:
            self._show(DisplayEvent.error(str(result.error)))

    # ----------------------- Helpers -----------------------

    def _summarize(self, session: CaptureSession, row_count: int) -> SessionSummary:
        started = session.started_at or self.scheduler.time()
        duration = max(self.scheduler.time() - started, 0.0)
        return SessionSummary(
            index=session.index,
            row_count=row_count,
            duration_s=duration,
            row_rate_hz=row_count / duration if duration > 0 else 0.0,
            file_name=build_file_name(
                self.config.file_prefix, session.index, self.config.file_ext
            ),
            samples_dropped=session.assembler.samples_dropped
            if session.assembler
            else 0,
        )

    async def _deactivate_sampler(self) -> None:
        try:
            await self.sampler.deactivate()
        except Exception as e:
            logger.error("Sensor unregister failed: %s", e)

    def _play_cue(self, kind: CueKind) -> None:
        try:
            self.cues.play(kind)
        except Exception as e:
            logger.warning("Failed to play %s cue: %s", kind.value, e)

    def _show(self, event: DisplayEvent) -> None:
        try:
            self.display.show(event)
        except Exception as e:
            logger.warning("Display update failed: %s", e)
