from wrist_capture.assembler import RowAssembler
from wrist_capture.buffer import SessionBuffer
from wrist_capture.models import FusedRow, MotionSample, SensorRole

ACC = SensorRole.ACCELEROMETER
GYR = SensorRole.GYROSCOPE


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _assembler(clock: FakeClock) -> tuple[RowAssembler, SessionBuffer]:
    buf = SessionBuffer()
    return RowAssembler(buf, clock.now, clock), buf


def test_no_row_until_gyroscope_seen() -> None:
    clock = FakeClock()
    asm, buf = _assembler(clock)

    assert asm.accept(ACC, MotionSample(1, 2, 3)) is None
    assert asm.accept(GYR, MotionSample(4, 5, 6)) is None
    assert len(buf) == 0

    clock.now += 0.125
    row = asm.accept(ACC, MotionSample(7, 8, 9))
    assert row == FusedRow(125, 7, 8, 9, 4, 5, 6)
    assert len(buf) == 1


def test_row_count_matches_driver_deliveries_after_first_gyro() -> None:
    clock = FakeClock()
    asm, buf = _assembler(clock)
    sequence = [ACC, ACC, GYR, ACC, GYR, GYR, ACC, ACC, GYR, ACC]

    for i, role in enumerate(sequence):
        clock.now += 0.005
        asm.accept(role, MotionSample(i, i, i))

    first_gyro = sequence.index(GYR)
    expected = sum(1 for r in sequence[first_gyro:] if r is ACC)
    assert len(buf) == expected == asm.rows_emitted == 4


def test_stale_gyroscope_is_reused() -> None:
    clock = FakeClock()
    asm, buf = _assembler(clock)
    asm.accept(GYR, MotionSample(0.1, 0.2, 0.3))
    asm.accept(ACC, MotionSample(1, 1, 1))
    asm.accept(ACC, MotionSample(2, 2, 2))

    rows = buf.seal_and_take()
    assert [(r.gyro_x, r.gyro_y, r.gyro_z) for r in rows] == [(0.1, 0.2, 0.3)] * 2


def test_gyroscope_alone_never_produces_rows() -> None:
    clock = FakeClock()
    asm, buf = _assembler(clock)
    for _ in range(5):
        asm.accept(GYR, MotionSample(1, 1, 1))
    assert len(buf) == 0


def test_timestamps_start_at_zero_and_never_decrease() -> None:
    clock = FakeClock()
    asm, buf = _assembler(clock)
    asm.accept(GYR, MotionSample(0, 0, 0))
    asm.accept(ACC, MotionSample(0, 0, 0))
    for step in (0.004, 0.0001, 0.0, 0.02):
        clock.now += step
        asm.accept(ACC, MotionSample(0, 0, 0))

    stamps = [r.timestamp for r in buf.seal_and_take()]
    assert stamps[0] == 0
    assert stamps == sorted(stamps)
    assert all(ts >= 0 for ts in stamps)


def test_clock_going_backwards_is_clamped() -> None:
    clock = FakeClock()
    asm, buf = _assembler(clock)
    asm.accept(GYR, MotionSample(0, 0, 0))
    clock.now += 0.25
    asm.accept(ACC, MotionSample(0, 0, 0))
    clock.now -= 0.125
    asm.accept(ACC, MotionSample(0, 0, 0))
    assert [r.timestamp for r in buf.seal_and_take()] == [250, 250]


def test_closed_assembler_drops_samples() -> None:
    clock = FakeClock()
    asm, buf = _assembler(clock)
    asm.accept(GYR, MotionSample(0, 0, 0))
    asm.close()

    assert asm.accept(ACC, MotionSample(1, 1, 1)) is None
    assert asm.accept(GYR, MotionSample(1, 1, 1)) is None
    assert asm.samples_dropped == 2
    assert len(buf) == 0
    assert not asm.is_open
