import pytest

from wrist_capture.buffer import SessionBuffer
from wrist_capture.errors import AlreadySealed
from wrist_capture.models import FusedRow


def _row(ts: int) -> FusedRow:
    return FusedRow(ts, 0.0, 0.0, 9.8, 0.0, 0.0, 0.0)


def test_seal_returns_rows_in_insertion_order() -> None:
    buf = SessionBuffer()
    for ts in (0, 10, 20):
        buf.append(_row(ts))
    assert len(buf) == 3

    rows = buf.seal_and_take()
    assert [r.timestamp for r in rows] == [0, 10, 20]
    assert buf.is_sealed


def test_second_seal_fails() -> None:
    buf = SessionBuffer()
    buf.append(_row(0))
    buf.seal_and_take()
    with pytest.raises(AlreadySealed):
        buf.seal_and_take()


def test_append_after_seal_fails_and_leaves_result_untouched() -> None:
    buf = SessionBuffer()
    buf.append(_row(0))
    rows = buf.seal_and_take()
    with pytest.raises(AlreadySealed):
        buf.append(_row(5))
    assert rows == [_row(0)]


def test_empty_buffer_seals_cleanly() -> None:
    assert SessionBuffer().seal_and_take() == []
