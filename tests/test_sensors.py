import asyncio

import pytest
from bleak.exc import BleakError

from wrist_capture import sensors
from wrist_capture.errors import SensorUnavailable
from wrist_capture.models import MotionSample, SensorRole
from wrist_capture.sensors import (
    BleSensorSampler,
    MockSensorSampler,
    _parse_line_from_buffer,
    parse_device_line,
)


def test_parse_device_line_splits_roles() -> None:
    accel, gyro = parse_device_line("1234, 0.1, 0.2, 9.8, 1.5, -2.5, 0.0, 25.31, 812.4")
    assert accel == MotionSample(0.1, 0.2, 9.8)
    assert gyro == MotionSample(1.5, -2.5, 0.0)


def test_parse_device_line_rejects_short_lines() -> None:
    with pytest.raises(ValueError):
        parse_device_line("1234,0.1,0.2")


def test_line_buffer_reassembles_fragments() -> None:
    buf = bytearray(b"10,1,2,")
    assert _parse_line_from_buffer(buf) is None

    buf.extend(b"3,4,5,6\r\n20,1")
    assert _parse_line_from_buffer(buf) == "10,1,2,3,4,5,6"
    assert bytes(buf) == b"20,1"


def test_line_buffer_consumes_noise_lines() -> None:
    buf = bytearray(b" , ,\n10,1,2,3,4,5,6\n")
    assert _parse_line_from_buffer(buf) == ""
    assert _parse_line_from_buffer(buf) == "10,1,2,3,4,5,6"
    assert _parse_line_from_buffer(buf) is None


def test_mock_sampler_reports_missing_role() -> None:
    sampler = MockSensorSampler(available=[SensorRole.ACCELEROMETER])

    async def scenario():
        with pytest.raises(SensorUnavailable) as excinfo:
            await sampler.activate(lambda role, sample: None)
        return excinfo.value

    err = asyncio.run(scenario())
    assert err.role is SensorRole.GYROSCOPE
    assert not sampler.is_active


def test_mock_sampler_deactivate_is_idempotent() -> None:
    sampler = MockSensorSampler()

    async def scenario():
        await sampler.deactivate()
        await sampler.activate(lambda role, sample: None)
        await sampler.deactivate()
        await sampler.deactivate()

    asyncio.run(scenario())
    assert not sampler.is_active


def test_mock_sampler_delivers_both_roles() -> None:
    received: list = []
    sampler = MockSensorSampler(sampling_interval=0.005, gyro_interval=0.007)

    async def scenario():
        await sampler.activate(lambda role, sample: received.append((role, sample)))
        assert sampler.is_active
        await asyncio.sleep(0.1)
        await sampler.deactivate()
        count = len(received)
        await asyncio.sleep(0.03)
        return count

    count_at_stop = asyncio.run(scenario())

    roles = {role for role, _ in received}
    assert roles == {SensorRole.ACCELEROMETER, SensorRole.GYROSCOPE}
    assert len(received) == count_at_stop
    assert all(isinstance(s, MotionSample) for _, s in received)


def test_ble_lines_deliver_gyroscope_before_accelerometer() -> None:
    received: list = []
    sampler = BleSensorSampler("AA:BB")

    def sink(role, sample):
        received.append((role, sample))

    sampler._handle(bytearray(b"10,1,2,3,4,5,6\n20,7,"), sink)
    sampler._handle(bytearray(b"8,9,10,11,12\n"), sink)

    assert received == [
        (SensorRole.GYROSCOPE, MotionSample(4, 5, 6)),
        (SensorRole.ACCELEROMETER, MotionSample(1, 2, 3)),
        (SensorRole.GYROSCOPE, MotionSample(10, 11, 12)),
        (SensorRole.ACCELEROMETER, MotionSample(7, 8, 9)),
    ]
    assert sampler.lines_received == 2


def test_ble_malformed_line_is_counted_and_skipped() -> None:
    received: list = []
    sampler = BleSensorSampler("AA:BB")

    sampler._handle(
        bytearray(b"10,1,2\nnot,a,number,x,y,z,w\n30,1,1,1,2,2,2\n"),
        lambda role, sample: received.append(role),
    )

    assert sampler.lines_rejected == 2
    assert sampler.lines_received == 1
    assert received == [SensorRole.GYROSCOPE, SensorRole.ACCELEROMETER]


def test_ble_device_not_found_is_accelerometer_unavailable(monkeypatch) -> None:
    async def no_device(**kwargs):
        return None

    monkeypatch.setattr(sensors, "find_device", no_device)
    sampler = BleSensorSampler(device_name="Missing Watch", scan_timeout=0.1)

    async def scenario():
        with pytest.raises(SensorUnavailable) as excinfo:
            await sampler.activate(lambda role, sample: None)
        return excinfo.value

    err = asyncio.run(scenario())
    assert err.role is SensorRole.ACCELEROMETER
    assert "Missing Watch" in str(err)
    assert not sampler.is_active


class FailingClient:
    instances: list = []

    def __init__(self, address, disconnected_callback=None) -> None:
        self.address = address
        self.disconnected = False
        FailingClient.instances.append(self)

    async def connect(self) -> None:
        raise BleakError("connection timed out")

    async def disconnect(self) -> None:
        self.disconnected = True


def test_ble_connect_failure_is_accelerometer_unavailable(monkeypatch) -> None:
    FailingClient.instances.clear()
    monkeypatch.setattr(sensors, "BleakClient", FailingClient)
    sampler = BleSensorSampler("AA:BB")

    async def scenario():
        with pytest.raises(SensorUnavailable) as excinfo:
            await sampler.activate(lambda role, sample: None)
        return excinfo.value

    err = asyncio.run(scenario())
    assert err.role is SensorRole.ACCELEROMETER
    assert "connection timed out" in str(err)
    assert not sampler.is_active
    assert [c.disconnected for c in FailingClient.instances] == [True]
