"""Device error table, simulated digitizer and backend registry."""
from __future__ import annotations

import logging

import numpy as np
import pytest

from daq.base_device import AcquisitionState, ChannelMode, ClockSource, DeviceStatus, TriggerType
from daq.errors import DeviceError, DeviceUnavailableError, check_error, describe_error
from daq.registry import create_device, list_devices
from daq.simulated_device import SimulatedScanDevice
from daq.tusb0216ad import Tusb0216adDevice
from shared.units import InputRange, to_voltage


class FakeClock:
    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ---------------------------------------------------------------------------
# Error codes
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "code, message",
    [
        (0, "No error"),
        (1, "Invalid ID"),
        (5, "Failed to open device"),
        (8, "Parameters are invalid"),
        (11, "Sequential reading"),
        (99, "Other error"),
        (42, "Other error"),
    ],
)
def test_describe_error(code, message):
    assert describe_error(code) == message


def test_check_error_logs_and_returns_code(caplog):
    with caplog.at_level(logging.WARNING, logger="daq.errors"):
        assert check_error(0, "open") == 0
        assert not caplog.records
        assert check_error(DeviceError.USB_ERROR, "read_batch(ch1)") == 9
    assert "read_batch(ch1): USB connection error (code 9)" in caplog.text


def test_status_data_ready_only_when_converting():
    assert DeviceStatus(state=AcquisitionState.CONVERTING).data_ready
    assert not DeviceStatus(state=AcquisitionState.WAITING_FOR_TRIGGER).data_ready
    assert not DeviceStatus(state=AcquisitionState.CONVERTING, error=9).data_ready
    assert DeviceStatus(state=3, ch1_available=10, ch2_available=7).available == 7


# ---------------------------------------------------------------------------
# Simulated device
# ---------------------------------------------------------------------------

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sim(clock):
    device = SimulatedScanDevice(seed=0, time_source=clock)
    assert device.open(1) == DeviceError.NO_ERROR
    return device


def _arm(device, device_id=1):
    assert device.input_set(device_id, InputRange.BIPOLAR_10V, InputRange.BIPOLAR_10V) == 0
    assert device.start(device_id, ChannelMode.DUAL, 0, TriggerType.INTERNAL, 0) == 0
    assert device.trigger(device_id) == 0


def test_open_errors(clock):
    device = SimulatedScanDevice(time_source=clock)
    assert device.open(2) == DeviceError.OPEN_FAILED
    assert device.open(1) == DeviceError.NO_ERROR
    assert device.open(1) == DeviceError.ALREADY_OPENED
    assert device.close(1) == DeviceError.NO_ERROR


def test_calls_on_unopened_device_return_invalid_id(clock):
    device = SimulatedScanDevice(time_source=clock)
    assert device.input_set(1, 0, 0) == DeviceError.INVALID_ID
    assert device.status(1).error == DeviceError.INVALID_ID
    assert device.read_batch(1, 0, np.zeros(4, dtype=np.int32), 4) == (DeviceError.INVALID_ID, 0)


def test_parameter_validation(sim):
    assert sim.set_clock(1, 499, ClockSource.INTERNAL) == DeviceError.INVALID_PARAMETER
    assert sim.input_set(1, 0, 7) == DeviceError.INVALID_PARAMETER
    assert sim.start(1, 5, 0, 0, 0) == DeviceError.INVALID_PARAMETER
    assert sim.trigger(1) == DeviceError.INVALID_PARAMETER  # not started
    buf = np.zeros(8, dtype=np.int32)
    assert sim.read_batch(1, 2, buf, 8)[0] == DeviceError.INVALID_PARAMETER
    assert sim.read_batch(1, 0, buf, 9)[0] == DeviceError.INVALID_PARAMETER


def test_input_check_reports_programmed_ranges(sim):
    assert sim.input_set(1, InputRange.BIPOLAR_5V, InputRange.UNIPOLAR_10V) == 0
    assert sim.input_check(1) == (0, InputRange.BIPOLAR_5V, InputRange.UNIPOLAR_10V)


def test_status_follows_start_trigger_stop(sim, clock):
    assert sim.status(1).state == AcquisitionState.STOPPED
    sim.start(1, ChannelMode.DUAL, 0, TriggerType.INTERNAL, 0)
    assert sim.status(1).state == AcquisitionState.WAITING_FOR_TRIGGER
    sim.trigger(1)
    clock.advance(0.01)
    status = sim.status(1)
    assert status.data_ready
    assert status.ch1_available == status.ch2_available == 1000
    sim.stop(1)
    assert sim.status(1).state == AcquisitionState.STOPPED


def test_samples_accumulate_at_clock_rate_and_drain(sim, clock):
    _arm(sim)
    clock.advance(0.05)
    buf = np.zeros(100_000, dtype=np.int32)
    code, n = sim.read_batch(1, 0, buf, 3000)
    assert (code, n) == (0, 3000)
    assert sim.status(1).ch1_available == 2000
    assert sim.status(1).ch2_available == 5000
    code, n = sim.read_batch(1, 0, buf, 100_000)
    assert n == 2000


def test_intensity_peaks_at_configured_position(clock):
    device = SimulatedScanDevice(seed=1, time_source=clock, noise_counts=0.0)
    device.open(1)
    _arm(device)
    clock.advance(0.1)
    pos = np.zeros(10_000, dtype=np.int32)
    inten = np.zeros(10_000, dtype=np.int32)
    _, n1 = device.read_batch(1, 0, pos, 10_000)
    _, n2 = device.read_batch(1, 1, inten, 10_000)
    assert n1 == n2 == 10_000
    x = to_voltage(pos, 0)
    y = to_voltage(inten, 0)
    assert x.min() == pytest.approx(-8.0, abs=0.05)
    assert x.max() == pytest.approx(8.0, abs=0.05)
    assert x[np.argmax(y)] == pytest.approx(2.0, abs=0.05)
    assert y.max() == pytest.approx(6.0, abs=0.01)


def test_overflow_keeps_newest_samples(clock):
    device = SimulatedScanDevice(seed=0, time_source=clock, buffer_capacity=1000)
    device.open(1)
    _arm(device)
    clock.advance(0.05)
    status = device.status(1)
    assert status.overflow == (1, 1)
    assert status.available == 1000


def test_data_remains_readable_after_stop(sim, clock):
    _arm(sim)
    clock.advance(0.002)
    sim.stop(1)
    clock.advance(1.0)
    buf = np.zeros(1000, dtype=np.int32)
    assert sim.read_batch(1, 1, buf, 1000) == (0, 200)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

def test_registry_lists_backends():
    keys = {descriptor.key for descriptor in list_devices()}
    assert {"simulated", "tusb0216ad"} <= keys


def test_create_device_by_key():
    device = create_device("simulated", seed=3)
    assert isinstance(device, SimulatedScanDevice)


def test_create_unknown_device():
    with pytest.raises(KeyError):
        create_device("nope")


def test_hardware_backend_loads_library_lazily():
    device = Tusb0216adDevice(library="/nonexistent/libTUSB16AD.so")
    with pytest.raises(DeviceUnavailableError, match="TUSB-0216AD"):
        device.open(1)
