# daq/simulated_device.py
from __future__ import annotations

import math
import threading
import time
from typing import Callable, Dict, Iterable, Optional, Tuple

import numpy as np

from shared.settings import CLOCK_TICK_S, MAX_BATCH_LENGTH, MAX_CLOCK_PERIOD, MIN_CLOCK_PERIOD
from shared.units import ADC_LEVELS, InputRange, to_raw

from .base_device import AcquisitionState, BaseScanDevice, ChannelMode, DeviceStatus
from .errors import DeviceError


class SimulatedScanDevice(BaseScanDevice):
    """
    Simulates a stage sweep recorded on a two-channel 16-bit digitizer:
      - CH1: stage position (sinusoidal sweep plus small noise)
      - CH2: detector intensity, a Gaussian peak as a function of position

    Samples are produced in real time at the programmed clock rate once the
    device has been started and triggered, and are buffered on the "device"
    until read. Each channel keeps its own read cursor, like the hardware.
    """

    DEVICE_KEY = "simulated"

    @classmethod
    def device_class_name(cls) -> str:
        return "Simulated"

    def __init__(
        self,
        device_ids: Iterable[int] = (1,),
        *,
        seed: Optional[int] = None,
        sweep_hz: float = 20.0,
        sweep_amplitude_v: float = 8.0,
        peak_center_v: float = 2.0,
        peak_width_v: float = 1.5,
        peak_height_v: float = 6.0,
        noise_counts: float = 30.0,
        buffer_capacity: int = MAX_BATCH_LENGTH,
        time_source: Callable[[], float] = time.monotonic,
    ) -> None:
        self._valid_ids = {int(i) for i in device_ids}
        self._open_ids: set[int] = set()
        self._rng = np.random.default_rng(seed)
        self._sweep_hz = sweep_hz
        self._sweep_amplitude_v = sweep_amplitude_v
        self._peak_center_v = peak_center_v
        self._peak_width_v = peak_width_v
        self._peak_height_v = peak_height_v
        self._noise_counts = noise_counts
        self._capacity = int(buffer_capacity)
        self._now = time_source
        self._lock = threading.RLock()

        self._clock_period = MIN_CLOCK_PERIOD
        self._ranges: Tuple[int, int] = (InputRange.BIPOLAR_10V, InputRange.BIPOLAR_10V)
        self._channel_mode: Optional[int] = None
        self._armed = False
        self._trigger_time: Optional[float] = None
        self._stop_time: Optional[float] = None
        self._read_cursor: Dict[int, int] = {0: 0, 1: 0}
        self._overflow = [0, 0]

    # ---- Helpers ---------------------------------------------------------------

    @property
    def sample_rate(self) -> float:
        return 1.0 / (self._clock_period * CLOCK_TICK_S)

    def _check_id(self, device_id: int) -> int:
        if device_id not in self._valid_ids:
            return DeviceError.INVALID_ID
        if device_id not in self._open_ids:
            return DeviceError.INVALID_ID
        return DeviceError.NO_ERROR

    def _produced(self) -> int:
        """Total samples converted since the trigger."""
        if self._trigger_time is None:
            return 0
        end = self._stop_time if self._stop_time is not None else self._now()
        # Small offset absorbs float error in the elapsed time.
        return max(0, int((end - self._trigger_time) * self.sample_rate + 1e-6))

    def _available(self, channel: int, produced: int) -> int:
        pending = produced - self._read_cursor[channel]
        if pending > self._capacity:
            # Device buffer overran: oldest samples are lost.
            self._overflow[channel] = 1
            self._read_cursor[channel] = produced - self._capacity
            pending = self._capacity
        return pending

    def _position_volts(self, index: np.ndarray) -> np.ndarray:
        t = index / self.sample_rate
        return self._sweep_amplitude_v * np.sin(2.0 * math.pi * self._sweep_hz * t)

    def _synthesize(self, channel: int, start: int, count: int) -> np.ndarray:
        index = np.arange(start, start + count, dtype=np.float64)
        position_v = self._position_volts(index)
        if channel == 0:
            raw = to_raw(position_v, self._ranges[0])
        else:
            intensity_v = self._peak_height_v * np.exp(
                -((position_v - self._peak_center_v) / self._peak_width_v) ** 2
            )
            raw = to_raw(intensity_v, self._ranges[1])
        if self._noise_counts > 0:
            raw = raw + self._rng.normal(0.0, self._noise_counts, size=count)
        return np.clip(np.rint(raw), 0, ADC_LEVELS - 1).astype(np.int32)

    # ---- Lifecycle -------------------------------------------------------------

    def open(self, device_id: int) -> int:
        with self._lock:
            if device_id not in self._valid_ids:
                return DeviceError.OPEN_FAILED
            if device_id in self._open_ids:
                return DeviceError.ALREADY_OPENED
            self._open_ids.add(device_id)
            return DeviceError.NO_ERROR

    def close(self, device_id: int) -> int:
        with self._lock:
            self._open_ids.discard(device_id)
            self._armed = False
            return DeviceError.NO_ERROR

    # ---- Configuration ---------------------------------------------------------

    def set_clock(self, device_id: int, period: int, source: int) -> int:
        with self._lock:
            error = self._check_id(device_id)
            if error:
                return error
            if not MIN_CLOCK_PERIOD <= period <= MAX_CLOCK_PERIOD or source not in (0, 1):
                return DeviceError.INVALID_PARAMETER
            self._clock_period = int(period)
            return DeviceError.NO_ERROR

    def input_set(self, device_id: int, range1: int, range2: int) -> int:
        with self._lock:
            error = self._check_id(device_id)
            if error:
                return error
            valid = {int(r) for r in InputRange}
            if range1 not in valid or range2 not in valid:
                return DeviceError.INVALID_PARAMETER
            self._ranges = (int(range1), int(range2))
            return DeviceError.NO_ERROR

    def input_check(self, device_id: int) -> Tuple[int, int, int]:
        with self._lock:
            error = self._check_id(device_id)
            if error:
                return error, 0, 0
            return DeviceError.NO_ERROR, self._ranges[0], self._ranges[1]

    # ---- Run control -----------------------------------------------------------

    def start(
        self,
        device_id: int,
        channel_mode: int,
        pretrigger_len: int,
        trigger_type: int,
        trigger_channel: int,
    ) -> int:
        with self._lock:
            error = self._check_id(device_id)
            if error:
                return error
            if (
                channel_mode not in (ChannelMode.CH1, ChannelMode.CH2, ChannelMode.DUAL)
                or pretrigger_len < 0
                or not 0 <= trigger_type <= 3
                or trigger_channel not in (0, 1)
            ):
                return DeviceError.INVALID_PARAMETER
            self._channel_mode = int(channel_mode)
            self._armed = True
            self._trigger_time = None
            self._stop_time = None
            self._read_cursor = {0: 0, 1: 0}
            self._overflow = [0, 0]
            return DeviceError.NO_ERROR

    def trigger(self, device_id: int) -> int:
        with self._lock:
            error = self._check_id(device_id)
            if error:
                return error
            if not self._armed:
                return DeviceError.INVALID_PARAMETER
            self._trigger_time = self._now()
            return DeviceError.NO_ERROR

    def stop(self, device_id: int) -> int:
        with self._lock:
            error = self._check_id(device_id)
            if error:
                return error
            if self._trigger_time is not None and self._stop_time is None:
                self._stop_time = self._now()
            self._armed = False
            return DeviceError.NO_ERROR

    # ---- Data access -----------------------------------------------------------

    def _status_impl(self, device_id: int) -> DeviceStatus:
        with self._lock:
            error = self._check_id(device_id)
            if error:
                return DeviceStatus(state=AcquisitionState.STOPPED, error=error)
            if not self._armed:
                state = AcquisitionState.STOPPED
            elif self._trigger_time is None:
                state = AcquisitionState.WAITING_FOR_TRIGGER
            else:
                state = AcquisitionState.CONVERTING
            produced = self._produced()
            return DeviceStatus(
                state=state,
                ch1_available=self._available(0, produced),
                ch2_available=self._available(1, produced),
                overflow=(self._overflow[0], self._overflow[1]),
            )

    def read_batch(
        self,
        device_id: int,
        channel: int,
        buffer: np.ndarray,
        requested_len: int,
    ) -> Tuple[int, int]:
        with self._lock:
            error = self._check_id(device_id)
            if error:
                return error, 0
            if channel not in (0, 1):
                return DeviceError.INVALID_PARAMETER, 0
            if not 1 <= requested_len <= MAX_BATCH_LENGTH or requested_len > len(buffer):
                return DeviceError.INVALID_PARAMETER, 0
            count = min(int(requested_len), self._available(channel, self._produced()))
            if count > 0:
                start = self._read_cursor[channel]
                buffer[:count] = self._synthesize(channel, start, count)
                self._read_cursor[channel] = start + count
            return DeviceError.NO_ERROR, count
