"""
Controlled scan device for deterministic testing.

Unlike SimulatedScanDevice, this device has no clock: tests queue exact
(position, intensity) batches and the device hands them out one status poll
at a time. Every call is recorded so tests can assert on call order, and any
operation can be made to return an error code or raise.

Example:
    device = ControlledScanDevice()
    device.queue_batch([100, 101], [5, 7])
    device.open(1)
    device.start(1, ChannelMode.DUAL, 0, TriggerType.INTERNAL, 0)
    device.status(1).available   # 2
"""
from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, List, Optional, Sequence, Tuple

import numpy as np

from daq.base_device import AcquisitionState, BaseScanDevice, DeviceStatus
from daq.errors import DeviceError
from shared.units import InputRange


@dataclass
class RecordedCall:
    name: str
    args: Tuple


class ControlledScanDevice(BaseScanDevice):
    """Scriptable device: queued batches, injectable error codes and exceptions."""

    @classmethod
    def device_class_name(cls) -> str:
        return "Controlled Test Device"

    def __init__(self, ranges: Tuple[int, int] = (InputRange.BIPOLAR_10V, InputRange.BIPOLAR_10V)) -> None:
        self._lock = threading.Lock()
        self._batches: Deque[Tuple[np.ndarray, np.ndarray]] = deque()
        self._pending: Dict[int, Optional[np.ndarray]] = {0: None, 1: None}
        self._ranges = (int(ranges[0]), int(ranges[1]))
        self._running = False
        self.calls: List[RecordedCall] = []
        self.error_codes: Dict[str, int] = {}
        self.exceptions: Dict[str, BaseException] = {}
        self.short_read: Dict[int, int] = {}
        self.read_limit: Dict[int, int] = {}

    # ---- Test controls ---------------------------------------------------------

    def queue_batch(self, positions: Sequence[int], intensities: Sequence[int]) -> None:
        pos = np.asarray(positions, dtype=np.int32)
        inten = np.asarray(intensities, dtype=np.int32)
        with self._lock:
            self._batches.append((pos, inten))

    def fail(self, name: str, code: int) -> None:
        """Make operation `name` return `code` from now on."""
        self.error_codes[name] = int(code)

    def raise_on(self, name: str, exc: BaseException) -> None:
        self.exceptions[name] = exc

    def call_names(self) -> List[str]:
        with self._lock:
            return [call.name for call in self.calls]

    @property
    def pending_batches(self) -> int:
        with self._lock:
            return len(self._batches)

    def _record(self, name: str, *args) -> int:
        with self._lock:
            self.calls.append(RecordedCall(name, args))
        exc = self.exceptions.get(name)
        if exc is not None:
            raise exc
        return self.error_codes.get(name, DeviceError.NO_ERROR)

    # ---- Device interface ------------------------------------------------------

    def open(self, device_id: int) -> int:
        return self._record("open", device_id)

    def close(self, device_id: int) -> int:
        return self._record("close", device_id)

    def set_clock(self, device_id: int, period: int, source: int) -> int:
        return self._record("set_clock", device_id, period, source)

    def input_set(self, device_id: int, range1: int, range2: int) -> int:
        code = self._record("input_set", device_id, range1, range2)
        if code == DeviceError.NO_ERROR:
            self._ranges = (int(range1), int(range2))
        return code

    def input_check(self, device_id: int) -> Tuple[int, int, int]:
        code = self._record("input_check", device_id)
        if code:
            return code, 0, 0
        return code, self._ranges[0], self._ranges[1]

    def start(self, device_id, channel_mode, pretrigger_len, trigger_type, trigger_channel) -> int:
        code = self._record("start", device_id, channel_mode, pretrigger_len, trigger_type, trigger_channel)
        self._running = True
        return code

    def stop(self, device_id: int) -> int:
        code = self._record("stop", device_id)
        self._running = False
        return code

    def trigger(self, device_id: int) -> int:
        return self._record("trigger", device_id)

    def _status_impl(self, device_id: int) -> DeviceStatus:
        code = self._record("status", device_id)
        if code:
            return DeviceStatus(state=AcquisitionState.STOPPED, error=code)
        with self._lock:
            if self._pending[0] is None and self._pending[1] is None and self._batches:
                pos, inten = self._batches.popleft()
                self._pending = {0: pos, 1: inten}
            ch1 = 0 if self._pending[0] is None else len(self._pending[0])
            ch2 = 0 if self._pending[1] is None else len(self._pending[1])
        state = AcquisitionState.CONVERTING if self._running else AcquisitionState.STOPPED
        return DeviceStatus(state=state, ch1_available=ch1, ch2_available=ch2)

    def read_batch(self, device_id: int, channel: int, buffer: np.ndarray, requested_len: int) -> Tuple[int, int]:
        code = self._record(f"read_batch[{channel}]", device_id, channel, requested_len)
        with self._lock:
            data = self._pending.get(channel)
            if data is None:
                return code, 0
            count = min(int(requested_len), len(data), self.read_limit.get(channel, len(data)))
            rest = data[count:]
            limit = self.short_read.get(channel)
            if limit is not None:
                # A short read drops the rest of the batch.
                count = min(count, limit)
                rest = data[:0]
            buffer[:count] = data[:count]
            self._pending[channel] = rest if len(rest) else None
        if code:
            return code, 0
        return code, count


__all__ = ["ControlledScanDevice", "RecordedCall"]
