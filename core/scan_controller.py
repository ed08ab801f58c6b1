from __future__ import annotations

import logging
import time
from typing import Callable, Optional, Tuple

from daq.base_device import BaseScanDevice, ChannelMode, ClockSource, TriggerType
from daq.errors import check_error
from shared.units import InputRange

from .lifecycle import ScanLifecycle

logger = logging.getLogger(__name__)

# Both inputs take the lock-in amplifier's full ±10 V output.
DEFAULT_RANGES: Tuple[InputRange, InputRange] = (InputRange.BIPOLAR_10V, InputRange.BIPOLAR_10V)


class ScanController:
    """
    Owns the scan timing and the lifecycle transitions.

    The controller's single sleep is the only clock in the pipeline: it starts
    continuous dual-channel acquisition, triggers it, marks the scan RUNNING,
    waits for the scan duration, stops the device and marks the scan FINISHED.
    Device error codes are logged and the scan carries on.
    """

    def __init__(
        self,
        device: BaseScanDevice,
        device_id: int,
        lifecycle: ScanLifecycle,
        duration_s: float,
        *,
        input_ranges: Tuple[int, int] = DEFAULT_RANGES,
        clock_period: Optional[int] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if duration_s < 0:
            raise ValueError("duration_s must be non-negative")
        self._device = device
        self._device_id = device_id
        self._lifecycle = lifecycle
        self._duration_s = float(duration_s)
        self._input_ranges = input_ranges
        self._clock_period = clock_period
        self._sleep = sleep

    @property
    def duration_s(self) -> float:
        return self._duration_s

    def _arm(self, device: BaseScanDevice, device_id: int) -> None:
        if self._clock_period is not None:
            check_error(
                device.set_clock(device_id, self._clock_period, ClockSource.INTERNAL),
                "set_clock",
            )
        check_error(device.input_set(device_id, *self._input_ranges), "input_set")
        check_error(
            device.start(device_id, ChannelMode.DUAL, 0, TriggerType.INTERNAL, 0),
            "start",
        )
        check_error(device.trigger(device_id), "trigger")

    def run(self) -> None:
        device = self._device
        device_id = self._device_id
        logger.info("Timer start: %.3f s scan on device %s", self._duration_s, device_id)

        try:
            self._arm(device, device_id)
        except Exception:
            self._lifecycle.abort()
            raise

        self._lifecycle.begin()
        try:
            self._sleep(self._duration_s)
        finally:
            try:
                check_error(device.stop(device_id), "stop")
            finally:
                self._lifecycle.finish()
        logger.info("Timer stopped")


__all__ = ["DEFAULT_RANGES", "ScanController"]
