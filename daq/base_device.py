"""
Base class and datamodels for two-channel scan digitizers.

Goals:
- Thin, stable contract mirroring the vendor driver (integer return codes).
- Clean lifecycle: open → input_set/set_clock → start → trigger → stop → close.
- Caller-owned sample buffers, filled in place by read_batch().
- Never block: status() and read_batch() return immediately.

Subclasses implement each call against real hardware (ctypes) or a simulator.
Protocol failures are reported through the returned code and never raised.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import IntEnum
from typing import Tuple

import numpy as np

from .errors import describe_error

logger = logging.getLogger(__name__)


# ----------------------------
# Data model (shared contract)
# ----------------------------

class ChannelMode(IntEnum):
    CH1 = 0
    CH2 = 1
    DUAL = 2


class TriggerType(IntEnum):
    INTERNAL = 0
    EXTERNAL_DIGITAL = 1
    ANALOG_RISING = 2
    ANALOG_FALLING = 3


class ClockSource(IntEnum):
    INTERNAL = 0
    EXTERNAL = 1


class AcquisitionState(IntEnum):
    STOPPED = 0
    WAITING_FOR_TRIGGER = 1
    STOPPED_ALT = 2
    CONVERTING = 3


POSITION_CHANNEL = 0
INTENSITY_CHANNEL = 1


@dataclass(frozen=True)
class DeviceStatus:
    """Result of a status poll.

    `state` uses the hardware encoding: 0 or 2 stopped, 1 waiting for the
    trigger, 3 converting after the trigger (data is ready to be read).
    """

    state: int
    ch1_available: int = 0
    ch2_available: int = 0
    overflow: Tuple[int, int] = (0, 0)
    error: int = 0

    @property
    def data_ready(self) -> bool:
        return self.error == 0 and self.state == AcquisitionState.CONVERTING

    @property
    def available(self) -> int:
        return min(self.ch1_available, self.ch2_available)


# ----------------------------
# Base class
# ----------------------------

class BaseScanDevice(ABC):
    """
    Abstract base for two-channel digitizers driven by the scan pipeline.

    Typical flow:
        device = Driver()
        device.open(1)
        device.input_set(1, InputRange.BIPOLAR_10V, InputRange.BIPOLAR_10V)
        device.start(1, ChannelMode.DUAL, 0, TriggerType.INTERNAL, 0)
        device.trigger(1)
        status = device.status(1)
        code, n = device.read_batch(1, 0, buffer, min(len(buffer), status.available))
        device.stop(1)
        device.close(1)
    """

    DEVICE_KEY = ""

    @classmethod
    @abstractmethod
    def device_class_name(cls) -> str:
        """Return the human-friendly name for this driver type."""
        raise NotImplementedError

    # ----------
    # Lifecycle
    # ----------

    @abstractmethod
    def open(self, device_id: int) -> int:
        raise NotImplementedError

    @abstractmethod
    def close(self, device_id: int) -> int:
        raise NotImplementedError

    # -------------
    # Configuration
    # -------------

    @abstractmethod
    def set_clock(self, device_id: int, period: int, source: int) -> int:
        """Set the sampling clock. `period` is in 20 ns ticks (500 = 100 kHz)."""
        raise NotImplementedError

    @abstractmethod
    def input_set(self, device_id: int, range1: int, range2: int) -> int:
        raise NotImplementedError

    @abstractmethod
    def input_check(self, device_id: int) -> Tuple[int, int, int]:
        """Return `(code, range1, range2)` for the currently configured inputs."""
        raise NotImplementedError

    # ------------
    # Run control
    # ------------

    @abstractmethod
    def start(
        self,
        device_id: int,
        channel_mode: int,
        pretrigger_len: int,
        trigger_type: int,
        trigger_channel: int,
    ) -> int:
        raise NotImplementedError

    @abstractmethod
    def stop(self, device_id: int) -> int:
        raise NotImplementedError

    @abstractmethod
    def trigger(self, device_id: int) -> int:
        raise NotImplementedError

    # ------------
    # Data access
    # ------------

    @abstractmethod
    def _status_impl(self, device_id: int) -> DeviceStatus:
        raise NotImplementedError

    def status(self, device_id: int, verbose: bool = False) -> DeviceStatus:
        status = self._status_impl(device_id)
        if verbose:
            logger.info(
                "Status: %d, Overflow: %s, DataLen: [%d, %d], Error: %s",
                status.state,
                list(status.overflow),
                status.ch1_available,
                status.ch2_available,
                describe_error(status.error),
            )
        return status

    @abstractmethod
    def read_batch(
        self,
        device_id: int,
        channel: int,
        buffer: np.ndarray,
        requested_len: int,
    ) -> Tuple[int, int]:
        """
        Copy up to `requested_len` acquired samples of `channel` into `buffer`.

        Returns `(code, actual_len)`. On error `actual_len` is 0 and the buffer
        contents are unspecified.
        """
        raise NotImplementedError


__all__ = [
    "AcquisitionState",
    "BaseScanDevice",
    "ChannelMode",
    "ClockSource",
    "DeviceStatus",
    "INTENSITY_CHANNEL",
    "POSITION_CHANNEL",
    "TriggerType",
]
