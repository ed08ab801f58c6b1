"""Digitizer backends and the Device Interface they implement."""

from .base_device import (
    AcquisitionState,
    BaseScanDevice,
    ChannelMode,
    ClockSource,
    DeviceStatus,
    INTENSITY_CHANNEL,
    POSITION_CHANNEL,
    TriggerType,
)
from .errors import DeviceError, DeviceUnavailableError, check_error, describe_error

__all__ = [
    "AcquisitionState",
    "BaseScanDevice",
    "ChannelMode",
    "ClockSource",
    "DeviceError",
    "DeviceStatus",
    "DeviceUnavailableError",
    "INTENSITY_CHANNEL",
    "POSITION_CHANNEL",
    "TriggerType",
    "check_error",
    "describe_error",
]
