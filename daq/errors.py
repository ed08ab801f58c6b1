"""Error codes returned by the TUSB-0216AD driver and helpers to report them."""
from __future__ import annotations

import logging
from enum import IntEnum

logger = logging.getLogger(__name__)


class DeviceError(IntEnum):
    NO_ERROR = 0
    INVALID_ID = 1
    INVALID_DRIVER = 2
    ALREADY_OPENED = 3
    TOO_MANY_DEVICES = 4
    OPEN_FAILED = 5
    DEVICE_NOT_FOUND = 6
    INVALID_PARAMETER = 8
    USB_ERROR = 9
    SEQUENTIAL_READ = 11
    OTHER = 99

    @classmethod
    def from_code(cls, code: int) -> "DeviceError":
        try:
            return cls(int(code))
        except ValueError:
            return cls.OTHER


_MESSAGES = {
    DeviceError.NO_ERROR: "No error",
    DeviceError.INVALID_ID: "Invalid ID",
    DeviceError.INVALID_DRIVER: "Invalid driver",
    DeviceError.ALREADY_OPENED: "Device already opened",
    DeviceError.TOO_MANY_DEVICES: "Too many devices",
    DeviceError.OPEN_FAILED: "Failed to open device",
    DeviceError.DEVICE_NOT_FOUND: "Device not found",
    DeviceError.INVALID_PARAMETER: "Parameters are invalid",
    DeviceError.USB_ERROR: "USB connection error",
    DeviceError.SEQUENTIAL_READ: "Sequential reading",
    DeviceError.OTHER: "Other error",
}


def describe_error(code: int) -> str:
    return _MESSAGES[DeviceError.from_code(code)]


class DeviceUnavailableError(RuntimeError):
    """The backend cannot reach its driver at all (library missing or unloadable)."""


def check_error(code: int, operation: str) -> int:
    """Log a non-zero driver return code against the operation that produced it.

    Device errors are advisory: the code is returned unchanged so callers can
    decide whether to skip work, but nothing is raised.
    """
    code = int(code)
    if code != DeviceError.NO_ERROR:
        logger.warning("%s: %s (code %d)", operation, describe_error(code), code)
    return code


__all__ = ["DeviceError", "DeviceUnavailableError", "check_error", "describe_error"]
