"""Turtle Industry TUSB-0216AD backend.

Binds the vendor ``TUSB16AD`` shared library with :mod:`ctypes`. The library
is loaded on first use, so this module imports (and the registry can list the
backend) on machines where the driver is not installed.

Driver conventions:
- ``TUSB0216AD_Ad_Status`` reports state 0/2 stopped, 1 waiting for trigger,
  3 converting after trigger, plus per-channel overflow flags and lengths.
- ``TUSB0216AD_Ad_Data`` takes the requested length by pointer and writes the
  number of samples actually copied back through the same pointer.
"""
from __future__ import annotations

import ctypes
import ctypes.util
import logging
import threading
from typing import Optional, Tuple

import numpy as np

from .base_device import BaseScanDevice, DeviceStatus
from .errors import DeviceError, DeviceUnavailableError

logger = logging.getLogger(__name__)

DEFAULT_LIBRARY = "TUSB16AD"

c_short = ctypes.c_short
c_int = ctypes.c_int
c_uint = ctypes.c_uint
c_uchar = ctypes.c_ubyte

# symbol -> (restype, argtypes)
_PROTOTYPES = {
    "TUSB0216AD_Device_Open": (c_short, [c_short]),
    "TUSB0216AD_Device_Close": (None, [c_short]),
    "TUSB0216AD_Start": (c_short, [c_short, c_uchar, c_int, c_uchar, c_uchar]),
    "TUSB0216AD_Stop": (c_short, [c_short]),
    "TUSB0216AD_Ad_Status": (
        c_short,
        [c_short, ctypes.POINTER(c_uchar), ctypes.POINTER(c_uchar), ctypes.POINTER(c_uint)],
    ),
    "TUSB0216AD_Ad_Data": (
        c_short,
        [c_short, c_uchar, ctypes.POINTER(c_int), ctypes.POINTER(c_uint)],
    ),
    "TUSB0216AD_AdClk_Set": (c_short, [c_short, c_int, c_uchar]),
    "TUSB0216AD_Input_Set": (c_short, [c_short, c_uchar, c_uchar]),
    "TUSB0216AD_Input_Check": (
        c_short,
        [c_short, ctypes.POINTER(c_uchar), ctypes.POINTER(c_uchar)],
    ),
    "TUSB0216AD_Trigger": (c_short, [c_short]),
}


def load_library(name: Optional[str] = None) -> ctypes.CDLL:
    """Load the vendor library and declare the prototypes used here."""
    candidate = name or ctypes.util.find_library(DEFAULT_LIBRARY) or DEFAULT_LIBRARY
    try:
        lib = ctypes.CDLL(candidate)
    except OSError as exc:
        raise DeviceUnavailableError(f"Unable to load TUSB-0216AD driver library {candidate!r}: {exc}") from exc
    for symbol, (restype, argtypes) in _PROTOTYPES.items():
        func = getattr(lib, symbol)
        func.restype = restype
        func.argtypes = argtypes
    logger.info("Loaded TUSB-0216AD driver library %s", candidate)
    return lib


class Tusb0216adDevice(BaseScanDevice):
    """TUSB-0216AD 16-bit, 2-channel USB digitizer."""

    DEVICE_KEY = "tusb0216ad"

    @classmethod
    def device_class_name(cls) -> str:
        return "TUSB-0216AD"

    def __init__(self, library: Optional[str] = None) -> None:
        self._library_name = library
        self._lib: Optional[ctypes.CDLL] = None
        self._lib_lock = threading.Lock()

    @property
    def lib(self) -> ctypes.CDLL:
        with self._lib_lock:
            if self._lib is None:
                self._lib = load_library(self._library_name)
            return self._lib

    # ---- Lifecycle -------------------------------------------------------------

    def open(self, device_id: int) -> int:
        return int(self.lib.TUSB0216AD_Device_Open(device_id))

    def close(self, device_id: int) -> int:
        self.lib.TUSB0216AD_Device_Close(device_id)
        return DeviceError.NO_ERROR

    # ---- Configuration ---------------------------------------------------------

    def set_clock(self, device_id: int, period: int, source: int) -> int:
        return int(self.lib.TUSB0216AD_AdClk_Set(device_id, period, source))

    def input_set(self, device_id: int, range1: int, range2: int) -> int:
        return int(self.lib.TUSB0216AD_Input_Set(device_id, range1, range2))

    def input_check(self, device_id: int) -> Tuple[int, int, int]:
        range1 = c_uchar(0)
        range2 = c_uchar(0)
        code = self.lib.TUSB0216AD_Input_Check(device_id, ctypes.byref(range1), ctypes.byref(range2))
        return int(code), range1.value, range2.value

    # ---- Run control -----------------------------------------------------------

    def start(
        self,
        device_id: int,
        channel_mode: int,
        pretrigger_len: int,
        trigger_type: int,
        trigger_channel: int,
    ) -> int:
        return int(
            self.lib.TUSB0216AD_Start(
                device_id, channel_mode, pretrigger_len, trigger_type, trigger_channel
            )
        )

    def stop(self, device_id: int) -> int:
        return int(self.lib.TUSB0216AD_Stop(device_id))

    def trigger(self, device_id: int) -> int:
        return int(self.lib.TUSB0216AD_Trigger(device_id))

    # ---- Data access -----------------------------------------------------------

    def _status_impl(self, device_id: int) -> DeviceStatus:
        state = c_uchar(0)
        overflow = (c_uchar * 2)()
        datalen = (c_uint * 2)()
        code = self.lib.TUSB0216AD_Ad_Status(device_id, ctypes.byref(state), overflow, datalen)
        return DeviceStatus(
            state=state.value,
            ch1_available=int(datalen[0]),
            ch2_available=int(datalen[1]),
            overflow=(int(overflow[0]), int(overflow[1])),
            error=int(code),
        )

    def read_batch(
        self,
        device_id: int,
        channel: int,
        buffer: np.ndarray,
        requested_len: int,
    ) -> Tuple[int, int]:
        if buffer.dtype != np.int32 or not buffer.flags["C_CONTIGUOUS"]:
            raise ValueError("buffer must be a contiguous int32 array")
        if requested_len > len(buffer):
            return DeviceError.INVALID_PARAMETER, 0
        length = c_uint(int(requested_len))
        data = buffer.ctypes.data_as(ctypes.POINTER(c_int))
        code = int(self.lib.TUSB0216AD_Ad_Data(device_id, channel, data, ctypes.byref(length)))
        if code != DeviceError.NO_ERROR:
            return code, 0
        return code, int(length.value)
