"""
Shared data structures used by the device layer and the scan pipeline.
"""

from .guarded_lock import LockPoisonedError, PoisoningLock
from .models import BinEntry, ScanPayload, ScanState
from .settings import ScanSettings, load_settings
from .units import InputRange, convert_to_voltage, to_voltage

__all__ = [
    "BinEntry",
    "InputRange",
    "LockPoisonedError",
    "PoisoningLock",
    "ScanPayload",
    "ScanSettings",
    "ScanState",
    "convert_to_voltage",
    "load_settings",
    "to_voltage",
]
