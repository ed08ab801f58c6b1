"""Scan pipeline: lifecycle, filtering, aggregation and the three scan threads."""

from .acquisition import AcquisitionWorker
from .aggregation import PositionDataset, merge_batch, quantize
from .conditioning import LowPassFilter, LowPassSettings, design_lowpass
from .lifecycle import ScanLifecycle
from .publisher import StreamingPublisher
from .runtime import ScanAbortedError, ScanRuntime, run
from .scan_controller import DEFAULT_RANGES, ScanController

__all__ = [
    "AcquisitionWorker",
    "DEFAULT_RANGES",
    "LowPassFilter",
    "LowPassSettings",
    "PositionDataset",
    "ScanAbortedError",
    "ScanController",
    "ScanLifecycle",
    "ScanRuntime",
    "StreamingPublisher",
    "design_lowpass",
    "merge_batch",
    "quantize",
    "run",
]
