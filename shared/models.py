from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, List, Sequence

import numpy as np


def _as_float_list(values: Sequence[float] | np.ndarray) -> List[float]:
    """Return a plain list of Python floats suitable for JSON encoding."""
    arr = np.asarray(values, dtype=np.float64)
    if arr.ndim != 1:
        raise ValueError(f"values must be 1D, got {arr.ndim}D")
    return arr.tolist()


# ----------------------------
# Scan lifecycle
# ----------------------------

class ScanState(IntEnum):
    """Tri-state scan status shared by the controller and both workers."""

    NOT_STARTED = -1
    RUNNING = 0
    FINISHED = 1


# ----------------------------
# Aggregated dataset
# ----------------------------

@dataclass(frozen=True)
class BinEntry:
    """One aggregated bin: quantized position, running-mean intensity, sample count."""

    key: float
    value: float
    count: int

    def __post_init__(self) -> None:
        if self.count < 1:
            raise ValueError("count must be at least 1")


# ----------------------------
# Streaming payload
# ----------------------------

@dataclass(frozen=True)
class ScanPayload:
    """Snapshot of the dataset in physical units, as posted to the collector."""

    x: List[float] = field(default_factory=list)
    y: List[float] = field(default_factory=list)
    finished: bool = False

    def __post_init__(self) -> None:
        x = _as_float_list(self.x)
        y = _as_float_list(self.y)
        if len(x) != len(y):
            raise ValueError("x and y must have the same length")
        object.__setattr__(self, "x", x)
        object.__setattr__(self, "y", y)
        object.__setattr__(self, "finished", bool(self.finished))

    def __len__(self) -> int:
        return len(self.x)

    def to_json(self) -> Dict[str, Any]:
        return {"x": list(self.x), "y": list(self.y), "finished": self.finished}


__all__ = ["BinEntry", "ScanPayload", "ScanState"]
