from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from typing import Dict

import numpy as np
from scipy import signal

from shared.settings import ScanSettings


@dataclass(frozen=True)
class LowPassSettings:
    """FIR low-pass configuration for the position channel."""

    cutoff_hz: float = 1_000.0
    sample_rate_hz: float = 100_000.0
    transition: float = 0.02

    @classmethod
    def from_scan_settings(cls, settings: ScanSettings) -> "LowPassSettings":
        return cls(
            cutoff_hz=settings.lowpass_cutoff_hz,
            sample_rate_hz=settings.sample_rate_hz,
            transition=settings.lowpass_transition,
        )

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)

    @property
    def numtaps(self) -> int:
        """Kernel length implied by the transition band (always odd)."""
        taps = int(math.ceil(4.0 / self.transition))
        return taps if taps % 2 == 1 else taps + 1

    def validate(self) -> None:
        if self.sample_rate_hz <= 0:
            raise ValueError("sample_rate_hz must be positive")
        if not 0 < self.cutoff_hz < self.sample_rate_hz / 2.0:
            raise ValueError("cutoff_hz must be between 0 and Nyquist")
        if not 0 < self.transition < 0.5:
            raise ValueError("transition must be between 0 and 0.5")


def design_lowpass(settings: LowPassSettings) -> np.ndarray:
    """Windowed-sinc kernel with unity gain at DC."""
    settings.validate()
    return signal.firwin(
        settings.numtaps,
        settings.cutoff_hz,
        fs=settings.sample_rate_hz,
        pass_zero="lowpass",
    )


class LowPassFilter:
    """
    Stateless FIR low-pass applied to one batch at a time.

    Nothing is carried over between calls: every batch is filtered on its own,
    padded with its first and last sample so the output has the input length
    and is aligned with it (zero phase delay). Samples within half a kernel of
    a batch edge are less well filtered than the interior.
    """

    def __init__(self, settings: LowPassSettings | None = None) -> None:
        self._settings = settings or LowPassSettings()
        self._taps = design_lowpass(self._settings)

    @property
    def settings(self) -> LowPassSettings:
        return self._settings

    @property
    def taps(self) -> np.ndarray:
        return self._taps

    @property
    def edge_samples(self) -> int:
        """Samples at each batch edge affected by the padding."""
        return len(self._taps) // 2

    def apply(self, samples: np.ndarray) -> np.ndarray:
        x = np.asarray(samples, dtype=np.float64)
        if x.ndim != 1:
            raise ValueError("samples must be 1D")
        if x.size == 0:
            return np.empty(0, dtype=np.float64)

        half = self.edge_samples
        padded = np.pad(x, half, mode="edge")
        return signal.convolve(padded, self._taps, mode="valid")

    __call__ = apply


__all__ = ["LowPassFilter", "LowPassSettings", "design_lowpass"]
