"""
Straight-binary to voltage conversion for the two analog inputs.

The converter is 16-bit: raw codes span 0..65535 across the full scale of the
selected input range. Bipolar ranges are offset by half the span so that code
32768 maps to 0 V.
"""
from __future__ import annotations

from enum import IntEnum
from typing import Tuple, Union

import numpy as np

ADC_LEVELS = 2 ** 16

ArrayLike = Union[float, int, np.ndarray]


class InputRange(IntEnum):
    """Input range codes understood by the device."""

    BIPOLAR_10V = 0
    BIPOLAR_5V = 1
    BIPOLAR_2_5V = 2
    BIPOLAR_1_25V = 3
    UNIPOLAR_10V = 4
    UNIPOLAR_5V = 5
    UNIPOLAR_2_5V = 6

    @property
    def width(self) -> float:
        return _WIDTHS[self]

    @property
    def bipolar(self) -> bool:
        return self <= InputRange.BIPOLAR_1_25V


_WIDTHS = {
    InputRange.BIPOLAR_10V: 20.0,
    InputRange.BIPOLAR_5V: 10.0,
    InputRange.BIPOLAR_2_5V: 5.0,
    InputRange.BIPOLAR_1_25V: 2.5,
    InputRange.UNIPOLAR_10V: 10.0,
    InputRange.UNIPOLAR_5V: 5.0,
    InputRange.UNIPOLAR_2_5V: 2.5,
}


def as_input_range(code: int) -> InputRange:
    try:
        return InputRange(int(code))
    except ValueError:
        raise ValueError(f"Unsupported input range code: {code!r}") from None


def range_width(code: int) -> float:
    """Full-scale span in volts for an input range code."""
    return as_input_range(code).width


def to_voltage(raw: ArrayLike, code: int) -> ArrayLike:
    """Convert straight-binary samples to volts for the given range code."""
    rng = as_input_range(code)
    volts = np.asarray(raw, dtype=np.float64) * rng.width / ADC_LEVELS
    if rng.bipolar:
        volts = volts - rng.width / 2.0
    if np.ndim(volts) == 0:
        return float(volts)
    return volts


def to_raw(volts: ArrayLike, code: int) -> ArrayLike:
    """Inverse of :func:`to_voltage`, without rounding to integer codes."""
    rng = as_input_range(code)
    shifted = np.asarray(volts, dtype=np.float64)
    if rng.bipolar:
        shifted = shifted + rng.width / 2.0
    raw = shifted * ADC_LEVELS / rng.width
    if np.ndim(raw) == 0:
        return float(raw)
    return raw


def convert_to_voltage(
    ch1_range: int,
    ch2_range: int,
    ch1_data: ArrayLike,
    ch2_data: ArrayLike,
) -> Tuple[ArrayLike, ArrayLike]:
    """Convert a (position, intensity) pair of channels to volts."""
    return to_voltage(ch1_data, ch1_range), to_voltage(ch2_data, ch2_range)


__all__ = [
    "ADC_LEVELS",
    "InputRange",
    "as_input_range",
    "convert_to_voltage",
    "range_width",
    "to_raw",
    "to_voltage",
]
