"""
Position-keyed aggregation of intensity readings.

The dataset is three parallel arrays sorted by key: quantized position, mean
intensity, and the number of samples behind each mean. A batch is merged in
one pass:

1. quantize every position to the key resolution;
2. collapse the batch into per-key sums and counts;
3. binary-search the existing keys (``numpy.searchsorted``) and fold the
   batch into matching bins with the running-mean update
   ``mean_new = (mean_old * count_old + batch_sum) / (count_old + batch_count)``;
4. append unseen keys and restore key order with a single sort.

Folding k samples at once gives the same mean as k sequential updates
``mean += (sample - mean) / (count + 1)``, up to floating-point rounding.
"""
from __future__ import annotations

import logging
from typing import List, Tuple

import numpy as np

from shared.guarded_lock import PoisoningLock
from shared.models import BinEntry

logger = logging.getLogger(__name__)

Arrays = Tuple[np.ndarray, np.ndarray, np.ndarray]


def quantize(positions: np.ndarray, resolution: float) -> np.ndarray:
    """Round positions to the nearest multiple of `resolution`."""
    if resolution <= 0:
        raise ValueError("resolution must be positive")
    pos = np.asarray(positions, dtype=np.float64)
    if resolution == 1.0:
        return np.rint(pos)
    # Round in step units, then snap back so equal steps give bit-identical keys.
    return np.rint(pos / resolution) * resolution


def empty_dataset() -> Arrays:
    return (
        np.empty(0, dtype=np.float64),
        np.empty(0, dtype=np.float64),
        np.empty(0, dtype=np.int64),
    )


def merge_batch(
    keys: np.ndarray,
    means: np.ndarray,
    counts: np.ndarray,
    positions: np.ndarray,
    intensities: np.ndarray,
    resolution: float = 1.0,
) -> Arrays:
    """Merge one batch of (position, intensity) pairs into a sorted dataset.

    Returns new `(keys, means, counts)` arrays; the inputs are not modified.
    """
    positions = np.asarray(positions, dtype=np.float64)
    intensities = np.asarray(intensities, dtype=np.float64)
    if positions.shape != intensities.shape or positions.ndim != 1:
        raise ValueError(
            f"positions and intensities must be 1D and equal length, "
            f"got {positions.shape} and {intensities.shape}"
        )
    if positions.size == 0:
        return keys, means, counts

    batch_keys, inverse = np.unique(quantize(positions, resolution), return_inverse=True)
    inverse = inverse.reshape(-1)
    batch_sums = np.bincount(inverse, weights=intensities, minlength=batch_keys.size)
    batch_counts = np.bincount(inverse, minlength=batch_keys.size).astype(np.int64)

    means = means.copy()
    counts = counts.copy()

    idx = np.searchsorted(keys, batch_keys)
    in_range = idx < keys.size
    found = np.zeros(batch_keys.size, dtype=bool)
    found[in_range] = keys[idx[in_range]] == batch_keys[in_range]

    hit = idx[found]
    total = counts[hit] + batch_counts[found]
    means[hit] = (means[hit] * counts[hit] + batch_sums[found]) / total
    counts[hit] = total

    new = ~found
    if np.any(new):
        keys = np.concatenate((keys, batch_keys[new]))
        means = np.concatenate((means, batch_sums[new] / batch_counts[new]))
        counts = np.concatenate((counts, batch_counts[new]))
        order = np.argsort(keys, kind="stable")
        keys, means, counts = keys[order], means[order], counts[order]
    return keys, means, counts


class PositionDataset:
    """
    The shared, sorted dataset of bins.

    Written by the acquisition worker (one merge per batch) and read by the
    publisher (one snapshot per tick). Both hold the same lock for the whole
    merge or copy, so readers never see a partially merged batch.
    """

    def __init__(self, resolution: float = 1.0) -> None:
        if resolution <= 0:
            raise ValueError("resolution must be positive")
        self._resolution = float(resolution)
        self._lock = PoisoningLock("dataset lock")
        self._keys, self._means, self._counts = empty_dataset()
        self._merged_samples = 0

    @classmethod
    def from_entries(cls, entries: List[BinEntry], resolution: float = 1.0) -> "PositionDataset":
        """Build a dataset from existing bins (keys must already be quantized)."""
        dataset = cls(resolution)
        ordered = sorted(entries, key=lambda entry: entry.key)
        keys = [entry.key for entry in ordered]
        if len(set(keys)) != len(keys):
            raise ValueError("bin keys must be unique")
        dataset._keys = np.asarray(keys, dtype=np.float64)
        dataset._means = np.asarray([entry.value for entry in ordered], dtype=np.float64)
        dataset._counts = np.asarray([entry.count for entry in ordered], dtype=np.int64)
        return dataset

    @property
    def resolution(self) -> float:
        return self._resolution

    @property
    def lock(self) -> PoisoningLock:
        return self._lock

    def merge(self, positions: np.ndarray, intensities: np.ndarray) -> int:
        """Merge one batch under the dataset lock. Returns the bin count afterwards."""
        with self._lock:
            self._keys, self._means, self._counts = merge_batch(
                self._keys,
                self._means,
                self._counts,
                positions,
                intensities,
                self._resolution,
            )
            self._merged_samples += int(np.size(positions))
            return self._keys.size

    def snapshot(self) -> Arrays:
        """Copy out `(keys, means, counts)` under the dataset lock."""
        with self._lock:
            return self._keys.copy(), self._means.copy(), self._counts.copy()

    def entries(self) -> List[BinEntry]:
        keys, means, counts = self.snapshot()
        return [
            BinEntry(key=float(k), value=float(v), count=int(c))
            for k, v, c in zip(keys, means, counts)
        ]

    @property
    def merged_samples(self) -> int:
        with self._lock:
            return self._merged_samples

    def __len__(self) -> int:
        with self._lock:
            return int(self._keys.size)


__all__ = ["PositionDataset", "empty_dataset", "merge_batch", "quantize"]
