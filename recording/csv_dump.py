"""CSV export of a finished scan's dataset."""
from __future__ import annotations

import csv
import logging
import os
from typing import Tuple, Union

from core.aggregation import PositionDataset
from shared.units import to_voltage

logger = logging.getLogger(__name__)

CSV_HEADER = ("position_v", "intensity_v", "count")


def dump_dataset_csv(
    path: Union[str, os.PathLike],
    dataset: PositionDataset,
    ranges: Tuple[int, int],
) -> int:
    """
    Write one row per bin, ascending by position, and return the row count.

    Keys and means are converted with the same input ranges the publisher
    used, so the file matches the final posted payload.
    """
    keys, means, counts = dataset.snapshot()
    positions = to_voltage(keys, ranges[0])
    intensities = to_voltage(means, ranges[1])

    directory = os.path.dirname(os.fspath(path))
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(path, "w", newline="", encoding="utf-8") as fh:
        writer = csv.writer(fh)
        writer.writerow(CSV_HEADER)
        for x, y, n in zip(positions, intensities, counts):
            writer.writerow((repr(float(x)), repr(float(y)), int(n)))
    logger.info("Wrote %d bins to %s", len(keys), path)
    return int(len(keys))


__all__ = ["CSV_HEADER", "dump_dataset_csv"]
