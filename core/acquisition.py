from __future__ import annotations

import logging
import threading
import time
from dataclasses import asdict, dataclass
from typing import Callable, Dict, Optional, Tuple

import numpy as np

from daq.base_device import INTENSITY_CHANNEL, POSITION_CHANNEL, BaseScanDevice
from daq.errors import check_error
from shared.settings import MAX_BATCH_LENGTH

from .aggregation import PositionDataset
from .lifecycle import ScanLifecycle

logger = logging.getLogger(__name__)


@dataclass
class AcquisitionStats:
    polls: int = 0
    batches: int = 0
    samples: int = 0
    read_errors: int = 0
    status_errors: int = 0
    short_reads: int = 0

    def snapshot(self) -> Dict[str, int]:
        return asdict(self)


class AcquisitionWorker:
    """
    Pulls sample batches from the device while the scan is RUNNING.

    Each iteration polls the device status without sleeping. When the device
    reports data ready, one batch per channel is read (bounded by
    `max_batch` and by what each channel has available), the position
    channel is low-pass filtered, and the filtered positions are merged with
    the raw intensities into the shared dataset. Samples one channel delivered
    without a partner on the other are held back and paired on a later poll.

    A failing status call is logged once per distinct error code; repeats only
    increment `status_errors` so a dead link does not flood the log.
    """

    def __init__(
        self,
        device: BaseScanDevice,
        device_id: int,
        lifecycle: ScanLifecycle,
        dataset: PositionDataset,
        lowpass: Callable[[np.ndarray], np.ndarray],
        *,
        max_batch: int = 100_000,
        start_poll_interval: float = 0.001,
        idle_sleep: float = 0.0,
    ) -> None:
        if not 1 <= max_batch <= MAX_BATCH_LENGTH:
            raise ValueError(f"max_batch must be between 1 and {MAX_BATCH_LENGTH}")
        self._device = device
        self._device_id = device_id
        self._lifecycle = lifecycle
        self._dataset = dataset
        self._lowpass = lowpass
        self._max_batch = int(max_batch)
        self._start_poll_interval = start_poll_interval
        self._idle_sleep = idle_sleep
        self._stats = AcquisitionStats()
        self._stats_lock = threading.Lock()
        self._position_buf: Optional[np.ndarray] = None
        self._intensity_buf: Optional[np.ndarray] = None
        self._carry: Dict[int, np.ndarray] = {
            POSITION_CHANNEL: np.zeros(0, dtype=np.int32),
            INTENSITY_CHANNEL: np.zeros(0, dtype=np.int32),
        }
        self._status_error = 0
        self._status_error_streak = 0

    def stats(self) -> Dict[str, int]:
        with self._stats_lock:
            return self._stats.snapshot()

    def run(self) -> None:
        logger.info("Data acquisition waiting for scan start")
        self._lifecycle.wait_until_started(self._start_poll_interval)
        logger.info("Data acquisition started")

        self._position_buf = np.zeros(self._max_batch, dtype=np.int32)
        self._intensity_buf = np.zeros(self._max_batch, dtype=np.int32)

        while not self._lifecycle.finished:
            merged = self.poll_once()
            if not merged and self._idle_sleep > 0:
                time.sleep(self._idle_sleep)

        logger.info("Data acquisition stopped: %s", self.stats())

    def poll_once(self) -> int:
        """One status poll and, if data is ready, one read/filter/merge pass.

        Returns the number of samples merged (0 when nothing was ready).
        """
        if self._position_buf is None or self._intensity_buf is None:
            self._position_buf = np.zeros(self._max_batch, dtype=np.int32)
            self._intensity_buf = np.zeros(self._max_batch, dtype=np.int32)

        with self._stats_lock:
            self._stats.polls += 1

        status = self._device.status(self._device_id)
        if status.error:
            self._report_status_error(int(status.error))
            return 0
        if self._status_error:
            logger.info(
                "Device status recovered after %d failed polls", self._status_error_streak
            )
            self._status_error = 0
            self._status_error_streak = 0
        if not status.data_ready:
            return 0

        # Request length is reset to the full capacity on every poll.
        want1 = min(self._max_batch - len(self._carry[POSITION_CHANNEL]), status.ch1_available)
        want2 = min(self._max_batch - len(self._carry[INTENSITY_CHANNEL]), status.ch2_available)
        if want1 <= 0 and want2 <= 0:
            return 0

        positions_raw, intensities_raw = self._read_pair(want1, want2)
        length = len(positions_raw)
        if length == 0:
            return 0

        positions = self._lowpass(positions_raw)
        intensities = intensities_raw.astype(np.float64)
        if len(positions) != length:
            raise RuntimeError(
                f"low-pass returned {len(positions)} samples for a {length}-sample batch"
            )
        bins = self._dataset.merge(positions, intensities)
        with self._stats_lock:
            self._stats.batches += 1
            self._stats.samples += length
        logger.debug("Merged %d samples, %d bins", length, bins)
        return length

    def _report_status_error(self, code: int) -> None:
        # Only a change of error code is logged; repeats are counted.
        if code != self._status_error:
            check_error(code, "status")
            self._status_error = code
            self._status_error_streak = 0
        else:
            logger.debug("status: error code %d repeated", code)
        self._status_error_streak += 1
        with self._stats_lock:
            self._stats.status_errors += 1

    def _read_channel(self, channel: int, buffer: np.ndarray, requested: int) -> Tuple[np.ndarray, bool]:
        """Read up to `requested` new samples and prepend what was carried over."""
        carried = self._carry[channel]
        if requested <= 0:
            return carried, False
        code, length = self._device.read_batch(self._device_id, channel, buffer, requested)
        if check_error(code, f"read_batch(ch{channel + 1})"):
            return carried, True
        fresh = buffer[:length]
        if len(carried):
            return np.concatenate((carried, fresh)), False
        return fresh, False

    def _read_pair(self, want1: int, want2: int) -> Tuple[np.ndarray, np.ndarray]:
        """
        Read both channels and return equal-length position/intensity arrays.

        The device keeps a separate read cursor per channel, so samples one
        channel returned beyond what the other delivered are kept and paired
        on the next poll instead of being dropped.
        """
        ch1, failed1 = self._read_channel(POSITION_CHANNEL, self._position_buf, want1)
        ch2, failed2 = self._read_channel(INTENSITY_CHANNEL, self._intensity_buf, want2)
        length = min(len(ch1), len(ch2))
        self._carry[POSITION_CHANNEL] = ch1[length:].copy()
        self._carry[INTENSITY_CHANNEL] = ch2[length:].copy()
        with self._stats_lock:
            self._stats.read_errors += int(failed1) + int(failed2)
            if len(ch1) != len(ch2) and not (failed1 or failed2):
                self._stats.short_reads += 1
        return ch1[:length], ch2[:length]

    @property
    def carried_samples(self) -> Tuple[int, int]:
        """Samples read on each channel that are still waiting for their pair."""
        return len(self._carry[POSITION_CHANNEL]), len(self._carry[INTENSITY_CHANNEL])


__all__ = ["AcquisitionStats", "AcquisitionWorker"]
