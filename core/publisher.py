from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Dict, Optional, Tuple

import httpx

from daq.base_device import BaseScanDevice
from daq.errors import check_error
from shared.models import ScanPayload, ScanState
from shared.units import as_input_range, to_voltage

from .aggregation import PositionDataset
from .lifecycle import ScanLifecycle
from .scan_controller import DEFAULT_RANGES

logger = logging.getLogger(__name__)


class StreamingPublisher:
    """
    Periodically posts the dataset, in volts, to the collector.

    Every `interval_s` the publisher reads the lifecycle state, copies the
    dataset under its lock, converts keys (position channel) and means
    (intensity channel) to volts and POSTs ``{"x": [...], "y": [...],
    "finished": bool}``. The payload sent after the scan is observed FINISHED
    carries ``finished: true`` and is the last one. HTTP failures are not
    retried; they propagate out of :meth:`run`.
    """

    def __init__(
        self,
        device: BaseScanDevice,
        device_id: int,
        lifecycle: ScanLifecycle,
        dataset: PositionDataset,
        url: str,
        *,
        interval_s: float = 0.3,
        client: Optional[httpx.Client] = None,
        timeout_s: float = 5.0,
        start_poll_interval: float = 0.001,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if not url:
            raise ValueError("A collector URL is required")
        if interval_s <= 0:
            raise ValueError("interval_s must be positive")
        self._device = device
        self._device_id = device_id
        self._lifecycle = lifecycle
        self._dataset = dataset
        self._url = url
        self._interval_s = float(interval_s)
        self._client = client
        self._owns_client = client is None
        self._timeout_s = timeout_s
        self._start_poll_interval = start_poll_interval
        self._sleep = sleep
        self._ranges: Tuple[int, int] = DEFAULT_RANGES
        self._stats_lock = threading.Lock()
        self._payloads_sent = 0
        self._last_points = 0

    @property
    def url(self) -> str:
        return self._url

    @property
    def ranges(self) -> Tuple[int, int]:
        return self._ranges

    def stats(self) -> Dict[str, int]:
        with self._stats_lock:
            return {"payloads_sent": self._payloads_sent, "last_points": self._last_points}

    def read_ranges(self) -> Tuple[int, int]:
        """Query the configured input ranges; fall back to full ±10 V on error."""
        code, range1, range2 = self._device.input_check(self._device_id)
        if check_error(code, "input_check"):
            logger.warning("Using default input ranges %s", [int(r) for r in DEFAULT_RANGES])
            return DEFAULT_RANGES
        return as_input_range(range1), as_input_range(range2)

    def build_payload(self, finished: bool) -> ScanPayload:
        keys, means, _counts = self._dataset.snapshot()
        x = to_voltage(keys, self._ranges[0])
        y = to_voltage(means, self._ranges[1])
        return ScanPayload(x=x, y=y, finished=finished)

    def publish(self, payload: ScanPayload) -> None:
        assert self._client is not None
        response = self._client.post(self._url, json=payload.to_json())
        response.raise_for_status()
        with self._stats_lock:
            self._payloads_sent += 1
            self._last_points = len(payload)
        logger.debug("Posted %d points (finished=%s)", len(payload), payload.finished)

    def run(self) -> None:
        logger.info("Data streaming waiting for scan start")
        self._lifecycle.wait_until_started(self._start_poll_interval)
        # Ranges are programmed before the scan starts and do not change during it.
        self._ranges = self.read_ranges()
        logger.info("Data streaming started: %s", self._url)

        if self._client is None:
            self._client = httpx.Client(timeout=self._timeout_s)
        try:
            while True:
                self._sleep(self._interval_s)
                finished = self._lifecycle.state == ScanState.FINISHED
                self.publish(self.build_payload(finished))
                if finished:
                    break
        finally:
            if self._owns_client:
                self._client.close()
                self._client = None
        logger.info("Data streaming finished: %s", self.stats())


__all__ = ["StreamingPublisher"]
