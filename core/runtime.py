from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx

from daq.base_device import BaseScanDevice
from daq.errors import DeviceUnavailableError, check_error
from daq.registry import create_device
from shared.settings import ScanSettings, load_settings

from .acquisition import AcquisitionWorker
from .aggregation import PositionDataset
from .conditioning import LowPassFilter, LowPassSettings
from .lifecycle import ScanLifecycle
from .publisher import StreamingPublisher
from .scan_controller import ScanController

logger = logging.getLogger(__name__)


class ScanAbortedError(RuntimeError):
    """One or more scan threads terminated with an exception."""

    def __init__(self, failures: List[Tuple[str, BaseException]]) -> None:
        self.failures = list(failures)
        names = ", ".join(f"{name}: {type(exc).__name__}: {exc}" for name, exc in self.failures)
        super().__init__(f"Scan aborted ({names})")


class _ScanThread(threading.Thread):
    """Thread that keeps the exception its target raised for the joiner."""

    def __init__(self, name: str, target: Callable[[], None]) -> None:
        super().__init__(name=name, daemon=True)
        self._target_fn = target
        self.error: Optional[BaseException] = None

    def run(self) -> None:
        try:
            self._target_fn()
        except BaseException as exc:
            self.error = exc
            logger.exception("%s failed", self.name)


class ScanRuntime:
    """
    Runs one scan: controller, acquisition worker and publisher threads.

    The device is opened before the threads start and closed after all three
    have been joined. The dataset of the last scan stays available on
    :attr:`dataset` after :meth:`run` returns or raises.
    """

    def __init__(
        self,
        device: BaseScanDevice,
        device_id: int,
        settings: Optional[ScanSettings] = None,
        *,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.settings = settings or ScanSettings()
        self.settings.validate()
        self.device = device
        self.device_id = int(device_id)
        self._client = client
        self.lifecycle: Optional[ScanLifecycle] = None
        self.dataset: Optional[PositionDataset] = None
        self.controller: Optional[ScanController] = None
        self.acquisition: Optional[AcquisitionWorker] = None
        self.publisher: Optional[StreamingPublisher] = None

    def _build(self, scan_duration_seconds: float) -> List[_ScanThread]:
        settings = self.settings
        if not settings.post_url:
            raise ValueError("No collector URL configured (set DATA_POST_URL)")
        self.lifecycle = ScanLifecycle()
        self.dataset = PositionDataset(settings.position_resolution)
        self.controller = ScanController(
            self.device,
            self.device_id,
            self.lifecycle,
            scan_duration_seconds,
            clock_period=settings.clock_period,
        )
        self.acquisition = AcquisitionWorker(
            self.device,
            self.device_id,
            self.lifecycle,
            self.dataset,
            LowPassFilter(LowPassSettings.from_scan_settings(settings)),
            max_batch=settings.max_batch,
            start_poll_interval=settings.start_poll_interval_s,
        )
        self.publisher = StreamingPublisher(
            self.device,
            self.device_id,
            self.lifecycle,
            self.dataset,
            settings.post_url,
            interval_s=settings.publish_interval_s,
            client=self._client,
            timeout_s=settings.http_timeout_s,
            start_poll_interval=settings.start_poll_interval_s,
        )
        return [
            _ScanThread("ScanController", self.controller.run),
            _ScanThread("AcquisitionWorker", self.acquisition.run),
            _ScanThread("StreamingPublisher", self.publisher.run),
        ]

    def run(self, scan_duration_seconds: float) -> None:
        threads = self._build(scan_duration_seconds)
        try:
            check_error(self.device.open(self.device_id), "open")
        except DeviceUnavailableError as exc:
            logger.error("Cannot open device %d: %s", self.device_id, exc)
            raise ScanAbortedError([("open", exc)]) from exc
        try:
            for thread in threads:
                thread.start()
            for thread in threads:
                thread.join()
        finally:
            check_error(self.device.close(self.device_id), "close")

        failures = [(t.name, t.error) for t in threads if t.error is not None]
        if failures:
            raise ScanAbortedError(failures) from failures[0][1]
        logger.info("Scan complete: %d bins", len(self.dataset))

    def stats(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        if self.acquisition is not None:
            out["acquisition"] = self.acquisition.stats()
        if self.publisher is not None:
            out["publisher"] = self.publisher.stats()
        if self.dataset is not None and not self.dataset.lock.poisoned:
            out["bins"] = len(self.dataset)
        return out


def create_scan_device(settings: ScanSettings) -> BaseScanDevice:
    """Instantiate the backend named by ``settings.device_kind``."""
    kwargs: Dict[str, Any] = {}
    if settings.device_kind == "tusb0216ad" and settings.device_library:
        kwargs["library"] = settings.device_library
    return create_device(settings.device_kind, **kwargs)


def run(
    device_id: int,
    scan_duration_seconds: float,
    settings: Optional[ScanSettings] = None,
) -> None:
    """Run one scan of `scan_duration_seconds` on `device_id`."""
    settings = settings or load_settings()
    device = create_scan_device(settings)
    ScanRuntime(device, device_id, settings).run(scan_duration_seconds)


__all__ = ["ScanAbortedError", "ScanRuntime", "create_scan_device", "run"]
