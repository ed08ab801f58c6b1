"""Streaming publisher against an in-process HTTP transport."""
from __future__ import annotations

import json
import threading

import httpx
import numpy as np
import pytest

from core.aggregation import PositionDataset
from core.lifecycle import ScanLifecycle
from core.publisher import StreamingPublisher
from daq.errors import DeviceError
from fixtures.controlled_device import ControlledScanDevice
from shared.units import InputRange, to_voltage

URL = "http://collector.test/data"


class Collector:
    """Records posted payloads; optionally answers with an error status."""

    def __init__(self, fail_on: int = 0, status: int = 500) -> None:
        self.payloads = []
        self.fail_on = fail_on
        self.status = status
        self._lock = threading.Lock()

    def __call__(self, request: httpx.Request) -> httpx.Response:
        with self._lock:
            self.payloads.append(json.loads(request.content))
            count = len(self.payloads)
        if self.fail_on and count >= self.fail_on:
            return httpx.Response(self.status)
        return httpx.Response(200, json={"ok": True})

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self))


def _publisher(collector, device=None, dataset=None, lifecycle=None, sleep=None, **kwargs):
    device = device or ControlledScanDevice()
    lifecycle = lifecycle or ScanLifecycle()
    dataset = dataset or PositionDataset()
    if sleep is not None:
        kwargs["sleep"] = sleep
    publisher = StreamingPublisher(
        device, 1, lifecycle, dataset, URL, client=collector.client(), **kwargs
    )
    return publisher, lifecycle, dataset


def test_finishes_with_exactly_one_finished_payload():
    collector = Collector()
    lifecycle = ScanLifecycle()
    ticks = []

    def sleep(_seconds):
        ticks.append(1)
        if len(ticks) == 3:
            lifecycle.finish()

    publisher, _, _ = _publisher(collector, lifecycle=lifecycle, sleep=sleep)
    lifecycle.begin()
    publisher.run()

    flags = [p["finished"] for p in collector.payloads]
    assert flags == [False, False, True]
    assert publisher.stats()["payloads_sent"] == 3


def test_payload_converts_keys_and_means_to_volts():
    collector = Collector()
    device = ControlledScanDevice(ranges=(InputRange.BIPOLAR_10V, InputRange.UNIPOLAR_5V))
    dataset = PositionDataset()
    dataset.merge(np.array([32768.0, 49152.0, 32768.0]), np.array([100.0, 200.0, 300.0]))
    lifecycle = ScanLifecycle()
    lifecycle.begin()
    lifecycle.finish()
    publisher, _, _ = _publisher(
        collector, device=device, dataset=dataset, lifecycle=lifecycle, sleep=lambda s: None
    )
    publisher.run()

    (payload,) = collector.payloads
    assert set(payload) == {"x", "y", "finished"}
    assert payload["x"] == pytest.approx([0.0, 5.0])
    assert payload["y"] == pytest.approx(
        [to_voltage(200.0, InputRange.UNIPOLAR_5V), to_voltage(200.0, InputRange.UNIPOLAR_5V)]
    )
    assert payload["finished"] is True


def test_empty_dataset_posts_empty_arrays():
    collector = Collector()
    lifecycle = ScanLifecycle()
    lifecycle.begin()
    lifecycle.finish()
    publisher, _, _ = _publisher(collector, lifecycle=lifecycle, sleep=lambda s: None)
    publisher.run()
    assert collector.payloads == [{"x": [], "y": [], "finished": True}]


def test_ranges_fall_back_on_input_check_error():
    device = ControlledScanDevice(ranges=(InputRange.UNIPOLAR_5V, InputRange.UNIPOLAR_5V))
    device.fail("input_check", DeviceError.USB_ERROR)
    publisher, _, _ = _publisher(Collector(), device=device)
    assert publisher.read_ranges() == (InputRange.BIPOLAR_10V, InputRange.BIPOLAR_10V)


def test_http_error_propagates():
    collector = Collector(fail_on=2, status=503)
    publisher, lifecycle, _ = _publisher(collector, sleep=lambda s: None)
    lifecycle.begin()
    with pytest.raises(httpx.HTTPStatusError):
        publisher.run()
    assert len(collector.payloads) == 2
    assert publisher.stats()["payloads_sent"] == 1


def test_transport_error_propagates():
    def refuse(request):
        raise httpx.ConnectError("refused", request=request)

    lifecycle = ScanLifecycle()
    lifecycle.begin()
    publisher = StreamingPublisher(
        ControlledScanDevice(),
        1,
        lifecycle,
        PositionDataset(),
        URL,
        client=httpx.Client(transport=httpx.MockTransport(refuse)),
        sleep=lambda s: None,
    )
    with pytest.raises(httpx.ConnectError):
        publisher.run()


def test_waits_for_scan_start():
    collector = Collector()
    lifecycle = ScanLifecycle()
    publisher, _, _ = _publisher(collector, lifecycle=lifecycle, interval_s=0.01)
    thread = threading.Thread(target=publisher.run)
    thread.start()
    thread.join(timeout=0.05)
    assert collector.payloads == []
    lifecycle.begin()
    lifecycle.finish()
    thread.join(timeout=2.0)
    assert not thread.is_alive()
    assert collector.payloads[-1]["finished"] is True


@pytest.mark.parametrize("kwargs", [{"interval_s": 0.0}])
def test_rejects_bad_arguments(kwargs):
    with pytest.raises(ValueError):
        _publisher(Collector(), **kwargs)


def test_requires_url():
    with pytest.raises(ValueError):
        StreamingPublisher(ControlledScanDevice(), 1, ScanLifecycle(), PositionDataset(), "")
