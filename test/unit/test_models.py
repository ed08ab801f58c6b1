import json

import numpy as np
import pytest

from shared.models import BinEntry, ScanPayload, ScanState


def test_scan_state_values_match_wire_encoding():
    assert [int(s) for s in ScanState] == [-1, 0, 1]


def test_payload_converts_arrays_to_plain_floats():
    payload = ScanPayload(x=np.array([1, 2], dtype=np.int32), y=np.array([0.5, 1.5]), finished=1)
    assert payload.x == [1.0, 2.0]
    assert all(type(v) is float for v in payload.x + payload.y)
    assert payload.finished is True
    assert len(payload) == 2

    # Must be directly serializable without numpy scalars leaking through.
    assert json.loads(json.dumps(payload.to_json())) == {
        "x": [1.0, 2.0],
        "y": [0.5, 1.5],
        "finished": True,
    }


def test_payload_rejects_mismatched_lengths():
    with pytest.raises(ValueError):
        ScanPayload(x=[1.0, 2.0], y=[1.0])


def test_payload_rejects_2d_input():
    with pytest.raises(ValueError):
        ScanPayload(x=np.zeros((2, 2)), y=np.zeros((2, 2)))


def test_default_payload_is_empty_and_unfinished():
    assert ScanPayload().to_json() == {"x": [], "y": [], "finished": False}


def test_bin_entry_requires_positive_count():
    assert BinEntry(key=1.0, value=2.0, count=1).count == 1
    with pytest.raises(ValueError):
        BinEntry(key=1.0, value=2.0, count=0)
