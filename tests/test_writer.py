"""
Brief: Tests for turning observations into points and writing them.

Inputs:
  - None

Outputs:
  - None
"""

import logging

import pytest

from dnskeyage.age import AgeObservation
from dnskeyage.stores.base import BaseHistoryStore, HistoryStoreError
from dnskeyage.writer import observation_to_point, write_observations

NOW = 1_700_000_000


class _RecordingStore(BaseHistoryStore):
    def __init__(self, fail=False):
        self.batches = []
        self.fail = fail

    def write_points(self, points):
        self.batches.append(list(points))
        if self.fail:
            raise HistoryStoreError("write refused")


def _obs(keytag=12345, keytype="KSK", age=86400):
    return AgeObservation("example.com.", "RSASHA256", keytag, keytype, age, NOW)


def test_observation_to_point_tags_and_field():
    point = observation_to_point(_obs())
    assert point.measurement == "DnskeyAge"
    assert point.tags == {
        "domain": "example.com.",
        "algorithm": "RSASHA256",
        "keytag": "12345",
        "keytype": "KSK",
    }
    assert point.fields == {"age": 86400}
    assert point.ts == NOW


def test_write_observations_single_batch():
    """
    Brief: All points of a zone go to the store in exactly one call.

    Inputs:
      - None

    Outputs:
      - None: Asserts one batch with both points
    """
    store = _RecordingStore()
    result = write_observations(store, [_obs(), _obs(54321, "ZSK", 0)])

    assert result.written is True
    assert len(store.batches) == 1
    assert [p.tags["keytag"] for p in store.batches[0]] == ["12345", "54321"]


def test_dry_run_never_calls_store(caplog):
    caplog.set_level(logging.DEBUG)
    store = _RecordingStore()
    result = write_observations(store, [_obs()] * 5, dry_run=True)

    assert store.batches == []
    assert result.written is False
    assert len(result.points) == 5
    assert "DRYRUN" in caplog.text
    assert "DnskeyAge,algorithm=RSASHA256" in caplog.text


def test_empty_observations_skip_write():
    store = _RecordingStore()
    result = write_observations(store, [])
    assert store.batches == []
    assert result.points == []


def test_write_failure_propagates():
    store = _RecordingStore(fail=True)
    with pytest.raises(HistoryStoreError):
        write_observations(store, [_obs()])
