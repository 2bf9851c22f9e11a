"""
Tests for the beacon pipeline (filter → select → decode → store).
"""

import time

from podwatch.beacon_selector import BeaconFilter, BeaconSelector
from podwatch.processor import BeaconPipeline
from podwatch.state_manager import AggregateStatus, StatusStore


def _pipeline(clock, beacon_filter=None):
    store = StatusStore(clock=clock)
    selector = BeaconSelector(clock_ns=clock.ns)
    return BeaconPipeline(store, selector, beacon_filter), store, selector


class TestHandle:

    def test_valid_beacon_updates_store(self, clock, beacon):
        pipeline, store, _ = _pipeline(clock)

        assert pipeline.handle(beacon(rssi=-50, pods=0x95, flags_case=0x4A)) is True
        status = store.snapshot()
        assert status.left.charge == 55
        assert status.right.charge == 95
        assert status.case.charge == 100
        assert status.case.charging is True

    def test_weak_beacon_ignored(self, clock, beacon):
        pipeline, store, selector = _pipeline(clock)

        assert pipeline.handle(beacon(rssi=-75)) is False
        assert store.snapshot() == AggregateStatus()
        assert len(selector) == 1

    def test_wrong_length_never_reaches_window(self, clock, beacon, payload):
        pipeline, store, selector = _pipeline(clock)

        assert pipeline.handle(beacon(data=payload()[:20])) is False
        assert len(selector) == 0

    def test_strongest_beacon_is_decoded(self, clock, beacon):
        """A weaker beacon from another pair doesn't overwrite ours."""
        pipeline, store, _ = _pipeline(clock)
        pipeline.handle(beacon(address="mine", rssi=-45, pods=0x95))
        pipeline.handle(beacon(address="theirs", rssi=-58, pods=0x11))

        assert store.snapshot().left.charge == 55

    def test_decode_failure_is_dropped(self, clock, beacon):
        """Undecodable payloads are logged and dropped, not raised."""
        pipeline, store, _ = _pipeline(clock, BeaconFilter(length=4))

        assert pipeline.handle(beacon(data=bytes([0x07, 0x19, 0x01, 0x0E]))) is False
        assert store.snapshot() == AggregateStatus()


class TestQueue:

    def test_submitted_beacons_are_consumed(self, clock, beacon):
        pipeline, store, _ = _pipeline(clock)
        pipeline.start()
        try:
            pipeline.submit(beacon())
            deadline = time.monotonic() + 2.0
            while store.snapshot().left.charge is None and time.monotonic() < deadline:
                time.sleep(0.01)
        finally:
            pipeline.stop()

        assert store.snapshot().left.charge == 55

    def test_stop_without_start(self, clock):
        pipeline, _, _ = _pipeline(clock)
        pipeline.stop()
