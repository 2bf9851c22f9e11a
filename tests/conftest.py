"""Shared fixtures: synthetic beacons, a controllable clock, a recording sink."""

import pytest

from podwatch.beacon_decoder import APPLE_COMPANY_ID
from podwatch.beacon_selector import RawAdvertisement
from podwatch.publisher import StatusSink


def build_payload(
    model: int = 0x0E,        # low nibble E -> AirPods Pro
    status: int = 0x20,       # high nibble bit 1 set -> not flipped
    pods: int = 0x95,         # high=9 (right), low=5 (left) when not flipped
    flags_case: int = 0x0A,   # no charging, case=10 (100%)
) -> bytes:
    """Build a 27-byte proximity pairing payload.

    Hex character positions used by the decoder map onto bytes as
    char 7 -> byte 3 low, char 10 -> byte 5 high, chars 12/13 -> byte 6,
    chars 14/15 -> byte 7.
    """
    content = bytes([0x07, 0x19, 0x01, model, 0x20, status, pods, flags_case, 0x01])
    return content + bytes(27 - len(content))


class FakeClock:
    """Monotonic clock driven by the test, in seconds."""

    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def ns(self) -> int:
        return int(round(self.now * 1_000_000_000))

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSink(StatusSink):
    def __init__(self) -> None:
        self.changed = []
        self.notified = []
        self.cancelled = 0
        self.popups = []

    def status_changed(self, status):
        self.changed.append(status)

    def update_notification(self, status):
        self.notified.append(status)

    def cancel_notification(self):
        self.cancelled += 1

    def show_popup(self, status):
        self.popups.append(status)


@pytest.fixture
def payload():
    return build_payload


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def beacon(clock, payload):
    """Factory for advertisements stamped with the fake clock."""

    def make(address="AA", rssi=-50, data=None, **payload_kwargs):
        body = data if data is not None else payload(**payload_kwargs)
        return RawAdvertisement(address, rssi, clock.ns(), {APPLE_COMPANY_ID: body})

    return make
