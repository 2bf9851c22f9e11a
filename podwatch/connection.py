"""
Connection hypothesis — a best-effort belief that our earbuds are connected.

Beacons alone cannot tell us whether the earbuds are paired with *this*
machine, so the monitor only shows a status while ACL / profile events say
an AirPods-like device is connected. The belief lives apart from the beacon
state and is reset whenever the adapter goes away.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Callable, Iterable, Optional

from podwatch.beacon_selector import BeaconSelector

logger = logging.getLogger(__name__)

# Service UUIDs advertised by AirPods over Bluetooth Classic
AIRPODS_UUIDS = frozenset({
    "74ec2172-0bad-4d01-8f77-997b2be0722a",
    "2a72e02b-7b99-778f-014d-ad0b7221ec74",
})


class AdapterState(Enum):
    """Bluetooth adapter power state."""
    OFF = auto()
    TURNING_OFF = auto()
    TURNING_ON = auto()
    ON = auto()


@dataclass(frozen=True)
class BluetoothDevice:
    """A classic Bluetooth device reported by the connection-event source."""

    address: str
    name: str = ""
    uuids: frozenset[str] = field(default_factory=frozenset)


def is_earbuds(device: BluetoothDevice) -> bool:
    """True if the device advertises one of the AirPods service UUIDs."""
    return any(u.lower() in AIRPODS_UUIDS for u in device.uuids)


class ConnectionHypothesis:
    """Lock-guarded "maybe connected" flag."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._maybe_connected = False

    @property
    def maybe_connected(self) -> bool:
        with self._lock:
            return self._maybe_connected

    def set(self, value: bool) -> None:
        with self._lock:
            self._maybe_connected = value


class ConnectionEvents:
    """Translates system Bluetooth events into hypothesis updates.

    Args:
        hypothesis: The flag to update.
        selector: Its beacon window is dropped on disconnects so stale
            beacons never leak into the next session.
        on_adapter_on: Called when the adapter powers on (start scanning).
        on_adapter_off: Called when the adapter powers off (stop scanning).
    """

    def __init__(
        self,
        hypothesis: ConnectionHypothesis,
        selector: BeaconSelector,
        on_adapter_on: Optional[Callable[[], None]] = None,
        on_adapter_off: Optional[Callable[[], None]] = None,
    ) -> None:
        self._hypothesis = hypothesis
        self._selector = selector
        self._on_adapter_on = on_adapter_on
        self._on_adapter_off = on_adapter_off

    def device_connected(self, device: BluetoothDevice) -> None:
        if not is_earbuds(device):
            return
        logger.info("ACL CONNECTED: %s", device.name or device.address)
        self._hypothesis.set(True)

    def device_disconnected(self, device: BluetoothDevice) -> None:
        """Handles both ACL disconnected and disconnect-requested."""
        if not is_earbuds(device):
            return
        logger.info("ACL DISCONNECTED: %s", device.name or device.address)
        self._hypothesis.set(False)
        self._selector.clear()

    def adapter_state_changed(self, state: AdapterState) -> None:
        if state in (AdapterState.OFF, AdapterState.TURNING_OFF):
            logger.info("BT OFF")
            self._hypothesis.set(False)
            if self._on_adapter_off:
                self._on_adapter_off()
            self._selector.clear()
        elif state == AdapterState.ON:
            logger.info("BT ON")
            if self._on_adapter_on:
                self._on_adapter_on()

    def connected_devices_found(self, devices: Iterable[BluetoothDevice]) -> None:
        """Startup query: earbuds may already be connected before we run."""
        for device in devices:
            if is_earbuds(device):
                logger.info("AirPods already connected: %s", device.name or device.address)
                self._hypothesis.set(True)
                break

    def profile_service_disconnected(self) -> None:
        """The headset profile went away, so nothing can be connected."""
        logger.info("Headset profile service disconnected")
        self._hypothesis.set(False)
