"""
BlueZ device watcher — detects connected AirPods and adapter power changes.

Polls ``bluetoothctl`` for the adapter power state and the list of
connected devices, and turns the differences between polls into
connect / disconnect / adapter events. The first successful poll doubles
as the "already connected devices" query at startup.
"""

from __future__ import annotations

import logging
import re
import subprocess
import threading
from typing import Callable, Optional, Sequence

from podwatch.connection import AdapterState, BluetoothDevice, ConnectionEvents

logger = logging.getLogger(__name__)

# How often to poll (seconds)
POLL_INTERVAL = 5.0

# bluetoothctl can hang when the daemon is restarting
COMMAND_TIMEOUT = 8

_DEVICE_LINE = re.compile(r"^Device\s+([0-9A-Fa-f:]{17})\s*(.*)$")
_UUID_LINE = re.compile(r"UUID:.*\(([0-9A-Fa-f-]{36})\)")
_POWERED_LINE = re.compile(r"^\s*Powered:\s*(yes|no)\s*$", re.MULTILINE)

CommandRunner = Callable[[Sequence[str]], Optional[str]]


def run_bluetoothctl(args: Sequence[str]) -> Optional[str]:
    """Run ``bluetoothctl`` and return its stdout, or None on failure."""
    try:
        result = subprocess.run(
            ["bluetoothctl", *args],
            capture_output=True,
            text=True,
            timeout=COMMAND_TIMEOUT,
        )
    except subprocess.TimeoutExpired:
        logger.warning("bluetoothctl %s timed out", " ".join(args))
        return None
    except FileNotFoundError:
        logger.warning("bluetoothctl not found — cannot watch connections")
        return None

    if result.returncode != 0:
        logger.debug("bluetoothctl %s failed: %s", " ".join(args), result.stderr.strip())
        return None
    return result.stdout


def parse_adapter_state(output: str) -> AdapterState:
    """Read the ``Powered:`` line of ``bluetoothctl show``."""
    match = _POWERED_LINE.search(output)
    if match and match.group(1) == "yes":
        return AdapterState.ON
    return AdapterState.OFF


def parse_connected_devices(output: str) -> list[tuple[str, str]]:
    """Parse ``bluetoothctl devices Connected`` into (address, name) pairs."""
    devices = []
    for line in output.splitlines():
        match = _DEVICE_LINE.match(line.strip())
        if match:
            devices.append((match.group(1).upper(), match.group(2).strip()))
    return devices


def parse_device_uuids(output: str) -> frozenset[str]:
    """Collect the service UUIDs listed by ``bluetoothctl info``."""
    return frozenset(m.group(1).lower() for m in _UUID_LINE.finditer(output))


class DeviceWatcher:
    """Polls BlueZ and reports changes to a :class:`ConnectionEvents`.

    Runs in a background daemon thread. Only state *changes* are reported,
    except for the very first poll which reports everything found.
    """

    def __init__(
        self,
        poll_interval: float = POLL_INTERVAL,
        runner: CommandRunner = run_bluetoothctl,
    ) -> None:
        self._poll_interval = poll_interval
        self._runner = runner
        self._events: Optional[ConnectionEvents] = None
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._adapter_state: Optional[AdapterState] = None
        self._connected: dict[str, BluetoothDevice] = {}
        self._first_poll = True
        self._daemon_reachable = True

    def start(self, events: ConnectionEvents) -> None:
        """Start polling in a background thread."""
        if self._thread and self._thread.is_alive():
            return
        self._events = events
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._poll_loop,
            name="DeviceWatcher",
            daemon=True,
        )
        self._thread.start()
        logger.info("Bluetooth device watcher started")

    def stop(self) -> None:
        """Stop polling."""
        self._stop_event.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=COMMAND_TIMEOUT + 1)
            logger.info("Bluetooth device watcher stopped")
        self._thread = None

    def poll_once(self, events: Optional[ConnectionEvents] = None) -> None:
        """Query BlueZ once and report what changed."""
        events = events or self._events
        if events is None:
            return

        show = self._runner(["show"])
        if not show:
            # bluetoothd is gone and the headset profile with it
            if self._daemon_reachable:
                self._daemon_reachable = False
                self._connected.clear()
                events.profile_service_disconnected()
            return
        self._daemon_reachable = True
        state = parse_adapter_state(show)
        if state != self._adapter_state:
            # The scanner is started separately at launch
            if self._adapter_state is not None or state != AdapterState.ON:
                events.adapter_state_changed(state)
            self._adapter_state = state
        if state != AdapterState.ON:
            self._connected.clear()
            return

        listing = self._runner(["devices", "Connected"])
        if listing is None:
            return
        current: dict[str, BluetoothDevice] = {}
        for address, name in parse_connected_devices(listing):
            known = self._connected.get(address)
            # An empty UUID set means BlueZ had nothing for us yet, so ask again
            if known is not None and known.uuids:
                current[address] = known
                continue
            info = self._runner(["info", address]) or ""
            current[address] = BluetoothDevice(address, name, parse_device_uuids(info))

        if self._first_poll:
            self._first_poll = False
            events.connected_devices_found(current.values())
        else:
            for address, device in current.items():
                known = self._connected.get(address)
                if known is None or (device.uuids and not known.uuids):
                    events.device_connected(device)
            for address, device in self._connected.items():
                if address not in current:
                    events.device_disconnected(device)
        self._connected = current

    def _poll_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.poll_once()
            except Exception:
                logger.exception("Error in device watcher loop")
            self._stop_event.wait(self._poll_interval)
