"""
Tests for the BlueZ device watcher, driven by canned bluetoothctl output.
"""

import subprocess

from podwatch import device_watcher
from podwatch.beacon_selector import BeaconSelector
from podwatch.connection import AdapterState, ConnectionEvents, ConnectionHypothesis
from podwatch.device_watcher import (
    DeviceWatcher,
    parse_adapter_state,
    parse_connected_devices,
    parse_device_uuids,
    run_bluetoothctl,
)

SHOW_ON = """Controller 00:1A:7D:DA:71:13 (public)
\tName: laptop
\tPowered: yes
\tDiscoverable: no
"""
SHOW_OFF = SHOW_ON.replace("Powered: yes", "Powered: no")

DEVICES = """Device 4C:B9:10:00:00:01 Sam's AirPods Pro
Device 00:11:22:33:44:55 Keyboard
"""

AIRPODS_INFO = """Device 4C:B9:10:00:00:01 (public)
\tName: Sam's AirPods Pro
\tConnected: yes
\tUUID: Vendor specific           (74ec2172-0bad-4d01-8f77-997b2be0722a)
\tUUID: Audio Sink                (0000110b-0000-1000-8000-00805f9b34fb)
"""

KEYBOARD_INFO = """Device 00:11:22:33:44:55 (public)
\tUUID: Human Interface Device... (00001124-0000-1000-8000-00805f9b34fb)
"""


class FakeBluez:
    def __init__(self, show=SHOW_ON, devices=DEVICES):
        self.show = show
        self.devices = devices
        self.calls = []

    def __call__(self, args):
        self.calls.append(tuple(args))
        if args[0] == "show":
            return self.show
        if args[0] == "devices":
            return self.devices
        if args[0] == "info":
            return AIRPODS_INFO if args[1].startswith("4C") else KEYBOARD_INFO
        return None


class RecordingEvents:
    def __init__(self):
        self.log = []

    def device_connected(self, device):
        self.log.append(("connected", device.address))

    def device_disconnected(self, device):
        self.log.append(("disconnected", device.address))

    def adapter_state_changed(self, state):
        self.log.append(("adapter", state))

    def connected_devices_found(self, devices):
        self.log.append(("found", sorted(d.address for d in devices)))

    def profile_service_disconnected(self):
        self.log.append(("profile lost",))


class TestParsers:

    def test_adapter_state(self):
        assert parse_adapter_state(SHOW_ON) == AdapterState.ON
        assert parse_adapter_state(SHOW_OFF) == AdapterState.OFF
        assert parse_adapter_state("No default controller available") == AdapterState.OFF

    def test_connected_devices(self):
        assert parse_connected_devices(DEVICES) == [
            ("4C:B9:10:00:00:01", "Sam's AirPods Pro"),
            ("00:11:22:33:44:55", "Keyboard"),
        ]

    def test_connected_devices_ignores_noise(self):
        assert parse_connected_devices("[CHG] Controller ... Powered: yes\n") == []

    def test_device_uuids(self):
        assert parse_device_uuids(AIRPODS_INFO) == frozenset({
            "74ec2172-0bad-4d01-8f77-997b2be0722a",
            "0000110b-0000-1000-8000-00805f9b34fb",
        })


class TestPolling:

    def test_first_poll_reports_connected_devices(self):
        events = RecordingEvents()
        watcher = DeviceWatcher(runner=FakeBluez())
        watcher.poll_once(events)

        assert events.log == [("found", ["00:11:22:33:44:55", "4C:B9:10:00:00:01"])]

    def test_changes_become_events(self):
        bluez = FakeBluez(devices="")
        events = RecordingEvents()
        watcher = DeviceWatcher(runner=bluez)
        watcher.poll_once(events)

        bluez.devices = DEVICES
        watcher.poll_once(events)
        bluez.devices = "Device 00:11:22:33:44:55 Keyboard\n"
        watcher.poll_once(events)

        assert events.log == [
            ("found", []),
            ("connected", "4C:B9:10:00:00:01"),
            ("connected", "00:11:22:33:44:55"),
            ("disconnected", "4C:B9:10:00:00:01"),
        ]

    def test_device_info_queried_once(self):
        bluez = FakeBluez()
        watcher = DeviceWatcher(runner=bluez)
        watcher.poll_once(RecordingEvents())
        watcher.poll_once(RecordingEvents())

        assert bluez.calls.count(("info", "4C:B9:10:00:00:01")) == 1

    def test_adapter_power_changes(self):
        bluez = FakeBluez()
        events = RecordingEvents()
        watcher = DeviceWatcher(runner=bluez)
        watcher.poll_once(events)

        bluez.show = SHOW_OFF
        watcher.poll_once(events)
        bluez.show = SHOW_ON
        watcher.poll_once(events)

        assert events.log[1] == ("adapter", AdapterState.OFF)
        assert events.log[2] == ("adapter", AdapterState.ON)
        # Devices come back as fresh connections after power-on
        assert ("connected", "4C:B9:10:00:00:01") in events.log[3:]

    def test_adapter_off_at_startup_is_reported(self):
        events = RecordingEvents()
        DeviceWatcher(runner=FakeBluez(show=SHOW_OFF)).poll_once(events)
        assert events.log == [("adapter", AdapterState.OFF)]

    def test_unreachable_daemon_drops_profile_once(self):
        """A failing `show` means bluetoothd is gone, reported once per outage."""
        events = RecordingEvents()
        watcher = DeviceWatcher(runner=lambda args: None)
        watcher.poll_once(events)
        watcher.poll_once(events)
        assert events.log == [("profile lost",)]

    def test_daemon_restart_reports_devices_again(self):
        bluez = FakeBluez()
        events = RecordingEvents()
        watcher = DeviceWatcher(runner=bluez)
        watcher.poll_once(events)

        bluez.show = ""
        watcher.poll_once(events)
        bluez.show = SHOW_ON
        watcher.poll_once(events)

        assert events.log[1] == ("profile lost",)
        assert ("connected", "4C:B9:10:00:00:01") in events.log[2:]

    def test_failed_info_is_retried(self):
        """Earbuds whose UUIDs were not resolved yet are queried on the next poll."""
        bluez = FakeBluez(devices="")
        hypothesis = ConnectionHypothesis()
        events = ConnectionEvents(hypothesis, BeaconSelector())
        watcher = DeviceWatcher(runner=bluez)
        watcher.poll_once(events)

        bluez.devices = "Device 4C:B9:10:00:00:01 Sam's AirPods Pro\n"
        real_info = bluez.__call__
        watcher._runner = lambda args: None if args[0] == "info" else real_info(args)
        watcher.poll_once(events)
        assert hypothesis.maybe_connected is False

        watcher._runner = bluez
        watcher.poll_once(events)
        watcher.poll_once(events)

        assert hypothesis.maybe_connected is True
        assert bluez.calls.count(("info", "4C:B9:10:00:00:01")) == 1

    def test_unresolved_device_at_startup_is_retried(self):
        bluez = FakeBluez(devices="Device 4C:B9:10:00:00:01 Sam's AirPods Pro\n")
        events = RecordingEvents()
        watcher = DeviceWatcher(runner=lambda args: None if args[0] == "info" else bluez(args))
        watcher.poll_once(events)

        watcher._runner = bluez
        watcher.poll_once(events)

        assert events.log == [("found", ["4C:B9:10:00:00:01"]), ("connected", "4C:B9:10:00:00:01")]

    def test_stop_without_start(self):
        DeviceWatcher(runner=FakeBluez()).stop()


class TestRunBluetoothctl:

    def test_missing_binary(self, monkeypatch):
        def fake_run(*args, **kwargs):
            raise FileNotFoundError("bluetoothctl")

        monkeypatch.setattr(device_watcher.subprocess, "run", fake_run)
        assert run_bluetoothctl(["show"]) is None

    def test_timeout(self, monkeypatch):
        def fake_run(*args, **kwargs):
            raise subprocess.TimeoutExpired("bluetoothctl", 8)

        monkeypatch.setattr(device_watcher.subprocess, "run", fake_run)
        assert run_bluetoothctl(["show"]) is None

    def test_success(self, monkeypatch):
        def fake_run(cmd, **kwargs):
            assert cmd == ["bluetoothctl", "show"]
            return subprocess.CompletedProcess(cmd, 0, stdout=SHOW_ON, stderr="")

        monkeypatch.setattr(device_watcher.subprocess, "run", fake_run)
        assert run_bluetoothctl(["show"]) == SHOW_ON

    def test_non_zero_exit(self, monkeypatch):
        def fake_run(cmd, **kwargs):
            return subprocess.CompletedProcess(cmd, 1, stdout="", stderr="error")

        monkeypatch.setattr(device_watcher.subprocess, "run", fake_run)
        assert run_bluetoothctl(["show"]) is None
