"""
PodsService — wires the beacon pipeline, the connection hypothesis and the
availability monitor together and owns their lifecycle.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from podwatch.ble_scanner import BLEScanner
from podwatch.beacon_selector import BeaconSelector
from podwatch.config import PodwatchConfig
from podwatch.connection import ConnectionEvents, ConnectionHypothesis
from podwatch.device_watcher import DeviceWatcher
from podwatch.monitor import AvailabilityMonitor
from podwatch.processor import BeaconPipeline
from podwatch.publisher import ChangeGate, StatusSink
from podwatch.state_manager import AggregateStatus, StatusStore

logger = logging.getLogger(__name__)


class PodsService:
    """The running monitor.

    Usage:
        with PodsService(config, sinks=[window]) as service:
            ...                         # scanning, ticking
        # everything stopped and released here
    """

    def __init__(
        self,
        config: Optional[PodwatchConfig] = None,
        sinks: tuple[StatusSink, ...] | list[StatusSink] = (),
        scanner: Optional[BLEScanner] = None,
        watcher: Optional[DeviceWatcher] = None,
        clock: Callable[[], float] = time.monotonic,
        clock_ns: Callable[[], int] = time.monotonic_ns,
    ) -> None:
        self.config = config or PodwatchConfig()
        self.store = StatusStore(clock=clock)
        self.hypothesis = ConnectionHypothesis()
        self.selector = BeaconSelector(
            max_age=self.config.beacon_window_s,
            min_rssi=self.config.min_rssi,
            clock_ns=clock_ns,
        )
        self.gate = ChangeGate(self.store)
        for sink in sinks:
            self.gate.add_sink(sink)

        self.pipeline = BeaconPipeline(self.store, self.selector)
        self.monitor = AvailabilityMonitor(
            self.store,
            self.hypothesis,
            self.gate,
            show_pop_up=lambda: self.config.show_pop_up,
            tick_interval=self.config.tick_interval_s,
            connected_timeout=self.config.connected_timeout_s,
        )
        self.events = ConnectionEvents(
            self.hypothesis,
            self.selector,
            on_adapter_on=self.start_scanner,
            on_adapter_off=self.stop_scanner,
        )
        self._scanner = scanner if scanner is not None else BLEScanner()
        self._watcher = watcher
        self._started = False

    # ── Lifecycle ────────────────────────────────────────────────────────

    def start(self) -> None:
        if self._started:
            return
        self._started = True
        logger.info("PodsService starting…")
        self.pipeline.start()
        self.monitor.start()
        if self._watcher is not None:
            self._watcher.start(self.events)
        self.start_scanner()

    def stop(self) -> None:
        """Stop everything. A no-op when not started."""
        if not self._started:
            return
        self._started = False
        logger.info("PodsService stopping…")
        try:
            if self._watcher is not None:
                self._watcher.stop()
            self.monitor.stop()
        finally:
            self.stop_scanner()
            self.pipeline.stop()
            self.store.mark_unavailable()
            self.gate.notify(lambda sink: sink.cancel_notification())

    def __enter__(self) -> PodsService:
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()

    # ── Scanner control ──────────────────────────────────────────────────

    def start_scanner(self) -> None:
        self._scanner.start(self.pipeline.submit)

    def stop_scanner(self) -> None:
        """Stop scanning and drop the connected flags, keeping charges."""
        self._scanner.stop()
        self.store.clear_connected()

    # ── Status request channel ───────────────────────────────────────────

    def request_status(self) -> None:
        """Publish the current status right away."""
        self.gate.emit(force=True)

    @property
    def status(self) -> AggregateStatus:
        return self.store.snapshot()
