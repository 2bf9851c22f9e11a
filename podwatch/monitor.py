"""
Availability monitor — the once-per-second loop that decides when a status
is worth showing.

Both signals have to agree before the status becomes available: the
connection hypothesis says our earbuds are connected, and the beacons say
at least one pod (or the case) is out and talking. While available, the
status is republished through the change gate only as long as beacons
keep arriving, so stale readings are never refreshed as if they were new.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from podwatch.connection import ConnectionHypothesis
from podwatch.publisher import ChangeGate
from podwatch.state_manager import StatusStore

logger = logging.getLogger(__name__)

# Seconds between ticks
TICK_INTERVAL = 1.0

# Stop refreshing the status after this many seconds without a beacon
TIMEOUT_CONNECTED = 30.0


class AvailabilityMonitor:
    """Cancellable periodic task reconciling beacons with the hypothesis."""

    def __init__(
        self,
        store: StatusStore,
        hypothesis: ConnectionHypothesis,
        gate: ChangeGate,
        show_pop_up: Callable[[], bool] = lambda: False,
        tick_interval: float = TICK_INTERVAL,
        connected_timeout: float = TIMEOUT_CONNECTED,
    ) -> None:
        self._store = store
        self._hypothesis = hypothesis
        self._gate = gate
        self._show_pop_up = show_pop_up
        self._tick_interval = tick_interval
        self._connected_timeout = connected_timeout
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # ── Public API ───────────────────────────────────────────────────────

    def start(self) -> None:
        """Start ticking in a background thread."""
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self.run,
            name="AvailabilityMonitor",
            daemon=True,
        )
        self._thread.start()
        logger.info("Availability monitor started")

    def stop(self) -> None:
        """Signal the loop to exit and wait for it."""
        self._stop_event.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=2.0)
            logger.info("Availability monitor stopped")
        self._thread = None

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def run(self) -> None:
        """Tick until stopped. Runs in the caller's thread."""
        self._store.mark_unavailable()
        while not self._stop_event.is_set():
            if self.tick():
                # Just went unavailable: re-evaluate once without waiting
                continue
            # A stop during the wait is a normal wake-up
            self._stop_event.wait(self._tick_interval)

    def tick(self) -> bool:
        """Evaluate once.

        Returns True when the status just became unavailable and the caller
        should tick again immediately.
        """
        active = self._hypothesis.maybe_connected and self._store.any_connected()
        logger.debug(
            "maybeConnected? %s -> any pod connected? %s",
            self._hypothesis.maybe_connected,
            self._store.any_connected(),
        )

        if active:
            if not self._store.is_available:
                logger.info("Started sending status")
                self._store.mark_available()
                status = self._store.snapshot()
                self._gate.notify(lambda sink: sink.update_notification(status))
                if self._show_pop_up():
                    self._gate.notify(lambda sink: sink.show_popup(status))
        elif self._store.is_available:
            logger.info("Stopped sending status")
            self._store.mark_unavailable()
            self._gate.notify(lambda sink: sink.cancel_notification())
            self._gate.emit(force=True)
            return True

        if self._store.is_available:
            since = self._store.seconds_since_seen()
            if since is not None and since < self._connected_timeout:
                self._gate.emit()
        return False
