"""
Status publishing — the change gate in front of the presentation sinks.

Implements the observer pattern so the tray, the popup window and any
headless consumer can react to status changes, while suppressing repeated
publishes of an unchanged status between monitor ticks.
"""

from __future__ import annotations

import json
import logging
import sys
import threading
from datetime import datetime
from typing import Callable, Optional, TextIO

from podwatch.state_manager import AggregateStatus, StatusStore

logger = logging.getLogger(__name__)


class StatusSink:
    """Presentation surface. Subclasses override what they support."""

    def status_changed(self, status: AggregateStatus) -> None:
        """A new status was published."""

    def update_notification(self, status: AggregateStatus) -> None:
        """Show or refresh the persistent notification."""

    def cancel_notification(self) -> None:
        """The earbuds are no longer available."""

    def show_popup(self, status: AggregateStatus) -> None:
        """Transient popup, only requested when the user enabled it."""


class ChangeGate:
    """Publishes the store's status to sinks only when it changed.

    Usage:
        gate = ChangeGate(store)
        gate.add_sink(window)
        gate.emit()             # no-op if nothing changed
        gate.emit(force=True)   # always publishes
    """

    def __init__(self, store: StatusStore) -> None:
        self._store = store
        self._lock = threading.Lock()
        self._sinks: list[StatusSink] = []
        self._last_emitted: Optional[AggregateStatus] = None

    # ── Sinks ────────────────────────────────────────────────────────────

    def add_sink(self, sink: StatusSink) -> None:
        with self._lock:
            self._sinks.append(sink)

    def remove_sink(self, sink: StatusSink) -> None:
        with self._lock:
            self._sinks.remove(sink)

    @property
    def sinks(self) -> list[StatusSink]:
        with self._lock:
            return list(self._sinks)

    @property
    def last_emitted(self) -> Optional[AggregateStatus]:
        with self._lock:
            return self._last_emitted

    # ── Emission ─────────────────────────────────────────────────────────

    def emit(self, force: bool = False) -> bool:
        """Publish the current status if it changed (or if forced).

        Returns True when sinks were notified.
        """
        with self._lock:
            status = self._store.snapshot()
            if not force and status == self._last_emitted:
                return False
            self._last_emitted = status
            sinks = list(self._sinks)

        logger.debug("%s", status.summary())
        for sink in sinks:
            try:
                sink.status_changed(status)
                if status.available:
                    sink.update_notification(status)
            except Exception:
                logger.exception("Status sink error")
        return True

    def notify(self, call: Callable[[StatusSink], None]) -> None:
        """Run ``call`` against every sink, isolating failures.

        Example: ``gate.notify(lambda sink: sink.cancel_notification())``
        """
        for sink in self.sinks:
            try:
                call(sink)
            except Exception:
                logger.exception("Status sink error")


class JsonLinesSink(StatusSink):
    """Headless sink writing one JSON object per published status."""

    def __init__(self, stream: Optional[TextIO] = None) -> None:
        self._stream = stream

    def status_changed(self, status: AggregateStatus) -> None:
        data = status.to_dict()
        data["date"] = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        stream = self._stream or sys.stdout
        stream.write(json.dumps(data, ensure_ascii=False) + "\n")
        stream.flush()
