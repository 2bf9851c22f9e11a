"""
Beacon pipeline — single consumer between the scanner and the status store.

The scanner callback only enqueues; a dedicated thread filters, selects and
decodes so BLE callbacks never wait on decoding or on the store lock.
"""

from __future__ import annotations

import logging
import queue
import threading
from typing import Optional

from podwatch.beacon_decoder import BeaconDecodeError, decode, hex_string
from podwatch.beacon_selector import BeaconFilter, BeaconSelector, RawAdvertisement
from podwatch.state_manager import StatusStore

logger = logging.getLogger(__name__)

_STOP = object()


class BeaconPipeline:
    """Filter → select → decode → store, fed through a queue."""

    def __init__(
        self,
        store: StatusStore,
        selector: BeaconSelector,
        beacon_filter: Optional[BeaconFilter] = None,
    ) -> None:
        self._store = store
        self._selector = selector
        self._filter = beacon_filter or BeaconFilter()
        self._queue: queue.Queue = queue.Queue()
        self._thread: Optional[threading.Thread] = None

    # ── Public API ───────────────────────────────────────────────────────

    def submit(self, adv: RawAdvertisement) -> None:
        """Scanner-side entry point. Never blocks."""
        self._queue.put_nowait(adv)

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._thread = threading.Thread(
            target=self._consume,
            name="BeaconPipeline",
            daemon=True,
        )
        self._thread.start()

    def stop(self) -> None:
        if not self._thread:
            return
        self._queue.put_nowait(_STOP)
        if self._thread.is_alive():
            self._thread.join(timeout=2.0)
        self._thread = None

    def handle(self, adv: RawAdvertisement) -> bool:
        """Process one advertisement. Returns True if the store was updated."""
        if not self._filter.accepts(adv):
            return False

        best = self._selector.select(adv)
        if best is None or best.payload is None:
            return False

        try:
            fields = decode(best.payload)
        except BeaconDecodeError as exc:
            logger.debug("Dropping beacon %s: %s", hex_string(best.payload, readable=True), exc)
            return False

        self._store.apply_decoded(fields)
        return True

    # ── Background Thread ────────────────────────────────────────────────

    def _consume(self) -> None:
        while True:
            item = self._queue.get()
            if item is _STOP:
                return
            try:
                self.handle(item)
            except Exception:
                logger.exception("Unexpected error processing beacon")
