"""
BLE scanner module — event-driven AirPods beacon capture using bleak.

Runs an asyncio event loop in a dedicated daemon thread and hands every
advertisement that looks like a proximity pairing beacon to a callback.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from typing import Callable, Optional

from bleak import BleakScanner
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData
from bleak.exc import BleakError

from podwatch.beacon_decoder import APPLE_COMPANY_ID
from podwatch.beacon_selector import RawAdvertisement, matches_scan_signature

logger = logging.getLogger(__name__)

ResultCallback = Callable[[RawAdvertisement], None]


def to_raw_advertisement(
    device: BLEDevice,
    adv_data: AdvertisementData,
    timestamp_ns: Optional[int] = None,
) -> Optional[RawAdvertisement]:
    """Convert a bleak advertisement, or None if it isn't an AirPods beacon."""
    apple_data = adv_data.manufacturer_data.get(APPLE_COMPANY_ID)
    if apple_data is None or not matches_scan_signature(bytes(apple_data)):
        return None
    return RawAdvertisement(
        address=device.address,
        rssi=adv_data.rssi,
        timestamp_ns=time.monotonic_ns() if timestamp_ns is None else timestamp_ns,
        manufacturer_data={APPLE_COMPANY_ID: bytes(apple_data)},
    )


class BLEScanner:
    """Asynchronous BLE scanner feeding raw beacons to a callback.

    A failure to start (adapter missing or powered off) is logged and the
    scanner stays stopped until ``start`` is called again.
    """

    def __init__(self) -> None:
        self._thread: Optional[threading.Thread] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._stop_requested: Optional[asyncio.Event] = None
        self._on_result: Optional[ResultCallback] = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    # ── Public API ───────────────────────────────────────────────────────

    def start(self, on_result: ResultCallback) -> None:
        """Start scanning in a background thread."""
        if self._running:
            return
        self._on_result = on_result
        self._running = True
        self._thread = threading.Thread(
            target=self._run_loop,
            name="BLEScanner",
            daemon=True,
        )
        self._thread.start()
        logger.info("START SCANNER")

    def stop(self) -> None:
        """Stop scanning. Safe to call when not started."""
        if not self._running and self._thread is None:
            return
        self._running = False
        loop, stop_requested = self._loop, self._stop_requested
        if loop and stop_requested and loop.is_running():
            loop.call_soon_threadsafe(stop_requested.set)
        if self._thread and self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout=5.0)
        self._thread = None
        logger.info("STOP SCANNER")

    # ── Background Thread ────────────────────────────────────────────────

    def _run_loop(self) -> None:
        """Entry point for the scanner thread — runs the asyncio loop."""
        self._loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self._loop)
        self._stop_requested = asyncio.Event()
        try:
            self._loop.run_until_complete(self._scan())
        except (BleakError, OSError) as exc:
            logger.warning("BLE adapter unavailable: %s — waiting for adapter on", exc)
        except Exception:
            logger.exception("BLE scanner loop crashed")
        finally:
            self._loop.close()
            self._loop = None
            self._running = False

    async def _scan(self) -> None:
        if not self._running:
            return
        async with BleakScanner(detection_callback=self._on_advertisement):
            if self._running:
                await self._stop_requested.wait()

    def _on_advertisement(
        self,
        device: BLEDevice,
        adv_data: AdvertisementData,
    ) -> None:
        """Callback invoked for every BLE advertisement received."""
        if not self._running or self._on_result is None:
            return
        adv = to_raw_advertisement(device, adv_data)
        if adv is not None:
            self._on_result(adv)
