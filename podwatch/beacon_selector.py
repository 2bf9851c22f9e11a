"""
Beacon filtering and selection.

The platform hands out randomized addresses for every advertisement, so
there is no way to tell our earbuds apart from the pair sitting next to
us. Instead we keep the beacons seen in the last few seconds and trust the
strongest one, preferring a fresh reading when it comes from the same
address as the strongest beacon.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Optional

from podwatch.beacon_decoder import APPLE_COMPANY_ID, BEACON_LENGTH, hex_string

logger = logging.getLogger(__name__)

# Default horizon of the recent beacon window
RECENT_BEACONS_MAX_AGE = 10.0

# Beacons weaker than this are probably somebody else's
MIN_RSSI = -60

# Proximity pairing type and length bytes, used to pre-filter scan results
SCAN_SIGNATURE = bytes([0x07, 0x19])


@dataclass(frozen=True)
class RawAdvertisement:
    """One advertisement as delivered by the scanner."""

    address: str                         # per-scan handle, not an identity
    rssi: int                            # dBm
    timestamp_ns: int                    # monotonic nanoseconds
    manufacturer_data: dict[int, bytes] = field(default_factory=dict)

    @property
    def payload(self) -> Optional[bytes]:
        """The Apple vendor section, if present."""
        return self.manufacturer_data.get(APPLE_COMPANY_ID)


def matches_scan_signature(data: Optional[bytes]) -> bool:
    """Cheap pre-filter equivalent to a scan filter on bytes 0–1."""
    return data is not None and data[:2] == SCAN_SIGNATURE


class BeaconFilter:
    """Accepts only AirPods-shaped manufacturer data."""

    def __init__(self, company_id: int = APPLE_COMPANY_ID, length: int = BEACON_LENGTH) -> None:
        self.company_id = company_id
        self.length = length

    def accepts(self, adv: RawAdvertisement) -> bool:
        data = adv.manufacturer_data.get(self.company_id)
        return data is not None and len(data) == self.length


class BeaconSelector:
    """Time-bounded window of accepted beacons.

    Usage:
        selector = BeaconSelector()
        best = selector.select(adv)   # None if nothing trustworthy
    """

    def __init__(
        self,
        max_age: float = RECENT_BEACONS_MAX_AGE,
        min_rssi: int = MIN_RSSI,
        clock_ns: Callable[[], int] = time.monotonic_ns,
    ) -> None:
        self._max_age_ns = int(max_age * 1_000_000_000)
        self._min_rssi = min_rssi
        self._clock_ns = clock_ns
        self._lock = threading.Lock()
        self._recent: deque[RawAdvertisement] = deque()

    def __len__(self) -> int:
        with self._lock:
            return len(self._recent)

    def clear(self) -> None:
        """Forget all recent beacons (disconnects, adapter off)."""
        with self._lock:
            self._recent.clear()

    def choose(self, incoming: RawAdvertisement) -> Optional[RawAdvertisement]:
        """Add ``incoming`` to the window and return the strongest beacon.

        Ties go to the beacon seen first. If the strongest beacon has the
        same address as ``incoming``, the fresher ``incoming`` wins even
        when it is weaker.
        """
        if logger.isEnabledFor(logging.DEBUG) and incoming.payload:
            logger.debug("%sdb : %s", incoming.rssi, hex_string(incoming.payload, readable=True))

        with self._lock:
            self._recent.append(incoming)
            self._prune()
            strongest: Optional[RawAdvertisement] = None
            for beacon in self._recent:
                if strongest is None or beacon.rssi > strongest.rssi:
                    strongest = beacon

        if strongest is not None and strongest.address == incoming.address:
            strongest = incoming
        return strongest

    def select(self, incoming: RawAdvertisement) -> Optional[RawAdvertisement]:
        """Pick the beacon to decode, or None if it is too weak to trust."""
        strongest = self.choose(incoming)
        if strongest is None or strongest.rssi < self._min_rssi:
            return None
        return strongest

    def _prune(self) -> None:
        now = self._clock_ns()
        # Batched scan results may arrive out of timestamp order
        self._recent = deque(
            b for b in self._recent if now - b.timestamp_ns <= self._max_age_ns
        )
