"""
Thread-safe status store for the earbuds.

Holds the per-pod charge, connection and charging state decoded from
beacons, plus the availability flag driven by the monitor. Charges are
sticky: a beacon that does not carry a reading for a pod never wipes the
last known value.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field, replace
from typing import Callable, Optional

from podwatch.beacon_decoder import DecodedFields, Model, nibble_to_charge

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PodStatus:
    """State of one earbud or the case."""

    charge: Optional[int] = None        # 0–100 (%) or None if never seen
    connected: bool = False
    charging: bool = False

    def describe(self, unknown: str = "—") -> str:
        """Human readable reading, e.g. ``"55%+"`` while charging."""
        if self.charge is None:
            return unknown
        return f"{self.charge}%" + ("+" if self.charging else "")

    def with_nibble(self, value: int, charging: bool) -> PodStatus:
        charge, connected = nibble_to_charge(value)
        return PodStatus(
            charge=self.charge if charge is None else charge,
            connected=connected,
            charging=charging,
        )


@dataclass(frozen=True)
class AggregateStatus:
    """Complete snapshot of the current earbud status."""

    left: PodStatus = field(default_factory=PodStatus)
    right: PodStatus = field(default_factory=PodStatus)
    case: PodStatus = field(default_factory=PodStatus)
    model: Model = Model.STANDARD
    available: bool = False
    # Excluded from equality so fresh beacons alone don't count as a change
    last_seen: Optional[float] = field(default=None, compare=False)

    @property
    def any_connected(self) -> bool:
        return self.left.connected or self.right.connected or self.case.connected

    def to_dict(self) -> dict:
        pods = {"left": self.left, "right": self.right, "case": self.case}
        return {
            "available": self.available,
            "model": self.model.value,
            "charge": {k: p.charge for k, p in pods.items()},
            "charging": {k: p.charging for k, p in pods.items()},
            "connected": {k: p.connected for k, p in pods.items()},
        }

    def summary(self) -> str:
        def fmt(pod: PodStatus) -> str:
            return f"{pod.charge}{'+' if pod.charging else ''}"

        return (
            f"Left: {fmt(self.left)}, Right: {fmt(self.right)}, "
            f"Case: {fmt(self.case)}, Model: {self.model.name}"
        )


class StatusStore:
    """Shared status written by the beacon pipeline and read by the monitor.

    Every mutation replaces the whole immutable snapshot under one lock, so
    readers never observe half of a decoded beacon.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._lock = threading.Lock()
        self._clock = clock
        self._status = AggregateStatus()

    # ── State Access ─────────────────────────────────────────────────────

    def snapshot(self) -> AggregateStatus:
        with self._lock:
            return self._status

    @property
    def is_available(self) -> bool:
        with self._lock:
            return self._status.available

    def any_connected(self) -> bool:
        with self._lock:
            return self._status.any_connected

    def seconds_since_seen(self) -> Optional[float]:
        """Seconds since the last decoded beacon, None if there never was one."""
        with self._lock:
            last_seen = self._status.last_seen
        if last_seen is None:
            return None
        return self._clock() - last_seen

    # ── State Mutations ──────────────────────────────────────────────────

    def apply_decoded(self, fields: DecodedFields) -> AggregateStatus:
        """Merge a decoded beacon into the store."""
        with self._lock:
            current = self._status
            self._status = replace(
                current,
                left=current.left.with_nibble(fields.left_nibble, fields.left_charging),
                right=current.right.with_nibble(fields.right_nibble, fields.right_charging),
                case=current.case.with_nibble(fields.case_nibble, fields.case_charging),
                model=fields.model,
                last_seen=self._clock(),
            )
            return self._status

    def mark_available(self) -> None:
        self._set_available(True)

    def mark_unavailable(self) -> None:
        self._set_available(False)

    def clear_connected(self) -> None:
        """Drop the connected flags but keep the last known charges."""
        with self._lock:
            s = self._status
            self._status = replace(
                s,
                left=replace(s.left, connected=False),
                right=replace(s.right, connected=False),
                case=replace(s.case, connected=False),
            )

    def _set_available(self, available: bool) -> None:
        with self._lock:
            self._status = replace(self._status, available=available)
