"""
Apple Continuity Protocol — proximity pairing beacon decoder.

Decodes the 27-byte manufacturer-specific payload (company ID 76) that
AirPods broadcast while out of the case. The layout is reverse engineered,
so the decoder works on the uppercase hex representation of the payload,
indexing single hex characters (nibbles) the same way the beacon was
originally mapped out.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)

# Apple's Bluetooth SIG company identifier
APPLE_COMPANY_ID = 76

# Proximity pairing beacons are exactly this long (type + length + 25 bytes)
BEACON_LENGTH = 27

# Nibble values with a fixed meaning
FULL_CHARGE = 10
DISCONNECTED = 15

# Character positions in the hex string
_MODEL_CHAR = 7
_FLIP_CHAR = 10
_FIRST_POD_CHAR = 12
_SECOND_POD_CHAR = 13
_CHARGE_FLAGS_CHAR = 14
_CASE_CHAR = 15


class Model(Enum):
    """Earbud family, as far as the beacon tells us."""
    STANDARD = "airpods12"
    PRO = "airpodspro"


class BeaconDecodeError(ValueError):
    """Raised when a payload cannot be decoded."""


@dataclass(frozen=True)
class DecodedFields:
    """Raw status fields extracted from one beacon."""

    left_nibble: int
    right_nibble: int
    case_nibble: int
    charge_flags: int
    model_flag: bool
    flipped: bool

    @property
    def left_charging(self) -> bool:
        return bool(self.charge_flags & (0b10 if self.flipped else 0b01))

    @property
    def right_charging(self) -> bool:
        return bool(self.charge_flags & (0b01 if self.flipped else 0b10))

    @property
    def case_charging(self) -> bool:
        return bool(self.charge_flags & 0b100)

    @property
    def model(self) -> Model:
        return Model.PRO if self.model_flag else Model.STANDARD


def hex_string(data: bytes, readable: bool = False) -> str:
    """Render bytes as uppercase hex, optionally space separated for logs."""
    if readable:
        return " ".join(f"{b:02X}" for b in data)
    return "".join(f"{b:02X}" for b in data)


def _digit(chars: str, index: int) -> int:
    try:
        return int(chars[index], 16)
    except (IndexError, ValueError) as exc:
        raise BeaconDecodeError(f"bad hex digit at {index}: {exc}") from exc


def is_flipped(chars: str) -> bool:
    """True when the first pod nibble belongs to the left earbud."""
    return (_digit(chars, _FLIP_CHAR) & 0b10) == 0


def nibble_to_charge(value: int) -> tuple[Optional[int], bool]:
    """Map a battery nibble to ``(charge, connected)``.

    ``charge`` is None when the nibble carries no usable reading, in which
    case the caller keeps whatever value it already had. 11–14 are
    undocumented and treated as connected with an unknown charge.
    """
    if value == FULL_CHARGE:
        return 100, True
    if 0 <= value < FULL_CHARGE:
        # midpoint of the 10% step the gauge reports
        return value * 10 + 5, True
    if value == DISCONNECTED:
        return None, False
    return None, True


def decode(payload: bytes) -> DecodedFields:
    """Decode a proximity pairing payload.

    Args:
        payload: The 27-byte manufacturer data (without the company ID).

    Raises:
        BeaconDecodeError: If the payload is too short to contain the
            status nibbles.
    """
    chars = hex_string(payload)
    if len(chars) <= _CASE_CHAR:
        raise BeaconDecodeError(f"payload too short ({len(payload)} bytes)")

    flipped = is_flipped(chars)
    first = _digit(chars, _FIRST_POD_CHAR)
    second = _digit(chars, _SECOND_POD_CHAR)

    return DecodedFields(
        left_nibble=first if flipped else second,
        right_nibble=second if flipped else first,
        case_nibble=_digit(chars, _CASE_CHAR),
        charge_flags=_digit(chars, _CHARGE_FLAGS_CHAR) & 0b111,
        model_flag=chars[_MODEL_CHAR] == "E",
        flipped=flipped,
    )
