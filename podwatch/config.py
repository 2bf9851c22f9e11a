"""Runtime configuration for podwatch."""

from __future__ import annotations

import dataclasses
import os
from typing import Any


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class PodwatchConfig:
    """Monitor configuration.

    Parameters
    ----------
    show_pop_up : bool
        Open the popup window whenever the earbuds become available.
    min_rssi : int
        Weakest beacon (dBm) still trusted as coming from our earbuds.
    beacon_window_s : float
        Seconds a beacon stays eligible for selection.
    connected_timeout_s : float
        Stop refreshing the status after this many seconds without beacons.
    tick_interval_s : float
        Availability monitor period.
    watcher_interval_s : float
        How often BlueZ is polled for connected devices.
    log_level : str
        Root logging level name.
    """

    show_pop_up: bool = False
    min_rssi: int = -60
    beacon_window_s: float = 10.0
    connected_timeout_s: float = 30.0
    tick_interval_s: float = 1.0
    watcher_interval_s: float = 5.0
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls, **overrides: Any) -> PodwatchConfig:
        """Create configuration from ``PODWATCH_*`` environment variables.

        Explicit keyword arguments override environment values. Malformed
        numbers raise ``ValueError``.
        """
        env = os.environ
        kwargs: dict[str, Any] = {}

        kwargs["show_pop_up"] = _env_bool(env.get("PODWATCH_SHOW_POP_UP"), cls.show_pop_up)

        _ENV_NUMERIC_MAP = {
            "PODWATCH_MIN_RSSI": ("min_rssi", int),
            "PODWATCH_BEACON_WINDOW": ("beacon_window_s", float),
            "PODWATCH_CONNECTED_TIMEOUT": ("connected_timeout_s", float),
            "PODWATCH_TICK_INTERVAL": ("tick_interval_s", float),
            "PODWATCH_WATCHER_INTERVAL": ("watcher_interval_s", float),
        }
        for env_key, (field_name, cast) in _ENV_NUMERIC_MAP.items():
            val = env.get(env_key)
            if val is not None:
                kwargs[field_name] = cast(val)

        level = env.get("PODWATCH_LOG_LEVEL")
        if level:
            kwargs["log_level"] = level.strip().upper()

        kwargs.update(overrides)
        return cls(**kwargs)
