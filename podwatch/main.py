"""
podwatch — Main application entry point.

Orchestrates all modules: BLE scanner, device watcher, availability monitor
and the tray/popup window (or a JSON stream in headless mode). Handles
graceful startup and shutdown sequencing.
"""

from __future__ import annotations

import logging
import signal
import sys
import threading
from argparse import ArgumentParser
from typing import Optional, Sequence

from podwatch.config import PodwatchConfig
from podwatch.device_watcher import DeviceWatcher
from podwatch.publisher import JsonLinesSink
from podwatch.service import PodsService

logger = logging.getLogger("podwatch")


def build_parser() -> ArgumentParser:
    parser = ArgumentParser(prog="podwatch", description="AirPods battery monitor")
    parser.add_argument(
        "--headless",
        action="store_true",
        help="Print status changes as JSON lines instead of showing a tray icon",
    )
    parser.add_argument(
        "--show-pop-up",
        action="store_true",
        default=None,
        help="Open the status popup whenever the AirPods connect",
    )
    parser.add_argument("--debug", action="store_true", help="Verbose logging")
    return parser


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.WARNING),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Launch the podwatch battery monitor."""
    args = build_parser().parse_args(argv)

    overrides = {}
    if args.show_pop_up:
        overrides["show_pop_up"] = True
    if args.debug:
        overrides["log_level"] = "DEBUG"
    config = PodwatchConfig.from_env(**overrides)
    setup_logging(config.log_level)
    logger.info("podwatch starting…")

    watcher = DeviceWatcher(poll_interval=config.watcher_interval_s)

    if args.headless:
        service = PodsService(config, sinks=[JsonLinesSink()], watcher=watcher)
        done = threading.Event()
        signal.signal(signal.SIGINT, lambda *_: done.set())
        signal.signal(signal.SIGTERM, lambda *_: done.set())
        with service:
            done.wait()
        logger.info("podwatch stopped.")
        return

    # Imported late so headless mode works without a display
    from podwatch.ui_window import StatusWindow

    window = StatusWindow()
    window.initialize()
    service = PodsService(config, sinks=[window], watcher=watcher)
    window.on_request_status = service.request_status

    def _shutdown():
        logger.info("Shutting down…")
        service.stop()
        window.destroy()

    window.on_close = _shutdown

    # Handle Ctrl+C gracefully
    signal.signal(signal.SIGINT, lambda *_: _shutdown())

    service.start()
    try:
        # This blocks until the application quits
        window.run()
    except KeyboardInterrupt:
        _shutdown()
    finally:
        service.stop()
        logger.info("podwatch stopped.")


if __name__ == "__main__":
    sys.exit(main())
