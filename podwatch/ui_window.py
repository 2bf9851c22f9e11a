"""
Desktop presentation for podwatch, built with PySide6.

The tray icon plays the part of the persistent notification (its tooltip
carries the readings) and a small frameless window is the popup, with one
card each for the left pod, the right pod and the case.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from PySide6.QtCore import QObject, Qt, Signal, Slot
from PySide6.QtGui import QColor
from PySide6.QtWidgets import (
    QApplication, QHBoxLayout, QLabel, QMenu, QStyle, QSystemTrayIcon,
    QVBoxLayout, QWidget,
)

from podwatch.beacon_decoder import Model
from podwatch.publisher import StatusSink
from podwatch.state_manager import AggregateStatus, PodStatus

logger = logging.getLogger(__name__)

# ── iOS Widget Tokens ────────────────────────────────────────────────────
BG_PRIMARY = QColor(242, 242, 247)
TEXT_COLOR_PRIMARY = QColor(0, 0, 0)
TEXT_COLOR_SECONDARY = QColor(142, 142, 147)
FONT_FAMILY = "Segoe UI Variable Display"

WINDOW_WIDTH = 420
WINDOW_HEIGHT = 160

IDLE_TOOLTIP = "podwatch — no AirPods connected"

MODEL_NAMES = {
    Model.STANDARD: "AirPods",
    Model.PRO: "AirPods Pro",
}


def notification_text(status: AggregateStatus) -> str:
    """One-line summary used as the tray tooltip."""
    return (
        f"{MODEL_NAMES[status.model]} — "
        f"L {status.left.describe('?')} | R {status.right.describe('?')} | "
        f"C {status.case.describe('?')}"
    )


class PodCard(QWidget):
    """Title plus reading for one pod or the case."""

    def __init__(self, title: str, parent=None):
        super().__init__(parent)
        layout = QVBoxLayout(self)
        layout.setAlignment(Qt.AlignCenter)

        self._title = QLabel(title)
        self._title.setAlignment(Qt.AlignCenter)
        self._title.setStyleSheet(
            f"color: {TEXT_COLOR_SECONDARY.name()}; font-family: '{FONT_FAMILY}'; font-size: 12px;"
        )
        self._value = QLabel("—")
        self._value.setAlignment(Qt.AlignCenter)
        self._value.setStyleSheet(
            f"color: {TEXT_COLOR_PRIMARY.name()}; font-weight: bold; font-size: 20px;"
        )
        layout.addWidget(self._title)
        layout.addWidget(self._value)

    def set_data(self, pod: PodStatus) -> None:
        self._value.setText(pod.describe())
        # A disconnected pod keeps its last reading, greyed out
        color = TEXT_COLOR_PRIMARY if pod.connected else TEXT_COLOR_SECONDARY
        self._value.setStyleSheet(f"color: {color.name()}; font-weight: bold; font-size: 20px;")


class StatusWindow(QWidget, StatusSink):
    """Tray notification plus popup window.

    All ``StatusSink`` methods may be called from worker threads; they only
    emit signals, and the slots run on the GUI thread.
    """

    class UIUpdater(QObject):
        # Bridge thread-safe state updates to the main GUI thread
        state_updated = Signal(object)
        notification_updated = Signal(object)
        notification_cancelled = Signal()
        popup_requested = Signal(object)

    def __init__(self) -> None:
        # Qt requires QApplication before widgets
        app = QApplication.instance() or QApplication([])
        super().__init__()
        self._app = app
        self.on_close: Optional[Callable[[], None]] = None
        self.on_request_status: Optional[Callable[[], None]] = None
        self._updater = self.UIUpdater()
        self._tray: Optional[QSystemTrayIcon] = None
        self._initialized = False

    def initialize(self) -> None:
        if self._initialized:
            return
        self.setWindowTitle("podwatch")
        self.setFixedSize(WINDOW_WIDTH, WINDOW_HEIGHT)
        self.setWindowFlags(self.windowFlags() | Qt.FramelessWindowHint | Qt.WindowStaysOnTopHint | Qt.Tool)
        self.setStyleSheet(f"background-color: {BG_PRIMARY.name()}; border-radius: 12px;")

        self._updater.state_updated.connect(self._apply_state)
        self._updater.notification_updated.connect(self._update_tray)
        self._updater.notification_cancelled.connect(self._reset_tray)
        self._updater.popup_requested.connect(self._show_popup)

        self._build_ui()
        self._build_tray()
        self._initialized = True

    def _build_ui(self) -> None:
        layout = QVBoxLayout(self)
        layout.setContentsMargins(20, 16, 20, 10)

        cards = QHBoxLayout()
        cards.setSpacing(15)
        self._left_card = PodCard("Left")
        self._right_card = PodCard("Right")
        self._case_card = PodCard("Case")
        for card in (self._left_card, self._right_card, self._case_card):
            cards.addWidget(card)
        layout.addLayout(cards)

        self._status_label = QLabel("Looking for AirPods...")
        self._status_label.setAlignment(Qt.AlignCenter)
        self._status_label.setStyleSheet(
            f"color: {TEXT_COLOR_SECONDARY.name()}; font-family: '{FONT_FAMILY}'; font-size: 13px;"
        )
        layout.addWidget(self._status_label, 0, Qt.AlignBottom)

    def _build_tray(self) -> None:
        icon = self.style().standardIcon(QStyle.SP_MediaVolume)
        self._tray = QSystemTrayIcon(icon, self)
        self._menu = menu = QMenu()
        menu.addAction("Show status", self._open_popup)
        menu.addAction("Quit", self._quit)
        self._tray.setContextMenu(menu)
        self._tray.activated.connect(lambda _reason: self._open_popup())
        self._tray.setToolTip(IDLE_TOOLTIP)
        self._tray.show()

    # ── StatusSink (any thread) ──────────────────────────────────────────

    def status_changed(self, status: AggregateStatus) -> None:
        self._updater.state_updated.emit(status)

    def update_notification(self, status: AggregateStatus) -> None:
        self._updater.notification_updated.emit(status)

    def cancel_notification(self) -> None:
        self._updater.notification_cancelled.emit()

    def show_popup(self, status: AggregateStatus) -> None:
        self._updater.popup_requested.emit(status)

    # ── GUI thread ───────────────────────────────────────────────────────

    @Slot(object)
    def _apply_state(self, status: AggregateStatus) -> None:
        if not self._initialized:
            return
        self._left_card.set_data(status.left)
        self._right_card.set_data(status.right)
        self._case_card.set_data(status.case)
        if status.available:
            self._status_label.setText(f"Connected: {MODEL_NAMES[status.model]}")
        else:
            self._status_label.setText("Looking for AirPods...")
        if self._tray is not None and status.available:
            self._tray.setToolTip(notification_text(status))

    @Slot(object)
    def _update_tray(self, status: AggregateStatus) -> None:
        if self._tray is None:
            return
        self._tray.setToolTip(notification_text(status))

    @Slot()
    def _reset_tray(self) -> None:
        if self._tray is not None:
            self._tray.setToolTip(IDLE_TOOLTIP)

    @Slot(object)
    def _show_popup(self, status: AggregateStatus) -> None:
        self._apply_state(status)
        self._open_popup()

    def _open_popup(self) -> None:
        self.center()
        self.show()
        self.raise_()
        # Ask for a fresh status instead of waiting for the next change
        if self.on_request_status:
            self.on_request_status()

    def center(self) -> None:
        screen = QApplication.primaryScreen().geometry()
        self.move((screen.width() - self.width()) // 2, (screen.height() - self.height()) // 2)

    def mousePressEvent(self, event):
        # Popup is dismissed with a click
        self.hide()

    def closeEvent(self, event):
        if self._initialized:
            self.hide()
            event.ignore()
            return
        event.accept()

    def _quit(self) -> None:
        if self.on_close:
            self.on_close()

    def run(self) -> None:
        self._app.setQuitOnLastWindowClosed(False)
        self._app.exec()

    def destroy(self) -> None:
        if not self._initialized:
            return
        self._initialized = False
        if self._tray is not None:
            self._tray.hide()
        self.close()
        self._app.quit()
