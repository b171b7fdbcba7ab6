from __future__ import annotations

import sys
from collections.abc import Callable

from PySide6 import QtCore, QtGui, QtWidgets

from worktimer_app.core.states import SessionState
from worktimer_app.ui.renderer import APP_TITLE, TimerView

# (key, button text, states in which the command is legal)
ACTIONS: list[tuple[str, str, frozenset[SessionState]]] = [
    ("start", "Start workday", frozenset({SessionState.IDLE})),
    ("start_break", "Start break", frozenset({SessionState.WORKING})),
    ("end_break_early", "End break early", frozenset({SessionState.BREAK})),
    ("resume_work", "Resume work", frozenset({SessionState.BREAK_ENDED_WAITING_USER})),
    ("start_overtime", "Start overtime", frozenset({SessionState.WORK_COMPLETED})),
    ("stop_overtime", "Stop overtime", frozenset({SessionState.OVERTIME})),
    ("end_day", "End day", frozenset({SessionState.WORK_COMPLETED})),
    ("end_day_early", "End day early", frozenset({SessionState.WORKING})),
]

# (minutes, label); 0 turns overtime reminders off.
NOTIFY_OPTIONS: list[tuple[int, str]] = [
    (15, "15 min"),
    (20, "20 min"),
    (30, "30 min"),
    (60, "60 min"),
    (0, "Never"),
]

BADGE_COLORS = {
    "working": "#2e7d32",
    "warning": "#ef6c00",
    "neutral": "#546e7a",
    "overtime": "#6a1b9a",
    "idle": "#9e9e9e",
}


class WorktimerShell:
    def __init__(self, handlers: dict[str, Callable[[], None]], on_quit: Callable[[], None] | None = None) -> None:
        self._app = QtWidgets.QApplication.instance() or QtWidgets.QApplication(sys.argv)
        self._app.setQuitOnLastWindowClosed(False)
        self._win = _TimerWindow(handlers, on_quit)

    def schedule_every(self, seconds: float, callback: Callable[[], None]) -> None:
        timer = QtCore.QTimer(self._win)
        timer.setInterval(max(1, int(seconds * 1000)))
        timer.timeout.connect(callback)
        timer.start()
        self._win._timers.append(timer)

    def update_view(self, view: TimerView) -> None:
        self._win.set_view(view)

    def notify(self, title: str, message: str) -> None:
        self._win.show_tray_message(title, message)

    def ask_durations(
        self, work_minutes: int, break_minutes: int, notify_minutes: int
    ) -> tuple[int, int, int] | None:
        """Setup prompt before a workday. None when cancelled."""
        dlg = _SetupDialog(self._win, work_minutes, break_minutes, notify_minutes)
        if not dlg.exec():
            return None
        return dlg.values()

    def ask_resume(self, text: str) -> bool:
        answer = QtWidgets.QMessageBox.question(self._win, APP_TITLE, text)
        return answer == QtWidgets.QMessageBox.StandardButton.Yes

    def show_error(self, title: str, message: str) -> None:
        QtWidgets.QMessageBox.warning(self._win, title, message)

    def run(self) -> None:
        self._win.show()
        self._win.raise_()
        self._win.activateWindow()
        self._app.exec()


class _SetupDialog(QtWidgets.QDialog):
    def __init__(self, parent: QtWidgets.QWidget, work_minutes: int, break_minutes: int, notify_minutes: int) -> None:
        super().__init__(parent)
        self.setWindowTitle(f"{APP_TITLE} - new workday")
        self.setModal(True)

        self._work_hours, self._work_minutes = self._duration_row(work_minutes)
        self._break_hours, self._break_minutes = self._duration_row(break_minutes)

        self._notify = QtWidgets.QComboBox()
        options = list(NOTIFY_OPTIONS)
        if notify_minutes not in (value for value, _ in options):
            options.insert(-1, (notify_minutes, f"{notify_minutes} min"))
        for value, text in options:
            self._notify.addItem(text, value)
        self._notify.setCurrentIndex(self._notify.findData(notify_minutes))

        form = QtWidgets.QFormLayout()
        form.addRow("Work", self._pair(self._work_hours, self._work_minutes))
        form.addRow("Break", self._pair(self._break_hours, self._break_minutes))
        form.addRow("Overtime reminder", self._notify)

        buttons = QtWidgets.QDialogButtonBox(
            QtWidgets.QDialogButtonBox.StandardButton.Ok | QtWidgets.QDialogButtonBox.StandardButton.Cancel
        )
        self._start_button = buttons.button(QtWidgets.QDialogButtonBox.StandardButton.Ok)
        self._start_button.setText("Start workday")
        buttons.accepted.connect(self.accept)
        buttons.rejected.connect(self.reject)

        layout = QtWidgets.QVBoxLayout(self)
        layout.addLayout(form)
        layout.addWidget(buttons)

        for box in (self._work_hours, self._work_minutes):
            box.valueChanged.connect(self._update_start_enabled)
        self._update_start_enabled()

    @staticmethod
    def _duration_row(total_minutes: int) -> tuple[QtWidgets.QSpinBox, QtWidgets.QSpinBox]:
        hours = QtWidgets.QSpinBox()
        hours.setRange(0, 23)
        hours.setSuffix(" h")
        hours.setValue(min(23, max(0, total_minutes // 60)))
        minutes = QtWidgets.QSpinBox()
        minutes.setRange(0, 59)
        minutes.setSuffix(" min")
        minutes.setValue(max(0, total_minutes % 60))
        return hours, minutes

    @staticmethod
    def _pair(left: QtWidgets.QWidget, right: QtWidgets.QWidget) -> QtWidgets.QWidget:
        box = QtWidgets.QWidget()
        row = QtWidgets.QHBoxLayout(box)
        row.setContentsMargins(0, 0, 0, 0)
        row.addWidget(left)
        row.addWidget(right)
        return box

    def _update_start_enabled(self) -> None:
        # A workday needs some work time.
        work, _, _ = self.values()
        self._start_button.setEnabled(work > 0)

    def values(self) -> tuple[int, int, int]:
        work = self._work_hours.value() * 60 + self._work_minutes.value()
        brk = self._break_hours.value() * 60 + self._break_minutes.value()
        return work, brk, int(self._notify.currentData())


class _TimerWindow(QtWidgets.QWidget):
    def __init__(self, handlers: dict[str, Callable[[], None]], on_quit: Callable[[], None] | None) -> None:
        super().__init__()
        self._timers: list[QtCore.QTimer] = []
        self._on_quit = on_quit
        self.setWindowTitle(APP_TITLE)
        self.setMinimumWidth(320)

        self._state_label = QtWidgets.QLabel("")
        self._state_label.setAlignment(QtCore.Qt.AlignmentFlag.AlignCenter)
        self._time_label = QtWidgets.QLabel("00:00:00")
        self._time_label.setAlignment(QtCore.Qt.AlignmentFlag.AlignCenter)
        font = self._time_label.font()
        font.setPointSize(28)
        font.setBold(True)
        self._time_label.setFont(font)
        self._progress = QtWidgets.QProgressBar()
        self._progress.setRange(0, 1000)
        self._progress.setTextVisible(False)

        layout = QtWidgets.QVBoxLayout(self)
        layout.addWidget(self._state_label)
        layout.addWidget(self._time_label)
        layout.addWidget(self._progress)

        self._buttons: dict[str, tuple[QtWidgets.QPushButton, frozenset[SessionState]]] = {}
        grid = QtWidgets.QGridLayout()
        for index, (key, text, legal_states) in enumerate(ACTIONS):
            button = QtWidgets.QPushButton(text)
            handler = handlers.get(key)
            if handler is not None:
                button.clicked.connect(handler)
            grid.addWidget(button, index // 2, index % 2)
            self._buttons[key] = (button, legal_states)
        layout.addLayout(grid)

        icon = self.style().standardIcon(QtWidgets.QStyle.StandardPixmap.SP_BrowserReload)
        self.setWindowIcon(icon)
        self._tray = QtWidgets.QSystemTrayIcon(icon, self)
        menu = QtWidgets.QMenu(self)
        menu.addAction("Show", self._show_from_tray)
        menu.addAction("Quit", self._quit)
        self._tray.setContextMenu(menu)
        self._tray.activated.connect(lambda _reason: self._show_from_tray())
        self._tray.show()

    def set_view(self, view: TimerView) -> None:
        self._state_label.setText(view.state_label)
        self._time_label.setText(view.display_time)
        color = BADGE_COLORS.get(view.badge, BADGE_COLORS["idle"])
        self._time_label.setStyleSheet(f"color: {color};")
        self._progress.setValue(int(round(view.progress * 1000)))
        self._tray.setToolTip(view.tray_text)
        for button, legal_states in self._buttons.values():
            button.setEnabled(view.state in legal_states)

    def show_tray_message(self, title: str, message: str) -> None:
        if QtWidgets.QSystemTrayIcon.supportsMessages():
            self._tray.showMessage(title, message, QtWidgets.QSystemTrayIcon.MessageIcon.Information, 10_000)
        else:
            self._show_from_tray()
            QtWidgets.QMessageBox.information(self, title, message)

    def closeEvent(self, e: QtGui.QCloseEvent) -> None:
        # Closing the window keeps the workday running in the tray.
        if self._tray.isVisible():
            e.ignore()
            self.hide()
            return
        super().closeEvent(e)

    def _show_from_tray(self) -> None:
        self.show()
        self.raise_()
        self.activateWindow()

    def _quit(self) -> None:
        if self._on_quit is not None:
            self._on_quit()
        self._tray.hide()
        QtWidgets.QApplication.quit()
