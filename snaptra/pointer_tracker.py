from typing import Callable, Optional, Tuple

from PyQt6.QtCore import QObject, QTimer, pyqtSignal, pyqtSlot
from PyQt6.QtGui import QCursor


def cursor_position() -> Tuple[float, float]:
    pos = QCursor.pos()
    return float(pos.x()), float(pos.y())


class PointerTracker(QObject):
    """Poll the global cursor position and report changes.

    There is no portable global mouse-move hook, so the position is sampled on
    a timer while tracking is active.
    """

    moved = pyqtSignal(float, float)

    def __init__(self, interval_ms: int = 20, position_source: Callable[[], Tuple[float, float]] = None, parent=None):
        super().__init__(parent)
        self.position_source = position_source or cursor_position
        self._last: Optional[Tuple[float, float]] = None
        self._timer = QTimer(self)
        self._timer.setInterval(interval_ms)
        self._timer.timeout.connect(self._poll)

    @property
    def is_tracking(self) -> bool:
        return self._timer.isActive()

    def set_interval(self, interval_ms: int):
        self._timer.setInterval(interval_ms)

    def start(self):
        if self._timer.isActive():
            return
        self._last = self.position_source()
        self._timer.start()

    def stop(self):
        self._timer.stop()
        self._last = None

    @pyqtSlot()
    def _poll(self):
        position = self.position_source()
        if position != self._last:
            self._last = position
            self.moved.emit(position[0], position[1])
