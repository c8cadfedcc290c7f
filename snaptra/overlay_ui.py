import html
import logging
from typing import List, Optional

from PyQt6 import sip
from PyQt6.QtCore import QPoint, QRect, Qt, pyqtSignal
from PyQt6.QtGui import QColor, QCursor, QGuiApplication, QMouseEvent, QPainter, QPaintEvent, QPen
from PyQt6.QtWidgets import QApplication, QHBoxLayout, QLabel, QPushButton, QVBoxLayout, QWidget

from .models import CaptureRegion, ErrorState, Idle, Loading, NoWordFound, OverlayState, Rect, ResultState

logger = logging.getLogger(__name__)

LABEL_STYLE = "color: white; font-size: 14px; background: transparent;"


def overlay_html(state: OverlayState) -> str:
    """Rich text shown by the popup for a state; empty for Idle"""
    if isinstance(state, Loading):
        if state.word:
            return f"<b>{html.escape(state.word)}</b><br><span style='color:#aaa'>Translating...</span>"
        return "<span style='color:#aaa'>Recognizing...</span>"
    if isinstance(state, NoWordFound):
        return "<span style='color:#aaa'>No word detected</span>"
    if isinstance(state, ErrorState):
        return f"<span style='color:#ff6b6b'>{html.escape(state.message)}</span>"
    if isinstance(state, ResultState):
        content = state.content
        parts = [f"<b style='font-size:16px'>{html.escape(content.word)}</b>"]
        if content.phonetic:
            parts[0] += f" <span style='color:#aaa'>{html.escape(content.phonetic)}</span>"
        parts.append(f"<span style='color:#4CAF50; font-size:15px'>{html.escape(content.translation)}</span>")
        for definition in content.definitions:
            line = ""
            if definition.part_of_speech:
                line += f"<i style='color:#aaa'>{html.escape(definition.part_of_speech)}</i> "
            line += html.escape(definition.meaning)
            if definition.translation:
                line += f"<br><span style='color:#4CAF50'>{html.escape(definition.translation)}</span>"
            parts.append(line)
        return "<br>".join(parts)
    return ""


class TranslationPopup(QWidget):
    """Frameless bubble near the cursor that renders the coordinator's overlay state"""

    dismiss_requested = pyqtSignal()

    def __init__(self, opacity: int = 80):
        super().__init__()
        flags = (
            Qt.WindowType.Tool
            | Qt.WindowType.FramelessWindowHint
            | Qt.WindowType.WindowStaysOnTopHint
            | Qt.WindowType.NoDropShadowWindowHint
        )
        self.setWindowFlags(flags)
        self.setAttribute(Qt.WidgetAttribute.WA_TranslucentBackground)
        self.setAttribute(Qt.WidgetAttribute.WA_ShowWithoutActivating)
        self.opacity = opacity
        self.state: OverlayState = Idle()
        self.interactive = False
        self.setup_ui()
        self.set_interactive(False)

    def setup_ui(self):
        layout = QVBoxLayout(self)
        layout.setContentsMargins(12, 10, 12, 10)

        self.content_label = QLabel()
        self.content_label.setWordWrap(True)
        self.content_label.setTextFormat(Qt.TextFormat.RichText)
        self.content_label.setAlignment(Qt.AlignmentFlag.AlignLeft | Qt.AlignmentFlag.AlignTop)
        self.content_label.setStyleSheet(LABEL_STYLE)
        self.content_label.setMaximumWidth(360)
        layout.addWidget(self.content_label)

        buttons = QHBoxLayout()
        buttons.addStretch()
        self.copy_btn = QPushButton("Copy")
        self.close_btn = QPushButton("×")
        for btn in (self.copy_btn, self.close_btn):
            btn.setCursor(Qt.CursorShape.PointingHandCursor)
            btn.setStyleSheet("""
                QPushButton {
                    background-color: rgba(255, 255, 255, 30);
                    color: white;
                    border-radius: 6px;
                    border: none;
                    padding: 2px 8px;
                }
                QPushButton:hover {
                    background-color: rgba(76, 175, 80, 160);
                }
            """)
            buttons.addWidget(btn)
        self.copy_btn.clicked.connect(self.copy_translation)
        self.close_btn.clicked.connect(self.dismiss_requested)
        layout.addLayout(buttons)

    def show_state(self, state: OverlayState, anchor: Optional[QPoint] = None):
        previous = self.state
        self.state = state
        if isinstance(state, Idle):
            self.hide()
            return
        self.content_label.setText(overlay_html(state))
        self.adjustSize()
        # Follow the cursor when a new lookup starts or the popup was hidden
        if anchor is not None or not self.isVisible() or isinstance(state, Loading) or isinstance(previous, Idle):
            self.move_near(anchor or QCursor.pos())
        self.show()
        self.raise_()

    def move_near(self, anchor: QPoint):
        """Place the popup below-right of the anchor, kept inside the anchor's screen"""
        screen = QGuiApplication.screenAt(anchor) or QGuiApplication.primaryScreen()
        pos = QPoint(anchor.x() + 16, anchor.y() + 20)
        if screen is not None:
            avail = screen.availableGeometry()
            if pos.x() + self.width() > avail.right():
                pos.setX(max(avail.left(), anchor.x() - self.width() - 16))
            if pos.y() + self.height() > avail.bottom():
                pos.setY(max(avail.top(), anchor.y() - self.height() - 20))
        self.move(pos)

    def set_interactive(self, interactive: bool):
        self.interactive = interactive
        self.setAttribute(Qt.WidgetAttribute.WA_TransparentForMouseEvents, not interactive)
        self.copy_btn.setVisible(interactive)
        self.close_btn.setVisible(interactive)
        if self.isVisible():
            self.adjustSize()

    def copy_translation(self):
        if isinstance(self.state, ResultState):
            QApplication.clipboard().setText(self.state.content.translation)

    def hide_popup(self):
        if not sip.isdeleted(self):
            self.state = Idle()
            self.hide()

    def paintEvent(self, event: QPaintEvent):
        painter = QPainter(self)
        painter.setRenderHint(QPainter.RenderHint.Antialiasing)

        rect = self.rect().adjusted(0, 0, -2, -2)
        bg_alpha = max(80, min(220, int(self.opacity * 2.55)))
        radius = 10

        painter.setBrush(QColor(0, 0, 0, min(200, bg_alpha + 20)))
        painter.setPen(Qt.PenStyle.NoPen)
        painter.drawRoundedRect(rect.translated(2, 2), radius, radius)

        painter.setBrush(QColor(20, 20, 20, bg_alpha))
        painter.setPen(QColor(255, 255, 255, 60))
        painter.drawRoundedRect(rect, radius, radius)
        painter.end()

    def mousePressEvent(self, event: QMouseEvent):
        if self.interactive and event.button() == Qt.MouseButton.RightButton:
            self.dismiss_requested.emit()
            event.accept()
            return
        super().mousePressEvent(event)


def _to_qrect(rect: Rect, origin: QPoint) -> QRect:
    return QRect(int(round(rect.x - origin.x())), int(round(rect.y - origin.y())),
                 int(round(rect.width)), int(round(rect.height)))


class DebugRegionOverlay(QWidget):
    """Click-through window over the whole desktop drawing the capture region and word boxes"""

    def __init__(self):
        super().__init__()
        flags = (
            Qt.WindowType.Tool
            | Qt.WindowType.FramelessWindowHint
            | Qt.WindowType.WindowStaysOnTopHint
            | Qt.WindowType.WindowTransparentForInput
            | Qt.WindowType.NoDropShadowWindowHint
        )
        self.setWindowFlags(flags)
        self.setAttribute(Qt.WidgetAttribute.WA_TranslucentBackground)
        self.setAttribute(Qt.WidgetAttribute.WA_TransparentForMouseEvents)
        self.setAttribute(Qt.WidgetAttribute.WA_ShowWithoutActivating)
        self.region: Optional[CaptureRegion] = None
        self.word_boxes: List[Rect] = []

    def show_region(self, region: Optional[CaptureRegion], word_boxes: List[Rect]):
        if region is None:
            self.clear()
            return
        self.region = region
        self.word_boxes = list(word_boxes)

        total_geo = QRect()
        for screen in QGuiApplication.screens():
            total_geo = total_geo.united(screen.geometry())
        if self.geometry() != total_geo:
            self.setGeometry(total_geo)
        self.show()
        self.update()

    def clear(self):
        self.region = None
        self.word_boxes = []
        self.hide()

    def paintEvent(self, event: QPaintEvent):
        painter = QPainter(self)
        painter.fillRect(event.rect(), Qt.GlobalColor.transparent)
        if self.region is not None:
            origin = self.geometry().topLeft()
            painter.setBrush(Qt.BrushStyle.NoBrush)
            painter.setPen(QPen(QColor(255, 64, 64, 220), 2))
            painter.drawRect(_to_qrect(self.region.rect, origin))
            painter.setPen(QPen(QColor(76, 175, 80, 220), 1))
            for box in self.word_boxes:
                painter.drawRect(_to_qrect(box, origin))
        painter.end()
