# kaizen_player/widgets/subtitle_overlay.py
from __future__ import annotations

from dataclasses import replace
from typing import List, Optional, Tuple

from PyQt5.QtCore import QEvent, QPoint, QRect, QSize, Qt, pyqtSignal
from PyQt5.QtGui import QColor, QFont, QFontMetrics, QPainter
from PyQt5.QtWidgets import QAction, QMenu, QWidget

from ..domain import SubtitleSettings
from ..subtitles import KaraokeToken, SubtitleFrame, drag_position, step_font_size


PADDING_X = 12
PADDING_Y = 6


class SubtitleOverlay(QWidget):
    """
    Karaoke subtitle box floating over a video area.

    Each token is drawn in the base color and then again in the highlight
    color, clipped to the token's progress, so the sweep runs left to right.
    The box can be dragged; font size changes from the context menu or
    Ctrl+wheel. Both emit settings_changed with the new settings.
    """

    settings_changed = pyqtSignal(object)  # SubtitleSettings

    def __init__(self, parent: QWidget, settings: Optional[SubtitleSettings] = None):
        super().__init__(parent)
        self.settings = (settings or SubtitleSettings()).clamped()
        self._frame: Optional[SubtitleFrame] = None

        self._drag_origin: Optional[QPoint] = None
        self._drag_start_pct: Tuple[float, float] = (0.0, 0.0)

        self.setAttribute(Qt.WA_TranslucentBackground, True)
        self.setCursor(Qt.OpenHandCursor)
        self.setContextMenuPolicy(Qt.CustomContextMenu)
        self.customContextMenuRequested.connect(self._show_menu)

        parent.installEventFilter(self)
        self.hide()

    # ---------------- Public API ----------------

    def set_settings(self, settings: SubtitleSettings) -> None:
        self.settings = settings.clamped()
        self._relayout()

    def set_frame(self, frame: Optional[SubtitleFrame]) -> None:
        if frame is None:
            if self._frame is not None:
                self._frame = None
                self.hide()
            return
        self._frame = frame
        self._relayout()
        if not self.isVisible():
            self.show()
            self.raise_()
        self.update()

    def adjust_font(self, direction: int) -> None:
        size = step_font_size(self.settings.font_size, direction)
        if size == self.settings.font_size:
            return
        self.settings = replace(self.settings, font_size=size)
        self._relayout()
        self.settings_changed.emit(self.settings)

    # ---------------- Layout ----------------

    def _font(self) -> QFont:
        f = QFont(self.font())
        f.setPixelSize(int(self.settings.font_size))
        f.setBold(True)
        return f

    def _tokens(self) -> List[KaraokeToken]:
        if self._frame is None:
            return []
        if self._frame.mode == "karaoke":
            return list(self._frame.tokens)
        # estimate mode: plain text, nothing highlighted
        return [KaraokeToken(text=ch, progress=0.0) for ch in self._frame.text]

    def _lines(self, fm: QFontMetrics, max_width: int) -> List[List[KaraokeToken]]:
        lines: List[List[KaraokeToken]] = [[]]
        width = 0
        for tok in self._tokens():
            w = fm.horizontalAdvance(tok.text)
            if lines[-1] and width + w > max_width:
                lines.append([])
                width = 0
            lines[-1].append(tok)
            width += w
        # keep the most recent lines
        return lines[-max(1, int(self.settings.max_lines)):]

    def _relayout(self) -> None:
        parent = self.parentWidget()
        if parent is None or self._frame is None:
            return
        fm = QFontMetrics(self._font())
        max_width = max(80, int(parent.width() * 0.9) - 2 * PADDING_X)
        lines = self._lines(fm, max_width)
        text_w = max((sum(fm.horizontalAdvance(t.text) for t in line) for line in lines), default=0)
        size = QSize(text_w + 2 * PADDING_X, len(lines) * fm.height() + 2 * PADDING_Y)

        cx = parent.width() * self.settings.position_x / 100.0
        top = parent.height() * self.settings.position_y / 100.0
        x = int(cx - size.width() / 2)
        x = max(0, min(x, parent.width() - size.width()))
        y = int(min(top, parent.height() - size.height()))
        self.setGeometry(QRect(x, max(0, y), size.width(), size.height()))

    def eventFilter(self, obj, event):
        if obj is self.parentWidget() and event.type() == QEvent.Resize:
            self._relayout()
        return super().eventFilter(obj, event)

    # ---------------- Painting ----------------

    def paintEvent(self, event):
        if self._frame is None:
            return
        painter = QPainter(self)
        painter.setRenderHint(QPainter.Antialiasing, True)

        bg = QColor(self.settings.background_color)
        bg.setAlphaF(max(0.0, min(self.settings.background_opacity, 1.0)))
        painter.setPen(Qt.NoPen)
        painter.setBrush(bg)
        painter.drawRoundedRect(self.rect(), 6, 6)

        font = self._font()
        painter.setFont(font)
        fm = QFontMetrics(font)
        base = QColor(self.settings.text_color)
        highlight = QColor(self.settings.highlight_color)

        max_width = self.width() - 2 * PADDING_X
        y = PADDING_Y
        for line in self._lines(fm, max(80, max_width)):
            line_w = sum(fm.horizontalAdvance(t.text) for t in line)
            x = PADDING_X + max(0, (max_width - line_w) // 2)
            for tok in line:
                w = fm.horizontalAdvance(tok.text)
                rect = QRect(x, y, w, fm.height())
                painter.setClipping(False)
                painter.setPen(base)
                painter.drawText(rect, Qt.AlignLeft | Qt.AlignVCenter, tok.text)
                if tok.progress > 0:
                    painter.setClipRect(QRect(x, y, int(round(w * tok.progress / 100.0)), fm.height()))
                    painter.setPen(highlight)
                    painter.drawText(rect, Qt.AlignLeft | Qt.AlignVCenter, tok.text)
                x += w
            y += fm.height()
        painter.end()

    # ---------------- Drag / font ----------------

    def mousePressEvent(self, event):
        if event.button() == Qt.LeftButton:
            self._drag_origin = event.globalPos()
            self._drag_start_pct = (self.settings.position_x, self.settings.position_y)
            self.setCursor(Qt.ClosedHandCursor)
            event.accept()
            return
        super().mousePressEvent(event)

    def mouseMoveEvent(self, event):
        parent = self.parentWidget()
        if self._drag_origin is None or parent is None:
            return super().mouseMoveEvent(event)
        delta = event.globalPos() - self._drag_origin
        x, y = drag_position(self._drag_start_pct, (delta.x(), delta.y()), (parent.width(), parent.height()))
        self.settings = replace(self.settings, position_x=x, position_y=y)
        self._relayout()

    def mouseReleaseEvent(self, event):
        if self._drag_origin is not None and event.button() == Qt.LeftButton:
            self._drag_origin = None
            self.setCursor(Qt.OpenHandCursor)
            self.settings_changed.emit(self.settings)
            return
        super().mouseReleaseEvent(event)

    def wheelEvent(self, event):
        if event.modifiers() & Qt.ControlModifier:
            self.adjust_font(1 if event.angleDelta().y() > 0 else -1)
            event.accept()
            return
        super().wheelEvent(event)

    def _show_menu(self, pos) -> None:
        menu = QMenu(self)
        bigger = QAction("字号 +", menu)
        smaller = QAction("字号 -", menu)
        bigger.triggered.connect(lambda: self.adjust_font(1))
        smaller.triggered.connect(lambda: self.adjust_font(-1))
        menu.addAction(bigger)
        menu.addAction(smaller)
        menu.exec_(self.mapToGlobal(pos))
