# kaizen_player/widgets/annotation_overlay.py
from __future__ import annotations

import math
from typing import List, Optional, Tuple

from PyQt5.QtCore import QEvent, QPointF, QRectF, Qt
from PyQt5.QtGui import QColor, QFont, QPainter, QPen, QPolygonF
from PyQt5.QtWidgets import QWidget

from ..annotations import annotation_geometry, to_pixel, video_render_rect, visible_annotations
from ..domain import Annotation


class AnnotationOverlay(QWidget):
    """
    Draws the annotations visible at the current video time on top of a
    video widget. Purely visual; mouse events pass through.
    """

    def __init__(self, parent: QWidget):
        super().__init__(parent)
        self.setAttribute(Qt.WA_TransparentForMouseEvents, True)
        self.setAttribute(Qt.WA_TranslucentBackground, True)

        self._annotations: List[Annotation] = []
        self._visible: List[Annotation] = []
        self._video_size: Tuple[int, int] = (0, 0)

        parent.installEventFilter(self)
        self.setGeometry(parent.rect())

    def set_annotations(self, annotations: List[Annotation]) -> None:
        self._annotations = list(annotations or [])
        self._visible = []
        self.update()

    def set_video_size(self, width: int, height: int) -> None:
        self._video_size = (int(width or 0), int(height or 0))
        self.update()

    def set_time(self, t: float) -> None:
        visible = visible_annotations(self._annotations, t)
        if [a.id for a in visible] != [a.id for a in self._visible]:
            self._visible = visible
            self.update()

    def eventFilter(self, obj, event):
        if obj is self.parentWidget() and event.type() == QEvent.Resize:
            self.setGeometry(self.parentWidget().rect())
            self.raise_()
        return super().eventFilter(obj, event)

    # ---------------- Painting ----------------

    def paintEvent(self, event):
        if not self._visible:
            return
        vw, vh = self._video_size
        rect = video_render_rect(self.width(), self.height(), vw or self.width(), vh or self.height())
        if rect is None:
            return

        painter = QPainter(self)
        painter.setRenderHint(QPainter.Antialiasing, True)
        for a in self._visible:
            px = to_pixel(annotation_geometry(a), rect)
            pen = QPen(QColor(a.color))
            pen.setWidth(max(1, int(a.stroke_width)))
            painter.setPen(pen)
            painter.setBrush(Qt.NoBrush)

            if a.type == "rectangle" and "width" in px and "height" in px:
                painter.drawRect(QRectF(px["x"], px["y"], px["width"], px["height"]))
            elif a.type == "circle" and "width" in px and "height" in px:
                painter.drawEllipse(QRectF(px["x"], px["y"], px["width"], px["height"]))
            elif a.type == "arrow" and "end_x" in px and "end_y" in px:
                self._draw_arrow(painter, QColor(a.color), px["x"], px["y"], px["end_x"], px["end_y"], a.stroke_width)
            elif a.type == "text" and a.text:
                f = QFont(self.font())
                f.setPixelSize(max(12, int(a.stroke_width) * 6))
                f.setBold(True)
                painter.setFont(f)
                painter.drawText(QPointF(px["x"], px["y"]), a.text)
        painter.end()

    def _draw_arrow(self, painter: QPainter, color: QColor, x1: float, y1: float, x2: float, y2: float, stroke: int) -> None:
        painter.drawLine(QPointF(x1, y1), QPointF(x2, y2))
        angle = math.atan2(y2 - y1, x2 - x1)
        head = 10.0 + 2.0 * float(stroke)
        left = QPointF(x2 - head * math.cos(angle - math.pi / 6), y2 - head * math.sin(angle - math.pi / 6))
        right = QPointF(x2 - head * math.cos(angle + math.pi / 6), y2 - head * math.sin(angle + math.pi / 6))
        painter.setBrush(color)
        painter.drawPolygon(QPolygonF([QPointF(x2, y2), left, right]))
