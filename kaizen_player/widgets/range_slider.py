# kaizen_player/widgets/range_slider.py
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from PyQt5.QtCore import Qt, QRect, pyqtSignal
from PyQt5.QtGui import QColor, QPainter
from PyQt5.QtWidgets import QSlider, QStyle, QStyleOptionSlider

from ..domain import Process, VideoType, process_color_hex


@dataclass
class OverlayRange:
    """
    A translucent overlay on the slider groove, in slider value units (ms),
    standing for one process window on this recording.
    """
    start_value: int
    end_value: int
    color_hex: str = "#4A90E2"
    alpha: int = 120
    process_id: Optional[int] = None
    label: str = ""


def process_markers(processes: List[Process], video_type: VideoType) -> List[OverlayRange]:
    """
    One overlay per process that has a usable window on `video_type`,
    ordered by start time and colored by that order.
    """
    usable = []
    for p in processes or []:
        if not p.has_track(video_type):
            continue
        start, end = p.window(video_type)
        if start >= end:
            continue
        usable.append((start, end, p))
    usable.sort(key=lambda item: item[0])

    return [
        OverlayRange(
            start_value=int(round(start * 1000)),
            end_value=int(round(end * 1000)),
            color_hex=process_color_hex(i),
            process_id=p.id,
            label=p.name,
        )
        for i, (start, end, p) in enumerate(usable)
    ]


class RangeOverlaySlider(QSlider):
    """
    A QSlider that draws 0..N colored process ranges on the groove.

    Clicking a range emits marker_clicked(process_id, start_ms). Clicking
    elsewhere on the groove does not jump; the wheel is ignored.
    """

    marker_clicked = pyqtSignal(int, int)

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)

        self._overlays: List[OverlayRange] = []
        self._active_id: Optional[int] = None

        self.setMouseTracking(True)
        self._cursor_on_target = False

    # -------------
    # Overlay API
    # -------------

    def set_overlays(self, overlays: List[OverlayRange]) -> None:
        self._overlays = list(overlays or [])
        self.update()

    def clear_overlays(self) -> None:
        self._overlays = []
        self._active_id = None
        self.update()

    def set_active_process(self, process_id: Optional[int]) -> None:
        """The current process's range is drawn more opaque."""
        self._active_id = process_id
        self.update()

    # -------------
    # Interaction
    # -------------

    def _groove(self) -> QRect:
        opt = QStyleOptionSlider()
        self.initStyleOption(opt)
        return self.style().subControlRect(QStyle.CC_Slider, opt, QStyle.SC_SliderGroove, self)

    def _click_is_on_handle(self, pos) -> bool:
        opt = QStyleOptionSlider()
        self.initStyleOption(opt)
        handle = self.style().subControlRect(QStyle.CC_Slider, opt, QStyle.SC_SliderHandle, self)
        return handle.contains(pos)

    def _overlay_at(self, pos) -> Optional[OverlayRange]:
        groove = self._groove()
        if groove.isNull() or self.maximum() <= self.minimum():
            return None
        for ov in self._overlays:
            rect = self._overlay_rect(ov, groove)
            if rect is not None and rect.adjusted(0, -4, 0, 4).contains(pos):
                return ov
        return None

    def _update_hover_cursor(self, pos) -> None:
        on_target = self._click_is_on_handle(pos) or self._overlay_at(pos) is not None
        if on_target and not self._cursor_on_target:
            self._cursor_on_target = True
            self.setCursor(Qt.PointingHandCursor)
        elif not on_target and self._cursor_on_target:
            self._cursor_on_target = False
            self.unsetCursor()

    def mousePressEvent(self, event):
        if event.button() == Qt.LeftButton and not self._click_is_on_handle(event.pos()):
            ov = self._overlay_at(event.pos())
            if ov is not None and ov.process_id is not None:
                self.marker_clicked.emit(int(ov.process_id), int(ov.start_value))
                event.accept()
                return
            event.ignore()
            return
        super().mousePressEvent(event)

    def wheelEvent(self, event):
        event.ignore()

    def mouseMoveEvent(self, event):
        self._update_hover_cursor(event.pos())
        return super().mouseMoveEvent(event)

    def leaveEvent(self, event):
        if self._cursor_on_target:
            self._cursor_on_target = False
            self.unsetCursor()
        return super().leaveEvent(event)

    # -------------
    # Painting
    # -------------

    def _value_to_pixel(self, value: int, groove: QRect) -> int:
        """Map a slider value to an x pixel position within the groove."""
        if self.maximum() <= self.minimum():
            return groove.x()
        v = max(self.minimum(), min(int(value), self.maximum()))
        span = max(1, groove.width())
        return groove.x() + QStyle.sliderPositionFromValue(self.minimum(), self.maximum(), v, span)

    def _overlay_rect(self, overlay: OverlayRange, groove: QRect) -> Optional[QRect]:
        s = max(self.minimum(), min(int(overlay.start_value), self.maximum()))
        e = max(self.minimum(), min(int(overlay.end_value), self.maximum()))
        if e <= s:
            return None
        x1 = self._value_to_pixel(s, groove)
        x2 = self._value_to_pixel(e, groove)
        h = max(6, groove.height())
        y = groove.center().y() - (h // 2)
        rect = QRect(min(x1, x2), y, max(1, abs(x2 - x1)), h)
        return rect

    def paintEvent(self, event):
        # Draw the base slider (groove, handle)
        super().paintEvent(event)

        if not self._overlays:
            return

        groove = self._groove()
        if groove.isNull():
            return

        painter = QPainter(self)
        painter.setRenderHint(QPainter.Antialiasing, True)
        for ov in self._overlays:
            rect = self._overlay_rect(ov, groove)
            if rect is None:
                continue
            c = QColor(ov.color_hex)
            alpha = 220 if ov.process_id is not None and ov.process_id == self._active_id else ov.alpha
            c.setAlpha(int(max(0, min(alpha, 255))))
            painter.fillRect(rect, c)
        painter.end()
