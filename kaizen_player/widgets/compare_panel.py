# kaizen_player/widgets/compare_panel.py
from __future__ import annotations

from typing import Dict, List, Optional

from PyQt5.QtCore import QSize, Qt, QTimer
from PyQt5.QtMultimediaWidgets import QVideoWidget
from PyQt5.QtWidgets import (
    QGridLayout,
    QHBoxLayout,
    QLabel,
    QProgressBar,
    QSizePolicy,
    QVBoxLayout,
    QWidget,
)

from ..domain import Annotation, Process, SubtitleSettings, VideoType
from ..playback.narration import NarrationEntry
from ..playback.policy import Phase
from ..playback.qt_tracks import QtMediaTrack
from ..subtitles import SubtitleRenderer
from ..timeutils import seconds_to_time_str, time_saved_str
from .annotation_overlay import AnnotationOverlay
from .range_slider import RangeOverlaySlider, process_markers
from .subtitle_overlay import SubtitleOverlay


MASK_TEXT = {
    VideoType.BEFORE: "改善前无此步骤",
    VideoType.AFTER: "步骤已取消",
}
TITLES = {
    VideoType.BEFORE: "改善前",
    VideoType.AFTER: "改善后",
}


class VideoCell(QWidget):
    """
    One video pane: the video itself, an annotation overlay, and a mask
    shown when the process has no footage on this side.
    """

    def __init__(self, parent: Optional[QWidget] = None):
        super().__init__(parent)
        self.setStyleSheet("background-color: black;")
        self.setSizePolicy(QSizePolicy.Expanding, QSizePolicy.Expanding)

        self.video = QVideoWidget(self)
        self.annotations = AnnotationOverlay(self)

        self.mask = QLabel(self)
        self.mask.setAlignment(Qt.AlignCenter)
        self.mask.setStyleSheet("background-color: rgba(20, 20, 20, 230); color: #DDD; font-size: 18px;")
        self.mask.hide()

    def show_mask(self, text: Optional[str]) -> None:
        if text:
            self.mask.setText(text)
            self.mask.show()
            self.mask.raise_()
        else:
            self.mask.hide()

    def resizeEvent(self, event):
        super().resizeEvent(event)
        self.video.setGeometry(self.rect())
        self.mask.setGeometry(self.rect())

    def sizeHint(self) -> QSize:
        return QSize(480, 270)

    def minimumSizeHint(self) -> QSize:
        return QSize(160, 90)


class ComparePanel(QWidget):
    """
    Before/after video panes with progress bars, process timelines and the
    karaoke subtitle overlay. Owns the three media tracks; a controller
    drives them (see bind()).
    """

    def __init__(self, subtitle_settings: Optional[SubtitleSettings] = None, parent: Optional[QWidget] = None):
        super().__init__(parent)

        self.controller = None
        self.renderer = SubtitleRenderer()
        self.narration_speed = 5.0
        self._processes: List[Process] = []

        self.cells: Dict[VideoType, VideoCell] = {}
        self.titles: Dict[VideoType, QLabel] = {}
        self.progress: Dict[VideoType, QProgressBar] = {}
        self.sliders: Dict[VideoType, RangeOverlaySlider] = {}
        self.tracks: Dict[VideoType, QtMediaTrack] = {}

        root = QVBoxLayout(self)
        root.setContentsMargins(0, 0, 0, 0)

        self.videos = QWidget(self)
        grid = QGridLayout(self.videos)
        grid.setContentsMargins(0, 0, 0, 0)
        grid.setSpacing(8)

        for col, vt in enumerate((VideoType.BEFORE, VideoType.AFTER)):
            title = QLabel(TITLES[vt])
            title.setStyleSheet("font-weight: bold;")
            cell = VideoCell(self.videos)
            bar = QProgressBar()
            bar.setRange(0, 1000)
            bar.setTextVisible(False)
            bar.setFixedHeight(6)
            slider = RangeOverlaySlider(Qt.Horizontal)
            slider.setRange(0, 0)
            slider.marker_clicked.connect(lambda pid, ms, _vt=vt: self._on_marker_clicked(_vt, pid, ms))
            slider.sliderReleased.connect(lambda _vt=vt, _s=slider: self._on_slider_released(_vt, _s))

            grid.addWidget(title, 0, col)
            grid.addWidget(cell, 1, col)
            grid.addWidget(bar, 2, col)
            grid.addWidget(slider, 3, col)
            grid.setColumnStretch(col, 1)

            track = QtMediaTrack(vt.value, video_output=cell.video, parent=self)
            track.player.durationChanged.connect(lambda ms, _s=slider: _s.setRange(0, int(ms or 0)))
            track.player.metaDataChanged.connect(lambda _vt=vt: self._on_metadata(_vt))

            self.cells[vt] = cell
            self.titles[vt] = title
            self.progress[vt] = bar
            self.sliders[vt] = slider
            self.tracks[vt] = track
        grid.setRowStretch(1, 1)

        self.narration_track = QtMediaTrack("narration", parent=self)
        self.subtitles = SubtitleOverlay(self.videos, subtitle_settings)

        root.addWidget(self.videos, 1)

        stats = QHBoxLayout()
        self.lbl_process = QLabel("")
        self.lbl_saved = QLabel("")
        self.lbl_total = QLabel("")
        for w in (self.lbl_process, self.lbl_saved, self.lbl_total):
            stats.addWidget(w)
        stats.addStretch(1)
        root.addLayout(stats)

        self.lbl_note = QLabel("")
        self.lbl_note.setWordWrap(True)
        root.addWidget(self.lbl_note)

        # Heartbeat: time updates stop while every track is paused or holding
        # its last frame, but narration may still be running on the wall clock.
        self._sync_timer = QTimer(self)
        self._sync_timer.setInterval(100)
        self._sync_timer.timeout.connect(self._sync_tick)
        self._sync_timer.start()

    # ---------------- Wiring ----------------

    def bind(self, controller) -> None:
        self.controller = controller
        controller.progress_changed.connect(self._on_progress)
        controller.narration_time_changed.connect(self._on_narration_time)
        controller.narration_entry_changed.connect(self._on_entry)
        controller.process_changed.connect(self._on_process_changed)
        controller.phase_changed.connect(lambda _p: self._refresh_subtitle())

    def set_processes(self, processes: List[Process], global_mode: bool, stage_total_saved: float) -> None:
        self._processes = list(processes or [])
        for vt, slider in self.sliders.items():
            slider.set_overlays(process_markers(self._processes, vt))
        if global_mode:
            self.lbl_total.setText(f"合计：{time_saved_str(stage_total_saved)}")
        else:
            self.lbl_total.setText("")

    def set_annotations(self, video_type: VideoType, annotations: List[Annotation]) -> None:
        self.cells[VideoType(video_type)].annotations.set_annotations(annotations)

    def set_subtitle_settings(self, settings: SubtitleSettings) -> None:
        self.subtitles.set_settings(settings)

    # ---------------- Handlers ----------------

    def _sync_tick(self) -> None:
        if self.controller is not None:
            self.controller.tick()
        for vt, track in self.tracks.items():
            pos = track.position()
            slider = self.sliders[vt]
            if not slider.isSliderDown():
                slider.blockSignals(True)
                slider.setValue(int(pos * 1000))
                slider.blockSignals(False)
            self.cells[vt].annotations.set_time(pos)

    def _on_metadata(self, vt: VideoType) -> None:
        res = self.tracks[vt].player.metaData("Resolution")
        if res is not None and hasattr(res, "width"):
            self.cells[vt].annotations.set_video_size(res.width(), res.height())

    def _on_progress(self, video_type: str, pct: float) -> None:
        self.progress[VideoType(video_type)].setValue(int(round(pct * 10)))

    def _on_entry(self, _entry: Optional[NarrationEntry]) -> None:
        self._refresh_subtitle()

    def _on_narration_time(self, t: float) -> None:
        self._refresh_subtitle(t)

    def _refresh_subtitle(self, t: Optional[float] = None) -> None:
        c = self.controller
        if c is None:
            self.subtitles.set_frame(None)
            return
        text, timing = c.subtitle_cue()
        if not text:
            self.subtitles.set_frame(None)
            return
        if t is None:
            t = c.narration_elapsed()
        frame = self.renderer.frame(
            text,
            timing,
            t,
            is_active=c.phase != Phase.IDLE,
            narration_speed=self.narration_speed,
        )
        self.subtitles.set_frame(frame)

    def _on_process_changed(self, index: int) -> None:
        if not (0 <= index < len(self._processes)):
            return
        p = self._processes[index]
        for vt in (VideoType.BEFORE, VideoType.AFTER):
            if p.has_track(vt):
                self.titles[vt].setText(f"{TITLES[vt]}  {seconds_to_time_str(p.duration(vt))}")
                self.cells[vt].show_mask(None)
            else:
                self.titles[vt].setText(TITLES[vt])
                self.cells[vt].show_mask(MASK_TEXT[vt])
            self.sliders[vt].set_active_process(p.id)

        self.lbl_process.setText(f"当前工序：{p.name}  ({index + 1} / {len(self._processes)})")
        self.lbl_saved.setText(time_saved_str(p.time_saved))
        self.lbl_saved.setStyleSheet("color: #C0392B;" if p.time_saved < 0 else "color: #27AE60;")
        self.lbl_note.setText(f"改善说明：{p.improvement_note}" if p.improvement_note else "")

    def _on_marker_clicked(self, vt: VideoType, process_id: int, start_ms: int) -> None:
        if self.controller is not None:
            self.controller.seek(vt, start_ms / 1000.0)

    def _on_slider_released(self, vt: VideoType, slider: RangeOverlaySlider) -> None:
        if self.controller is not None:
            self.controller.seek(vt, slider.value() / 1000.0)
