# kaizen_player/widgets/preview_panel.py
from __future__ import annotations

from typing import List, Optional

from PyQt5.QtCore import Qt, QTimer
from PyQt5.QtWidgets import QLabel, QProgressBar, QVBoxLayout, QWidget

from ..domain import Annotation, Process, SubtitleSettings, VideoType
from ..playback.narration import NarrationEntry
from ..playback.policy import Phase
from ..playback.qt_tracks import QtMediaTrack
from ..subtitles import SubtitleRenderer
from ..timeutils import seconds_to_time_str
from .compare_panel import MASK_TEXT, TITLES, VideoCell
from .range_slider import RangeOverlaySlider, process_markers
from .subtitle_overlay import SubtitleOverlay


class PreviewPanel(QWidget):
    """
    One recording of one process, for the single-track preview. Same
    subtitle and annotation overlays as the compare view.
    """

    def __init__(self, subtitle_settings: Optional[SubtitleSettings] = None, parent: Optional[QWidget] = None):
        super().__init__(parent)

        self.controller = None
        self.renderer = SubtitleRenderer()
        self.narration_speed = 5.0
        self._process: Optional[Process] = None
        self._annotations = {VideoType.BEFORE: [], VideoType.AFTER: []}

        lay = QVBoxLayout(self)
        lay.setContentsMargins(0, 0, 0, 0)

        self.title = QLabel("")
        self.title.setStyleSheet("font-weight: bold;")
        self.cell = VideoCell(self)
        self.bar = QProgressBar()
        self.bar.setRange(0, 1000)
        self.bar.setTextVisible(False)
        self.bar.setFixedHeight(6)
        self.slider = RangeOverlaySlider(Qt.Horizontal)
        self.slider.setRange(0, 0)
        self.slider.marker_clicked.connect(lambda _pid, ms: self._seek(ms / 1000.0))
        self.slider.sliderReleased.connect(lambda: self._seek(self.slider.value() / 1000.0))

        lay.addWidget(self.title)
        lay.addWidget(self.cell, 1)
        lay.addWidget(self.bar)
        lay.addWidget(self.slider)

        self.track = QtMediaTrack("preview", video_output=self.cell.video, parent=self)
        self.track.player.durationChanged.connect(lambda ms: self.slider.setRange(0, int(ms or 0)))
        self.track.player.metaDataChanged.connect(self._on_metadata)
        self.narration_track = QtMediaTrack("preview narration", parent=self)
        self.subtitles = SubtitleOverlay(self.cell, subtitle_settings)

        self._sync_timer = QTimer(self)
        self._sync_timer.setInterval(100)
        self._sync_timer.timeout.connect(self._sync_tick)
        self._sync_timer.start()

    # ---------------- Wiring ----------------

    def bind(self, controller) -> None:
        self.controller = controller
        controller.progress_changed.connect(self._on_progress)
        controller.narration_time_changed.connect(lambda t: self._refresh_subtitle(t))
        controller.narration_entry_changed.connect(self._on_entry)
        controller.process_changed.connect(lambda _i: self._refresh_header())
        controller.phase_changed.connect(lambda _p: self._refresh_subtitle())

    def set_process(self, process: Optional[Process], annotations_before: List[Annotation], annotations_after: List[Annotation]) -> None:
        self._process = process
        self._annotations = {VideoType.BEFORE: list(annotations_before), VideoType.AFTER: list(annotations_after)}
        self._refresh_header()

    def set_subtitle_settings(self, settings: SubtitleSettings) -> None:
        self.subtitles.set_settings(settings)

    def _view(self) -> VideoType:
        return self.controller.view if self.controller is not None else VideoType.BEFORE

    def _refresh_header(self) -> None:
        vt = self._view()
        p = self._process
        self.cell.annotations.set_annotations(self._annotations.get(vt, []))
        if p is None:
            self.title.setText(TITLES[vt])
            self.slider.clear_overlays()
            self.cell.show_mask(None)
            return
        self.slider.set_overlays(process_markers([p], vt))
        self.slider.set_active_process(p.id)
        if p.has_track(vt):
            self.title.setText(f"{p.name} · {TITLES[vt]}  {seconds_to_time_str(p.duration(vt))}")
            self.cell.show_mask(None)
        else:
            self.title.setText(f"{p.name} · {TITLES[vt]}")
            self.cell.show_mask(MASK_TEXT[vt])

    # ---------------- Handlers ----------------

    def _seek(self, seconds: float) -> None:
        if self.controller is not None:
            self.controller.seek(seconds)

    def _sync_tick(self) -> None:
        if self.controller is not None:
            self.controller.tick()
        pos = self.track.position()
        if not self.slider.isSliderDown():
            self.slider.blockSignals(True)
            self.slider.setValue(int(pos * 1000))
            self.slider.blockSignals(False)
        self.cell.annotations.set_time(pos)

    def _on_metadata(self) -> None:
        res = self.track.player.metaData("Resolution")
        if res is not None and hasattr(res, "width"):
            self.cell.annotations.set_video_size(res.width(), res.height())

    def _on_progress(self, video_type: str, pct: float) -> None:
        if VideoType(video_type) == self._view():
            self.bar.setValue(int(round(pct * 10)))

    def _on_entry(self, _entry: Optional[NarrationEntry]) -> None:
        self._refresh_subtitle()

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
