# kaizen_player/playback/single.py
from __future__ import annotations

import time
from typing import Callable, List, Optional

from PyQt5.QtCore import QObject

from ..domain import Process, Stage, VideoType
from ..logger import get_logger
from ..media import same_source, to_locator
from ..timeutils import window_progress
from .base import END_EPSILON, PlayerBase
from .narration import NarrationLoader, narration_texts
from .policy import Decision, PlayingLeg, Started, Stopped, decide_completion
from .tracks import MediaTrack, safe_seek

log = get_logger(__name__)


class SingleTrackController(PlayerBase):
    """
    Preview of one process on one recording (before or after), with the
    same narration handling as the compare view. The end of the window
    either replays it (looping) or stops.
    """

    def __init__(
        self,
        video: MediaTrack,
        narration: MediaTrack,
        loader: Optional[NarrationLoader] = None,
        scheduler: Optional[Callable[[float, Callable[[], None]], None]] = None,
        clock: Callable[[], float] = time.monotonic,
        parent: Optional[QObject] = None,
    ):
        super().__init__(narration, loader=loader, scheduler=scheduler, clock=clock, parent=parent)
        self.video = video
        self.view = VideoType.BEFORE
        self.stage: Optional[Stage] = None
        self._video_done = False
        video.subscribe(self.tick)

    def _video_tracks(self) -> List[MediaTrack]:
        return [self.video]

    # ---------------- Setup ----------------

    def set_process(self, stage: Optional[Stage], process: Optional[Process], view: Optional[VideoType] = None) -> None:
        self.stage = stage
        if view is not None:
            self.view = VideoType(view)
        elif process is not None and not process.has_track(self.view):
            # Preview whichever recording the process actually has.
            self.view = VideoType.AFTER if self.view == VideoType.BEFORE else VideoType.BEFORE
        self._load_source()
        self.set_processes([process] if process is not None else [])

    def set_view(self, view) -> None:
        vt = VideoType(view)
        if vt == self.view:
            return
        self.view = vt
        self._load_source()
        if self.processes:
            self.select_index(0)

    def _load_source(self) -> None:
        path = self.stage.video_path(self.view) if self.stage is not None else ""
        loc = to_locator(path) if path else ""
        if not same_source(self.video.source(), loc):
            self.video.set_source(loc)

    def _clip_index(self) -> int:
        """Narration clip for the current view: the after clip when one exists."""
        proc = self.current_process
        if self.view != VideoType.AFTER or proc is None:
            return 0
        if self.playlist is None:
            texts = narration_texts(proc)
            return 1 if len(texts) > 1 and texts[1].strip() else 0
        if len(self.playlist.entries) > 1 and not self.playlist.entry(1).is_placeholder:
            return 1
        return 0

    def _attach_late(self) -> None:
        self._audio_index = self._clip_index()
        super()._attach_late()

    def _on_process_reset(self) -> None:
        self._video_done = False
        proc = self.current_process
        if proc is not None and proc.has_track(self.view):
            safe_seek(self.video, proc.window(self.view)[0], f"{self.view.value} start")

    # ---------------- Commands ----------------

    def seek(self, seconds: float) -> None:
        safe_seek(self.video, seconds, "preview seek")

    def restart(self) -> bool:
        if not self.processes:
            return False
        self.select_index(0)
        return self._start_fresh()

    def _start_fresh(self) -> bool:
        proc = self.current_process
        if proc is None:
            return False
        self._pause_all()
        self._reset_session()
        self._video_done = not proc.has_track(self.view)

        if proc.has_track(self.view):
            safe_seek(self.video, proc.window(self.view)[0], f"{self.view.value} start")
            if not self._start_video(self.video, self.view.value):
                log.warning("Preview of process %s could not start; staying idle", proc.id)
                self._apply(Stopped())
                return False

        self._narration_clock.reset()
        self._narration_clock.start()
        self._apply(Started())
        self._start_narration(self._clip_index(), 0.0)
        return True

    # ---------------- Per-tick update ----------------

    def tick(self) -> None:
        if not isinstance(self._state, PlayingLeg):
            return
        proc = self.current_process
        if proc is None:
            return

        if proc.has_track(self.view):
            start, end = proc.window(self.view)
            pos = self.video.position()
            self._set_progress(self.view, window_progress(pos, start, end))
            if not self._video_done and (self.video.has_ended() or pos >= end - END_EPSILON):
                self._video_done = True
                self.video.pause()

        self.narration_time_changed.emit(self.narration_elapsed())

        if self._video_done and self.audio_done(self._audio_index):
            decision = decide_completion(self.looping, False, 0, 1)
            log.info("Preview of process %s finished: %s", proc.id, decision.value)
            self._pause_all()
            self._apply(Stopped())
            if decision == Decision.REPLAY:
                self._schedule_play()
