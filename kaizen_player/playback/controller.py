# kaizen_player/playback/controller.py
"""
Side-by-side before/after playback of a process list, kept in step with
the narration track.

Combined narration mode plays both videos at once with a single narration
clip; the before video is the sync reference and the after video is
nudged back into line whenever the two drift apart. Separate mode plays
the before leg (before video + first clip) and then the after leg (after
video + second clip); a leg only ends once its video and its clip have both
finished, and a video that finishes first loops until the clip catches up.
"""
from __future__ import annotations

import time
from typing import Callable, Dict, List, Optional

from PyQt5.QtCore import QObject

from ..domain import Process, ProcessType, Stage, SubtitleMode, VideoType
from ..logger import get_logger
from ..media import same_source, to_locator
from ..timeutils import window_progress
from .base import END_EPSILON, PlayerBase
from .clock import drift_target
from .narration import NarrationLoader
from .policy import Decision, LegFinished, PlayingLeg, Started, Stopped, decide_completion
from .tracks import MediaTrack, safe_seek

log = get_logger(__name__)


class CompareController(PlayerBase):

    def __init__(
        self,
        before: MediaTrack,
        after: MediaTrack,
        narration: MediaTrack,
        loader: Optional[NarrationLoader] = None,
        scheduler: Optional[Callable[[float, Callable[[], None]], None]] = None,
        clock: Callable[[], float] = time.monotonic,
        parent: Optional[QObject] = None,
    ):
        super().__init__(narration, loader=loader, scheduler=scheduler, clock=clock, parent=parent)
        self.tracks: Dict[VideoType, MediaTrack] = {VideoType.BEFORE: before, VideoType.AFTER: after}
        self.global_mode = False
        self.stage: Optional[Stage] = None
        # Sticky per-process "this video has reached its window end" flags.
        self._video_done: Dict[VideoType, bool] = {VideoType.BEFORE: False, VideoType.AFTER: False}
        # Videos that failed to start are treated as absent for the rest of the run.
        self._failed: Dict[VideoType, bool] = {VideoType.BEFORE: False, VideoType.AFTER: False}
        before.subscribe(self.tick)
        after.subscribe(self.tick)

    # ---------------- Setup ----------------

    def set_stage(self, stage: Optional[Stage], processes: List[Process], global_mode: bool = False, index: int = 0) -> None:
        self.stage = stage
        self.global_mode = bool(global_mode)
        if stage is not None:
            for vt, track in self.tracks.items():
                loc = to_locator(stage.video_path(vt)) if stage.video_path(vt) else ""
                if not same_source(track.source(), loc):
                    track.set_source(loc)
        self.set_processes(processes, index=0 if self.global_mode else index)

    def set_global_mode(self, global_mode: bool) -> None:
        self.global_mode = bool(global_mode)
        self.select_index(0 if self.global_mode else self.index)

    def _video_tracks(self) -> List[MediaTrack]:
        return [self.tracks[VideoType.BEFORE], self.tracks[VideoType.AFTER]]

    def _separate(self, proc: Process) -> bool:
        return proc.subtitle_mode == SubtitleMode.SEPARATE

    def _has_video(self, proc: Process, vt: VideoType) -> bool:
        return proc.has_track(vt) and not self._failed[vt]

    def _on_process_reset(self) -> None:
        self._video_done = {VideoType.BEFORE: False, VideoType.AFTER: False}
        self._failed = {VideoType.BEFORE: False, VideoType.AFTER: False}
        proc = self.current_process
        if proc is None:
            return
        # Show the first frame of each window.
        for vt in (VideoType.BEFORE, VideoType.AFTER):
            if proc.has_track(vt):
                safe_seek(self.tracks[vt], proc.window(vt)[0], f"{vt.value} start")

    # ---------------- Commands ----------------

    def seek(self, video_type, seconds: float) -> None:
        """Manual seek of one video; play/pause state is left alone."""
        vt = VideoType(video_type)
        safe_seek(self.tracks[vt], seconds, f"{vt.value} seek")

    def restart(self) -> bool:
        if not self.processes:
            return False
        self.select_index(0 if self.global_mode else self.index)
        return self._start_fresh()

    # ---------------- Start ----------------

    def _start_fresh(self) -> bool:
        proc = self.current_process
        if proc is None:
            return False

        self._pause_all()
        self._reset_session()
        self._video_done = {vt: not proc.has_track(vt) for vt in (VideoType.BEFORE, VideoType.AFTER)}
        self._failed = {VideoType.BEFORE: False, VideoType.AFTER: False}

        for vt in (VideoType.BEFORE, VideoType.AFTER):
            if proc.has_track(vt):
                safe_seek(self.tracks[vt], proc.window(vt)[0], f"{vt.value} start")

        if self._separate(proc):
            to_start = [VideoType.BEFORE] if proc.has_before() else []
        else:
            to_start = [vt for vt in (VideoType.BEFORE, VideoType.AFTER) if proc.has_track(vt)]

        started = []
        for vt in to_start:
            if self._start_video(self.tracks[vt], vt.value):
                started.append(vt)
            else:
                self._failed[vt] = True
                self._video_done[vt] = True

        if to_start and not started:
            log.warning("No video could be started for process %s; staying idle", proc.id)
            self._apply(Stopped())
            return False

        self._narration_clock.reset()
        self._narration_clock.start()
        self._apply(Started())
        log.info("Playing process %s (%d/%d)", proc.name or proc.id, self.index + 1, len(self.processes))
        self._start_narration(0, 0.0)
        return True

    def _enter_after_leg(self, proc: Process) -> None:
        self._apply(LegFinished())
        self.tracks[VideoType.BEFORE].pause()
        self.audio.pause()
        self._narration_clock.reset()
        self._narration_clock.start()

        if self._has_video(proc, VideoType.AFTER):
            safe_seek(self.tracks[VideoType.AFTER], proc.after_start_time, "after start")
            if not self._start_video(self.tracks[VideoType.AFTER], VideoType.AFTER.value):
                self._failed[VideoType.AFTER] = True
        self._video_done[VideoType.AFTER] = not self._has_video(proc, VideoType.AFTER)
        self._start_narration(1, 0.0)

    # ---------------- Per-tick update ----------------

    def tick(self) -> None:
        st = self._state
        if not isinstance(st, PlayingLeg):
            return
        proc = self.current_process
        if proc is None:
            return

        for vt in (VideoType.BEFORE, VideoType.AFTER):
            if proc.has_track(vt):
                start, end = proc.window(vt)
                self._set_progress(vt, window_progress(self.tracks[vt].position(), start, end))

        self.narration_time_changed.emit(self.narration_elapsed())

        if self._separate(proc):
            self._tick_separate(proc, st.leg)
        else:
            self._tick_combined(proc)

    def _at_end(self, proc: Process, vt: VideoType) -> bool:
        if not self._has_video(proc, vt):
            return True
        track = self.tracks[vt]
        return track.has_ended() or track.position() >= proc.window(vt)[1] - END_EPSILON

    def _tick_combined(self, proc: Process) -> None:
        for vt in (VideoType.BEFORE, VideoType.AFTER):
            if not self._video_done[vt] and self._at_end(proc, vt):
                self._video_done[vt] = True
                # hold the last frame
                self.tracks[vt].pause()

        before_done = self._video_done[VideoType.BEFORE]
        after_done = self._video_done[VideoType.AFTER]
        if proc.process_type == ProcessType.NORMAL and not before_done and not after_done:
            self._correct_drift(proc)

        if before_done and after_done and self.audio_done(0):
            self._complete_segment()

    def _correct_drift(self, proc: Process) -> None:
        if self._failed[VideoType.BEFORE] or self._failed[VideoType.AFTER]:
            return
        before_elapsed = self.tracks[VideoType.BEFORE].position() - proc.before_start_time
        after_elapsed = self.tracks[VideoType.AFTER].position() - proc.after_start_time
        target = drift_target(before_elapsed, after_elapsed)
        if target is None:
            return
        absolute = proc.after_start_time + target
        if absolute >= proc.after_end_time - END_EPSILON:
            return
        log.debug("Drift %.3fs; moving after video to %.3f", after_elapsed - before_elapsed, absolute)
        safe_seek(self.tracks[VideoType.AFTER], absolute, "drift correction")

    def _tick_separate(self, proc: Process, leg: VideoType) -> None:
        index = 0 if leg == VideoType.BEFORE else 1
        at_end = self._at_end(proc, leg)
        if at_end:
            self._video_done[leg] = True
        clip_done = self.audio_done(index)

        if self._video_done[leg] and clip_done:
            if leg == VideoType.BEFORE:
                self._enter_after_leg(proc)
            else:
                self._complete_segment()
            return

        if at_end and self._has_video(proc, leg):
            # The video waits for the narration, never the other way around.
            track = self.tracks[leg]
            safe_seek(track, proc.window(leg)[0], f"{leg.value} replay")
            if not track.is_playing() and not self._start_video(track, leg.value):
                self._failed[leg] = True

    # ---------------- Segment completion ----------------

    def _complete_segment(self) -> None:
        decision = decide_completion(self.looping, self.global_mode, self.index, len(self.processes))
        log.info("Process %d/%d finished: %s", self.index + 1, len(self.processes), decision.value)
        self._pause_all()
        self._apply(Stopped())

        if decision == Decision.STOP:
            return
        if decision == Decision.ADVANCE:
            self.select_index(self.index + 1)
        elif decision == Decision.RESTART_LIST:
            self.select_index(0)
        self._schedule_play()
