# kaizen_player/playback/base.py
from __future__ import annotations

import math
import time
from typing import Callable, Dict, List, Optional, Tuple

from PyQt5.QtCore import QObject, QTimer, pyqtSignal

from ..domain import NarrationSettings, Process, VideoType
from ..logger import get_logger
from ..timing import TimingSegment
from .clock import NarrationClock
from .narration import NarrationEntry, NarrationLoader, NarrationPlaylist, NarrationStatus, narration_texts
from .policy import (
    Idle,
    Paused,
    PauseRequested,
    Phase,
    PlaybackState,
    PlayingLeg,
    Resumed,
    Stopped,
    phase_of,
    transition,
)
from .tracks import MediaTrack, PlaybackError, safe_seek

log = get_logger(__name__)


# A video counts as finished this close to its window end.
END_EPSILON = 0.08
# Pause between switching process and issuing play, so narration loading starts first.
ADVANCE_DELAY = 0.15


def qt_scheduler(delay_seconds: float, fn: Callable[[], None]) -> None:
    QTimer.singleShot(int(round(delay_seconds * 1000)), fn)


class PlayerBase(QObject):
    """
    Plumbing shared by the compare and single-track controllers: the
    state machine, the process list, playback rate, narration loading and
    the narration audio track.
    """

    phase_changed = pyqtSignal(str)
    process_changed = pyqtSignal(int)               # index into the process list
    progress_changed = pyqtSignal(str, float)       # (video type, percent)
    narration_time_changed = pyqtSignal(float)      # seconds into the current narration clip
    narration_status_changed = pyqtSignal(str)
    narration_entry_changed = pyqtSignal(object)    # NarrationEntry or None

    def __init__(
        self,
        narration_track: MediaTrack,
        loader: Optional[NarrationLoader] = None,
        scheduler: Optional[Callable[[float, Callable[[], None]], None]] = None,
        clock: Callable[[], float] = time.monotonic,
        parent: Optional[QObject] = None,
    ):
        super().__init__(parent)
        self.audio = narration_track
        self.loader = loader
        self._schedule = scheduler or qt_scheduler

        self._state: PlaybackState = Idle()
        self.processes: List[Process] = []
        self.index = 0

        self.rate = 1.0
        self.looping = False
        self.muted = False

        self.narration_enabled = False
        self.playlist: Optional[NarrationPlaylist] = None
        self.narration_status = NarrationStatus.IDLE
        self._audio_index = 0
        self._audio_started = False
        self._audio_done: Dict[int, bool] = {}
        self._narration_clock = NarrationClock(clock)

        self.progress: Dict[VideoType, float] = {VideoType.BEFORE: 0.0, VideoType.AFTER: 0.0}

        # Tracks that were running when pause() was called.
        self._resume_tracks: List[MediaTrack] = []
        self._play_token = 0

        self.audio.subscribe(self.tick)
        if self.loader is not None:
            self.loader.ready.connect(self._on_narration_ready)
            self.loader.failed.connect(self._on_narration_failed)

    # ---------------- State ----------------

    @property
    def state(self) -> PlaybackState:
        return self._state

    @property
    def phase(self) -> Phase:
        return phase_of(self._state)

    def _apply(self, event) -> None:
        old = phase_of(self._state)
        self._state = transition(self._state, event)
        new = phase_of(self._state)
        if new != old:
            self.phase_changed.emit(new.value)

    @property
    def current_process(self) -> Optional[Process]:
        if 0 <= self.index < len(self.processes):
            return self.processes[self.index]
        return None

    # ---------------- Subclass hooks ----------------

    def _video_tracks(self) -> List[MediaTrack]:
        raise NotImplementedError

    def _start_fresh(self) -> bool:
        raise NotImplementedError

    def tick(self) -> None:
        raise NotImplementedError

    def _on_process_reset(self) -> None:
        """Selection changed: drop per-process flags and reload sources."""

    # ---------------- Commands ----------------

    def play(self, target: Optional[Process] = None) -> bool:
        """
        Resume in place when paused mid-segment with no target; otherwise
        start the (target) process from its beginning. Returns False if
        nothing could be started.
        """
        self._play_token += 1
        if not self.processes:
            return False

        if target is not None:
            idx = self._index_of(target)
            if idx is None:
                log.warning("play(): process %s is not in the current list", getattr(target, "id", target))
                return False
            if idx != self.index:
                self.select_index(idx)
            return self._start_fresh()

        st = self._state
        if isinstance(st, PlayingLeg):
            return True
        if isinstance(st, Paused) and st.elapsed > 0:
            return self._resume()
        return self._start_fresh()

    def pause(self) -> None:
        self._play_token += 1
        st = self._state
        if not isinstance(st, PlayingLeg):
            return
        elapsed = self.narration_elapsed()
        self._resume_tracks = [t for t in self._all_tracks() if t.is_playing()]
        self._pause_all()
        self._narration_clock.reset(elapsed)
        self._apply(PauseRequested(elapsed))

    def toggle_play(self) -> None:
        if self.phase == Phase.PLAYING:
            self.pause()
        else:
            self.play()

    def set_playback_rate(self, rate: float) -> None:
        """Video tracks only; narration keeps its synthesized rate."""
        try:
            r = float(rate)
        except (TypeError, ValueError):
            log.warning("Ignoring invalid playback rate %r", rate)
            return
        if not math.isfinite(r) or r <= 0:
            log.warning("Ignoring invalid playback rate %r", rate)
            return
        self.rate = r
        for t in self._video_tracks():
            t.set_rate(r)

    def set_muted(self, muted: bool) -> None:
        """Original video sound only; the narration track is unaffected."""
        self.muted = bool(muted)
        for t in self._video_tracks():
            t.set_muted(self.muted)

    def set_looping(self, looping: bool) -> None:
        self.looping = bool(looping)

    def set_processes(self, processes: List[Process], index: int = 0) -> None:
        self.processes = list(processes or [])
        if not self.processes:
            self._stop()
            self.index = 0
            self.playlist = None
            if self.loader is not None:
                self.loader.cancel()
            self.narration_entry_changed.emit(None)
            return
        self.select_index(index)

    def select_index(self, index: int) -> None:
        if not self.processes:
            return
        self._play_token += 1
        self.index = max(0, min(int(index), len(self.processes) - 1))
        self._stop()
        self._reset_session()
        self._on_process_reset()
        self.process_changed.emit(self.index)
        self._request_narration()

    def select_process(self, process_id: int) -> bool:
        for i, p in enumerate(self.processes):
            if p.id == int(process_id):
                self.select_index(i)
                return True
        log.warning("select_process(): unknown process id %s", process_id)
        return False

    def next_process(self) -> bool:
        if self.index + 1 >= len(self.processes):
            return False
        self._step_to(self.index + 1)
        return True

    def prev_process(self) -> bool:
        if self.index - 1 < 0:
            return False
        self._step_to(self.index - 1)
        return True

    def set_narration_enabled(self, enabled: bool) -> None:
        enabled = bool(enabled)
        if enabled == self.narration_enabled:
            return
        self.narration_enabled = enabled
        self._play_token += 1
        self._stop()
        self._reset_session()
        self._request_narration()

    def set_narration_settings(self, settings: NarrationSettings) -> None:
        if self.loader is None:
            return
        self.loader.settings = settings
        self._play_token += 1
        self._stop()
        self._reset_session()
        self._request_narration()

    def regenerate_narration(self) -> None:
        """Drop the cached clip(s) for the current process and synthesize again."""
        proc = self.current_process
        if proc is None or self.loader is None or not self.narration_enabled:
            return
        self._detach_narration()
        self._set_narration_status(NarrationStatus.GENERATING)
        self.loader.request(proc, force=True)

    # ---------------- Helpers ----------------

    def _index_of(self, target) -> Optional[int]:
        target_id = target.id if isinstance(target, Process) else int(target)
        for i, p in enumerate(self.processes):
            if p.id == target_id:
                return i
        return None

    def _all_tracks(self) -> List[MediaTrack]:
        return self._video_tracks() + [self.audio]

    def _pause_all(self) -> None:
        for t in self._all_tracks():
            t.pause()
        self._narration_clock.stop()

    def _stop(self) -> None:
        self._pause_all()
        self._apply(Stopped())

    def _reset_session(self) -> None:
        self._narration_clock.reset()
        self._audio_index = 0
        self._audio_started = False
        self._audio_done = {}
        self._resume_tracks = []
        for vt in (VideoType.BEFORE, VideoType.AFTER):
            self._set_progress(vt, 0.0)
        self.narration_time_changed.emit(0.0)

    def _set_progress(self, vt: VideoType, pct: float) -> None:
        if self.progress.get(vt) != pct:
            self.progress[vt] = pct
            self.progress_changed.emit(vt.value, pct)

    def _step_to(self, index: int) -> None:
        was_playing = self.phase == Phase.PLAYING
        self.select_index(index)
        if was_playing:
            self._schedule_play()

    def _schedule_play(self) -> None:
        """Fresh start of the current process after ADVANCE_DELAY, unless cancelled meanwhile."""
        self._play_token += 1
        token = self._play_token

        def fire() -> None:
            if token != self._play_token:
                return
            self._start_fresh()

        self._schedule(ADVANCE_DELAY, fire)

    def _start_video(self, track: MediaTrack, name: str) -> bool:
        # Rate is set before play and asserted again after: some backends
        # reset it when playback starts.
        track.set_rate(self.rate)
        track.set_muted(self.muted)
        try:
            track.play()
        except PlaybackError as e:
            log.warning("Could not start %s video: %s", name, e)
            return False
        track.set_rate(self.rate)
        return True

    def _resume(self) -> bool:
        st = self._state
        tracks = [t for t in self._resume_tracks]
        self._resume_tracks = []
        for t in tracks:
            if t is self.audio:
                try:
                    t.play()
                except PlaybackError as e:
                    log.warning("Could not resume narration: %s", e)
                    self._disable_narration_for_process()
                continue
            self._start_video(t, "paused")
        self._narration_clock.reset(st.elapsed)
        self._narration_clock.start()
        self._apply(Resumed())
        if self.narration_on() and not self._audio_started:
            self._attach_late()
        return True

    # ---------------- Narration ----------------

    def _request_narration(self) -> None:
        self._detach_narration()
        proc = self.current_process
        if self.loader is None or proc is None:
            return
        if not self.narration_enabled:
            self.loader.cancel()
            self._set_narration_status(NarrationStatus.IDLE)
            return
        self._set_narration_status(NarrationStatus.GENERATING)
        self.loader.request(proc)
        # A synchronous loader may already have answered.
        if self.playlist is None and self.loader.status == NarrationStatus.IDLE:
            self._set_narration_status(NarrationStatus.IDLE)

    def _detach_narration(self) -> None:
        self.audio.pause()
        self.playlist = None
        self._audio_started = False
        self.narration_entry_changed.emit(None)

    def _set_narration_status(self, status: NarrationStatus) -> None:
        if status != self.narration_status:
            self.narration_status = status
            self.narration_status_changed.emit(status.value)

    def _on_narration_ready(self, process_id: int, playlist: NarrationPlaylist) -> None:
        proc = self.current_process
        if proc is None or proc.id != process_id or not self.narration_enabled:
            log.debug("Ignoring narration for process %s (current: %s)", process_id, getattr(proc, "id", None))
            return
        self.playlist = playlist
        self._set_narration_status(NarrationStatus.READY)
        self.narration_entry_changed.emit(self.current_entry())
        if isinstance(self._state, PlayingLeg):
            self._attach_late()

    def _on_narration_failed(self, process_id: int, message: str) -> None:
        proc = self.current_process
        if proc is None or proc.id != process_id:
            return
        self._disable_narration_for_process()

    def _disable_narration_for_process(self) -> None:
        self.audio.pause()
        self.playlist = None
        self._audio_started = False
        self._set_narration_status(NarrationStatus.FAILED)
        self.narration_entry_changed.emit(None)

    def narration_on(self) -> bool:
        return self.narration_enabled and self.playlist is not None

    def current_entry(self) -> Optional[NarrationEntry]:
        if self.playlist is None:
            return None
        return self.playlist.entry(self._audio_index)

    def subtitle_cue(self) -> Tuple[str, List[TimingSegment]]:
        """
        Text and timing the subtitle overlay should follow. While the clip
        is still being synthesized its text comes without timing, so the
        overlay falls back to estimating.
        """
        if not self.narration_enabled:
            return "", []
        entry = self.current_entry()
        if entry is not None:
            return ("" if entry.is_placeholder else entry.text), entry.timing
        proc = self.current_process
        if proc is None or self.narration_status != NarrationStatus.GENERATING:
            return "", []
        texts = narration_texts(proc)
        if not 0 <= self._audio_index < len(texts):
            return "", []
        return texts[self._audio_index], []

    def narration_elapsed(self) -> float:
        """
        Seconds into the current narration clip: the audio position while it
        plays, the wall clock otherwise.
        """
        if self._audio_started and self.audio.is_playing():
            pos = self.audio.position()
            # Keep the wall clock in step so a later switch to it is seamless.
            self._narration_clock.reset(pos)
            self._narration_clock.start()
            return pos
        return self._narration_clock.elapsed()

    def _start_narration(self, index: int, offset: float = 0.0) -> None:
        """Point the shared audio track at entry `index` and play from `offset`."""
        self._audio_index = index
        self._audio_started = False
        self.narration_entry_changed.emit(self.current_entry())
        if not self.narration_on():
            return
        entry = self.playlist.entry(index)
        if entry.is_placeholder:
            return
        if entry.duration > 0 and offset >= entry.duration - END_EPSILON:
            self._audio_done[index] = True
            return
        # Exact compare: a rebuilt clip keeps its path but gets a new query.
        if self.audio.source() != entry.src:
            self.audio.set_source(entry.src)
        safe_seek(self.audio, offset, "narration")
        self.audio.set_rate(1.0)
        try:
            self.audio.play()
        except PlaybackError as e:
            log.warning("Could not start narration: %s", e)
            self._disable_narration_for_process()
            return
        self.audio.set_rate(1.0)
        self._audio_started = True

    def _attach_late(self) -> None:
        """Narration became ready while the videos were already running."""
        if self._audio_done.get(self._audio_index):
            return
        self._start_narration(self._audio_index, self._narration_clock.elapsed())

    def audio_done(self, index: int) -> bool:
        """
        True once clip `index` has finished. Without narration (disabled,
        still generating, failed, or an empty clip) there is nothing to wait for.
        """
        if self._audio_done.get(index):
            return True
        if not self.narration_on():
            return True
        entry = self.playlist.entry(index)
        if entry.is_placeholder:
            self._audio_done[index] = True
            return True
        if not self._audio_started or self._audio_index != index:
            return False
        pos = self.audio.position()
        if self.audio.has_ended() or (entry.duration > 0 and pos >= entry.duration - END_EPSILON):
            self.audio.pause()
            self._audio_done[index] = True
            log.debug("Narration clip %d finished at %.2fs", index, pos)
            return True
        return False
