# kaizen_player/playback/narration.py
from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

from PyQt5.QtCore import QObject, QRunnable, QThreadPool, pyqtSignal, pyqtSlot

from ..domain import NarrationSettings, Process, SubtitleMode
from ..logger import get_logger
from ..media import probe_duration, to_locator
from ..speech import SpeechCache, SynthesisError, content_hash
from ..timeutils import estimate_narration_duration, narration_rate_percent
from ..timing import TimingSegment, generate_timing_map

log = get_logger(__name__)

# Bumped per built clip so a rewritten file at the same path gets a new locator.
_build_serial = itertools.count(1)


class NarrationStatus(str, Enum):
    IDLE = "idle"
    GENERATING = "generating"
    READY = "ready"
    FAILED = "failed"


@dataclass
class NarrationEntry:
    """One synthesized narration clip. An empty src marks a placeholder."""
    src: str
    duration: float
    text: str
    timing: List[TimingSegment] = field(default_factory=list)

    @property
    def is_placeholder(self) -> bool:
        return not self.src

    @staticmethod
    def placeholder(text: str = "") -> "NarrationEntry":
        return NarrationEntry(src="", duration=0.0, text=text or "")


@dataclass
class NarrationPlaylist:
    """
    Combined mode: one entry. Separate mode: always two, index 0 for the
    before leg and index 1 for the after leg (possibly a placeholder).
    """
    process_id: int
    mode: SubtitleMode
    entries: List[NarrationEntry] = field(default_factory=list)

    def entry(self, index: int) -> NarrationEntry:
        if 0 <= index < len(self.entries):
            return self.entries[index]
        return NarrationEntry.placeholder()


def narration_texts(process: Process) -> List[str]:
    if process.subtitle_mode == SubtitleMode.SEPARATE:
        return [process.subtitle_text or "", process.subtitle_after or ""]
    return [process.subtitle_text or ""]


def has_narration_text(process: Process) -> bool:
    return any(t.strip() for t in narration_texts(process))


def build_entry(
    cache: SpeechCache,
    text: str,
    settings: NarrationSettings,
    force: bool = False,
    probe: Callable[[str], Optional[float]] = probe_duration,
) -> NarrationEntry:
    """Synthesize (or fetch) one clip and attach its timing map."""
    if not (text or "").strip():
        return NarrationEntry.placeholder(text)

    rate = narration_rate_percent(settings.speed, settings.baseline_speed)
    path = cache.synthesize(text, settings.voice, rate, force=force)
    h = content_hash(text, settings.voice, rate)

    cached = None if force else cache.load_timing(h)
    if cached is not None:
        duration = cached["duration"]
        segments = cached["segments"]
    else:
        probed = probe(path)
        if probed:
            duration = float(probed)
            segments = generate_timing_map(text, duration)
            cache.save_timing(h, duration, segments)
        else:
            duration = estimate_narration_duration(text, settings.speed)
            segments = []

    return NarrationEntry(
        src=to_locator(path, query=f"t={h[:8]}.{next(_build_serial)}"),
        duration=duration,
        text=text,
        timing=segments,
    )


def build_playlist(
    cache: SpeechCache,
    process: Process,
    settings: NarrationSettings,
    force: bool = False,
    probe: Callable[[str], Optional[float]] = probe_duration,
) -> NarrationPlaylist:
    entries = [build_entry(cache, text, settings, force=force, probe=probe) for text in narration_texts(process)]
    return NarrationPlaylist(process_id=process.id, mode=process.subtitle_mode, entries=entries)


# -----------------------------
# Background loading
# -----------------------------

class NarrationSignals(QObject):
    finished = pyqtSignal(int, object)  # (token, NarrationPlaylist)
    failed = pyqtSignal(int, str)       # (token, message)


class NarrationJob(QRunnable):
    def __init__(self, token: int, build: Callable[[], NarrationPlaylist]):
        super().__init__()
        self.token = token
        self.build = build
        self.signals = NarrationSignals()

    @pyqtSlot()
    def run(self) -> None:
        try:
            playlist = self.build()
        except (SynthesisError, OSError) as e:
            self.signals.failed.emit(self.token, str(e))
            return
        self.signals.finished.emit(self.token, playlist)


def _thread_pool_runner(job: NarrationJob) -> None:
    QThreadPool.globalInstance().start(job)


class NarrationLoader(QObject):
    """
    Builds narration playlists off the UI thread.

    Only the most recent request can deliver a result; anything older is
    dropped when it arrives.
    """

    status_changed = pyqtSignal(str)
    ready = pyqtSignal(int, object)  # (process_id, NarrationPlaylist)
    failed = pyqtSignal(int, str)    # (process_id, message)

    def __init__(
        self,
        cache: SpeechCache,
        settings: Optional[NarrationSettings] = None,
        runner: Optional[Callable[[NarrationJob], None]] = None,
        probe: Callable[[str], Optional[float]] = probe_duration,
        parent: Optional[QObject] = None,
    ):
        super().__init__(parent)
        self.cache = cache
        self.settings = settings or NarrationSettings()
        self._runner = runner or _thread_pool_runner
        self._probe = probe
        self._token = 0
        self._process_id: Optional[int] = None
        self._jobs = {}
        self.status = NarrationStatus.IDLE

    def _set_status(self, status: NarrationStatus) -> None:
        if status != self.status:
            self.status = status
            self.status_changed.emit(status.value)

    def cancel(self) -> None:
        """Forget any in-flight request."""
        self._token += 1
        self._process_id = None
        self._set_status(NarrationStatus.IDLE)

    def request(self, process: Process, force: bool = False) -> int:
        self._token += 1
        token = self._token
        self._process_id = process.id

        if not has_narration_text(process):
            self._set_status(NarrationStatus.IDLE)
            return token

        settings = self.settings
        cache = self.cache
        probe = self._probe
        job = NarrationJob(token, lambda: build_playlist(cache, process, settings, force=force, probe=probe))
        job.signals.finished.connect(self._on_finished)
        job.signals.failed.connect(self._on_failed)
        # Keep the job (and its signals object) alive until it reports back.
        self._jobs[token] = job
        self._set_status(NarrationStatus.GENERATING)
        self._runner(job)
        return token

    def _on_finished(self, token: int, playlist: NarrationPlaylist) -> None:
        self._jobs.pop(token, None)
        if token != self._token:
            log.debug("Discarding stale narration result for process %s", playlist.process_id)
            return
        self._set_status(NarrationStatus.READY)
        self.ready.emit(playlist.process_id, playlist)

    def _on_failed(self, token: int, message: str) -> None:
        self._jobs.pop(token, None)
        if token != self._token:
            log.debug("Discarding stale narration failure: %s", message)
            return
        log.warning("Narration synthesis failed for process %s: %s", self._process_id, message)
        self._set_status(NarrationStatus.FAILED)
        self.failed.emit(int(self._process_id or 0), message)
