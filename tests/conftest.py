"""Shared fakes for player, narration and speech tests."""

from __future__ import annotations

from typing import Callable, List, Optional, Tuple

import pytest
from PyQt5.QtCore import QObject, pyqtSignal

from kaizen_player.domain import NarrationSettings, Process, ProcessType, Stage, SubtitleMode
from kaizen_player.playback.narration import NarrationStatus
from kaizen_player.playback.tracks import MediaTrack, PlaybackError
from kaizen_player.speech import SpeechBackend


class FakeTrack(MediaTrack):
    """In-memory media track; tests move the playhead by hand."""

    def __init__(self, name: str = "track", reset_rate_on_play: bool = False) -> None:
        self.name = name
        self._source = ""
        self._pos = 0.0
        self._duration = 600.0
        self._playing = False
        self._ended = False
        self._rate = 1.0
        self.muted = False
        self.fail_play = False
        self.reset_rate_on_play = reset_rate_on_play
        self.play_calls = 0
        self.seeks: List[float] = []
        self._listeners: List[Callable[[], None]] = []

    def source(self) -> str:
        return self._source

    def set_source(self, locator: str) -> None:
        self._source = locator or ""
        self._pos = 0.0
        self._ended = False

    def position(self) -> float:
        return self._pos

    def duration(self) -> float:
        return self._duration

    def is_playing(self) -> bool:
        return self._playing

    def has_ended(self) -> bool:
        return self._ended

    def play(self) -> None:
        if self.fail_play:
            raise PlaybackError(f"{self.name}: refused")
        self.play_calls += 1
        self._playing = True
        self._ended = False
        if self.reset_rate_on_play:
            self._rate = 1.0

    def pause(self) -> None:
        self._playing = False

    def seek(self, seconds: float) -> None:
        self.seeks.append(seconds)
        self._pos = seconds
        self._ended = False

    def rate(self) -> float:
        return self._rate

    def set_rate(self, rate: float) -> None:
        self._rate = rate

    def set_muted(self, muted: bool) -> None:
        self.muted = muted

    def subscribe(self, callback: Callable[[], None]) -> None:
        self._listeners.append(callback)

    # test helpers

    def set_position(self, seconds: float, ended: bool = False) -> None:
        self._pos = seconds
        self._ended = ended

    def fire(self) -> None:
        for cb in list(self._listeners):
            cb()


class FakeLoader(QObject):
    """Stands in for NarrationLoader; tests emit ready/failed themselves."""

    status_changed = pyqtSignal(str)
    ready = pyqtSignal(int, object)
    failed = pyqtSignal(int, str)

    def __init__(self) -> None:
        super().__init__()
        self.settings = NarrationSettings()
        self.status = NarrationStatus.IDLE
        self.requests: List[Tuple[int, bool]] = []
        self.cancelled = 0

    def request(self, process: Process, force: bool = False) -> int:
        self.requests.append((process.id, force))
        self.status = NarrationStatus.GENERATING
        return len(self.requests)

    def cancel(self) -> None:
        self.cancelled += 1
        self.status = NarrationStatus.IDLE


class ManualScheduler:
    """Collects delayed calls; run_all() fires them in order."""

    def __init__(self) -> None:
        self.pending: List[Tuple[float, Callable[[], None]]] = []

    def __call__(self, delay: float, fn: Callable[[], None]) -> None:
        self.pending.append((delay, fn))

    def run_all(self) -> int:
        calls, self.pending = self.pending, []
        for _delay, fn in calls:
            fn()
        return len(calls)


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class FakeSpeechBackend(SpeechBackend):
    """Writes a few bytes per request, or fails on demand."""

    def __init__(self, payload: bytes = b"ID3fake-mp3") -> None:
        self.payload = payload
        self.calls: List[Tuple[str, str, str]] = []
        self.error: Optional[Exception] = None

    def synthesize_to_file(self, text: str, voice: str, rate: str, out_path: str) -> None:
        self.calls.append((text, voice, rate))
        if self.error is not None:
            raise self.error
        with open(out_path, "wb") as f:
            f.write(self.payload)


def make_process(pid: int = 1, **overrides) -> Process:
    fields = dict(
        id=pid,
        stage_id=1,
        name=f"P{pid}",
        before_start_time=0.0,
        before_end_time=5.0,
        after_start_time=0.0,
        after_end_time=3.0,
        process_type=ProcessType.NORMAL,
        subtitle_mode=SubtitleMode.COMBINED,
        sort_order=pid,
    )
    fields.update(overrides)
    return Process(**fields)


def make_stage() -> Stage:
    return Stage(id=1, project_id=1, name="S1", before_video_path="/videos/before.mp4", after_video_path="/videos/after.mp4")


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def speech_backend() -> FakeSpeechBackend:
    return FakeSpeechBackend()
