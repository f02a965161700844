# kaizen_player/playback/tracks.py
from __future__ import annotations

from typing import Callable

from ..logger import get_logger
from ..timeutils import finite_time

log = get_logger(__name__)


class PlaybackError(RuntimeError):
    """A media track refused to start (missing/corrupt media, backend error)."""


class MediaTrack:
    """
    One independently clocked media source (a video or the narration audio).

    Times are seconds on the media's own clock. Controllers are the only
    callers of play/pause/seek on a track.
    """

    def source(self) -> str:
        raise NotImplementedError

    def set_source(self, locator: str) -> None:
        raise NotImplementedError

    def position(self) -> float:
        raise NotImplementedError

    def duration(self) -> float:
        raise NotImplementedError

    def is_playing(self) -> bool:
        raise NotImplementedError

    def has_ended(self) -> bool:
        raise NotImplementedError

    def play(self) -> None:
        """Start or resume. Raises PlaybackError if the backend rejects it."""
        raise NotImplementedError

    def pause(self) -> None:
        raise NotImplementedError

    def seek(self, seconds: float) -> None:
        raise NotImplementedError

    def rate(self) -> float:
        raise NotImplementedError

    def set_rate(self, rate: float) -> None:
        raise NotImplementedError

    def set_muted(self, muted: bool) -> None:
        raise NotImplementedError

    def subscribe(self, callback: Callable[[], None]) -> None:
        """Call `callback` on every time update and on end of media."""
        raise NotImplementedError


def safe_seek(track: MediaTrack, value, context: str = "") -> float:
    """Seek to a finite, non-negative time; returns the time actually used."""
    t = finite_time(value, context)
    track.seek(t)
    return t
