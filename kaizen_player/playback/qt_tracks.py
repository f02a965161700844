# kaizen_player/playback/qt_tracks.py
from __future__ import annotations

from typing import Callable, List, Optional

from PyQt5.QtCore import QObject, QUrl
from PyQt5.QtMultimedia import QMediaContent, QMediaPlayer

from ..logger import get_logger
from ..media import locator_to_path
from .tracks import MediaTrack, PlaybackError

log = get_logger(__name__)


class QtMediaTrack(QObject, MediaTrack):
    """
    MediaTrack over a QMediaPlayer. Qt works in milliseconds; this class
    speaks seconds.

    Pass `video_output` (a QVideoWidget) for video tracks; leave it None for
    the narration audio.
    """

    def __init__(self, name: str, video_output=None, parent: Optional[QObject] = None):
        super().__init__(parent)
        self.name = name
        if video_output is not None:
            self.player = QMediaPlayer(None, QMediaPlayer.VideoSurface)
            self.player.setVideoOutput(video_output)
        else:
            self.player = QMediaPlayer()
        # ~20 time updates per second
        self.player.setNotifyInterval(50)

        self._source = ""
        self._rate = 1.0
        # Target of a seek that the backend hasn't reported yet (ms).
        self._pending_seek: Optional[int] = None
        self._pending_updates = 0
        self._listeners: List[Callable[[], None]] = []

        self.player.positionChanged.connect(self._on_position)
        self.player.mediaStatusChanged.connect(self._on_media_status)
        self.player.error.connect(self._on_error)

    # ---------------- MediaTrack ----------------

    def source(self) -> str:
        return self._source

    def set_source(self, locator: str) -> None:
        self._source = locator or ""
        self._pending_seek = None
        path = locator_to_path(self._source) if self._source else ""
        if path:
            self.player.setMedia(QMediaContent(QUrl.fromLocalFile(path)))
        else:
            self.player.setMedia(QMediaContent())

    def position(self) -> float:
        if self._pending_seek is not None:
            return self._pending_seek / 1000.0
        return int(self.player.position() or 0) / 1000.0

    def duration(self) -> float:
        return int(self.player.duration() or 0) / 1000.0

    def is_playing(self) -> bool:
        return self.player.state() == QMediaPlayer.PlayingState

    def has_ended(self) -> bool:
        if self._pending_seek is not None:
            return False
        return self.player.mediaStatus() == QMediaPlayer.EndOfMedia

    def play(self) -> None:
        status = self.player.mediaStatus()
        if not self._source or status in (QMediaPlayer.NoMedia, QMediaPlayer.InvalidMedia):
            raise PlaybackError(f"{self.name}: no playable media ({self._source or 'no source'})")
        self.player.play()

    def pause(self) -> None:
        if self.player.state() == QMediaPlayer.PlayingState:
            self.player.pause()

    def seek(self, seconds: float) -> None:
        ms = int(round(max(0.0, float(seconds)) * 1000.0))
        self._pending_seek = ms
        self._pending_updates = 0
        self.player.setPosition(ms)

    def rate(self) -> float:
        return self._rate

    def set_rate(self, rate: float) -> None:
        self._rate = float(rate)
        self.player.setPlaybackRate(self._rate)

    def set_muted(self, muted: bool) -> None:
        self.player.setMuted(bool(muted))

    def subscribe(self, callback: Callable[[], None]) -> None:
        self._listeners.append(callback)

    # ---------------- Qt signal handlers ----------------

    def _notify(self) -> None:
        for cb in list(self._listeners):
            cb()

    def _on_position(self, pos: int) -> None:
        if self._pending_seek is not None:
            self._pending_updates += 1
            # some backends land on a keyframe well away from the target
            if abs(int(pos) - self._pending_seek) <= 500 or self._pending_updates >= 3:
                self._pending_seek = None
        self._notify()

    def _on_media_status(self, status) -> None:
        if status in (QMediaPlayer.LoadedMedia, QMediaPlayer.BufferedMedia):
            # Backends may drop the rate when new media loads.
            if abs(self.player.playbackRate() - self._rate) > 1e-6:
                self.player.setPlaybackRate(self._rate)
        elif status == QMediaPlayer.EndOfMedia:
            self._pending_seek = None
            self._notify()
        elif status == QMediaPlayer.InvalidMedia:
            log.warning("%s: invalid media %s", self.name, self._source)

    def _on_error(self, _err) -> None:
        log.warning("%s: media error: %s", self.name, self.player.errorString())
