# kaizen_player/__init__.py
'''
kaizen_player/
    __init__.py
    __main__.py

    app.py                 # QApplication + boot + root selection
    main_window.py         # QMainWindow layout + wiring

    domain.py              # dataclasses: Project, Stage, Process, Annotation, settings, AppConfig
    persistence.py         # load/save root config.json, JSON library store (projects/stages/processes/annotations)
    media.py               # local-video:// locators, path validation, ffprobe duration
    speech.py              # TTS cache client (content hash, atomic writes, timing sidecar) + Azure backend
    timing.py              # narration tokenizer + timing map
    subtitles.py           # karaoke subtitle frames, estimate fallback, overlay placement helpers
    annotations.py         # annotation visibility + normalized/pixel coordinate transforms
    timeutils.py           # mm:ss, time-saved labels, narration duration/rate helpers
    logger.py              # logging setup

    playback/
      policy.py            # explicit play state machine + segment completion decisions
      tracks.py            # MediaTrack interface + PlaybackError
      qt_tracks.py         # QMediaPlayer-backed MediaTrack
      clock.py             # narration wall clock + drift target
      narration.py         # narration playlists + background loader
      base.py              # shared controller plumbing
      controller.py        # before/after compare controller
      single.py            # single-recording preview controller

    widgets/
      compare_panel.py     # two video panes + stats + subtitle overlay
      preview_panel.py     # single video pane for preview
      range_slider.py      # slider with colored process ranges
      subtitle_overlay.py  # draggable karaoke subtitle box
      annotation_overlay.py # shapes drawn over the video

    dialogs/
      stage_dialog.py      # stage name + before/after recordings
      process_dialog.py    # process windows, type, narration text
'''

from __future__ import annotations

__all__ = ["__version__", "run_app"]

__version__ = "0.1.0"


def run_app(root_dir=None) -> int:
    # Imported here so the playback core loads without the widget stack.
    from .app import run_app as _run_app

    return _run_app(root_dir)
