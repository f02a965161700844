"""Tests for media locators, validation and duration probing."""

from __future__ import annotations

import os

import pytest

from kaizen_player import media
from kaizen_player.media import (
    ext_lower,
    is_locator,
    locator_to_path,
    parse_duration_output,
    probe_duration,
    same_source,
    strip_query,
    to_locator,
    validate_local_video_path,
)


def test_locator_round_trip(tmp_path) -> None:
    """Paths with spaces and CJK survive conversion to a locator and back."""
    path = os.path.join(str(tmp_path), "改善 前.mp4")

    loc = to_locator(path, query="t=abcd")

    assert is_locator(loc)
    assert loc.endswith("?t=abcd")
    assert locator_to_path(loc) == os.path.normpath(os.path.abspath(path))


def test_same_source_ignores_query() -> None:
    """Cache-busting queries do not make two locators different."""
    a = "local-video:///cache/x.mp3?t=1"
    b = "local-video:///cache/x.mp3?t=2"

    assert same_source(a, b)
    assert not same_source(a, "local-video:///cache/y.mp3")
    assert not same_source("", "")
    assert strip_query(a) == "local-video:///cache/x.mp3"


def test_empty_path_has_no_locator() -> None:
    """No path means no locator."""
    assert to_locator("") == ""
    assert locator_to_path("") == ""


def test_validate_local_video_path(tmp_path) -> None:
    """Only existing files with a video extension are accepted."""
    good = tmp_path / "line.MP4"
    good.write_bytes(b"\x00")
    bad = tmp_path / "notes.txt"
    bad.write_text("x")

    assert validate_local_video_path(str(good)) == (True, "OK")
    assert validate_local_video_path(str(bad))[0] is False
    assert validate_local_video_path(str(tmp_path / "missing.mp4"))[0] is False
    assert validate_local_video_path(str(tmp_path))[0] is False
    assert validate_local_video_path("")[0] is False
    assert ext_lower("clip.MOV?x=1") == ".mov"


@pytest.mark.parametrize("out, expected", [
    ("12.480000\n", 12.48),
    ("warning: foo\n7\n", 7.0),
    ("N/A\n", None),
    ("0.000\n", None),
    ("", None),
])
def test_parse_duration_output(out, expected) -> None:
    """The first positive number line is the duration."""
    assert parse_duration_output(out) == expected


def test_probe_duration_without_ffprobe(monkeypatch) -> None:
    """A missing ffprobe gives an unknown duration instead of an error."""
    def boom(cmd):
        raise FileNotFoundError(cmd[0])

    monkeypatch.setattr(media, "run_cmd", boom)

    assert probe_duration("/cache/x.mp3") is None


def test_probe_duration_failure_and_success(monkeypatch) -> None:
    """A failing ffprobe gives None; a good one gives its number."""
    monkeypatch.setattr(media, "run_cmd", lambda cmd: (1, "Invalid data"))
    assert probe_duration("/cache/x.mp3") is None

    monkeypatch.setattr(media, "run_cmd", lambda cmd: (0, "3.25\n\n"))
    assert probe_duration("/cache/x.mp3") == pytest.approx(3.25)


def test_ffprobe_binary_override(monkeypatch) -> None:
    """FFPROBE_BIN selects the ffprobe executable."""
    seen = []
    monkeypatch.setenv("FFPROBE_BIN", "/opt/ffmpeg/bin/ffprobe")
    monkeypatch.setattr(media, "run_cmd", lambda cmd: seen.append(cmd[0]) or (0, "1.0"))

    probe_duration("/cache/x.mp3")

    assert seen == ["/opt/ffmpeg/bin/ffprobe"]
