"""Tests for narration playlist building and the background loader."""

from __future__ import annotations

from typing import List

import pytest

from conftest import make_process
from kaizen_player.domain import NarrationSettings, SubtitleMode
from kaizen_player.media import is_locator, locator_to_path
from kaizen_player.playback.narration import NarrationLoader, NarrationStatus, build_entry
from kaizen_player.speech import SpeechCache

TEXT = "改善后原地完成"


class DeferredRunner:
    """Holds jobs until the test runs them."""

    def __init__(self) -> None:
        self.jobs: List = []

    def __call__(self, job) -> None:
        self.jobs.append(job)


def run_now(job) -> None:
    job.run()


@pytest.fixture
def cache(tmp_path, speech_backend) -> SpeechCache:
    return SpeechCache(str(tmp_path), speech_backend)


def make_loader(cache, runner=run_now, probe=lambda path: 3.0):
    loader = NarrationLoader(cache, NarrationSettings(), runner=runner, probe=probe)
    ready, failed = [], []
    loader.ready.connect(lambda pid, playlist: ready.append((pid, playlist)))
    loader.failed.connect(lambda pid, msg: failed.append((pid, msg)))
    return loader, ready, failed


def test_combined_playlist_has_one_timed_entry(cache) -> None:
    """Combined narration yields a single clip with a timing map."""
    loader, ready, _failed = make_loader(cache)

    loader.request(make_process(1, subtitle_text=TEXT))

    assert loader.status == NarrationStatus.READY
    pid, playlist = ready[-1]
    assert pid == 1
    assert len(playlist.entries) == 1
    entry = playlist.entries[0]
    assert is_locator(entry.src)
    assert entry.duration == pytest.approx(3.0)
    assert entry.timing[-1].end == pytest.approx(3.0)


def test_separate_playlist_keeps_placeholder(cache, speech_backend) -> None:
    """Separate narration always has two entries; a missing after text is a placeholder."""
    loader, ready, _failed = make_loader(cache)

    loader.request(make_process(1, subtitle_mode=SubtitleMode.SEPARATE, subtitle_text=TEXT))

    playlist = ready[-1][1]
    assert playlist.mode == SubtitleMode.SEPARATE
    assert len(playlist.entries) == 2
    assert not playlist.entries[0].is_placeholder
    assert playlist.entries[1].is_placeholder
    assert len(speech_backend.calls) == 1


def test_only_latest_request_is_delivered(cache) -> None:
    """A result for an older request is dropped."""
    runner = DeferredRunner()
    loader, ready, _failed = make_loader(cache, runner=runner)

    loader.request(make_process(1, subtitle_text=TEXT))
    loader.request(make_process(2, subtitle_text="取料"))
    first, second = runner.jobs

    first.run()
    assert ready == []
    assert loader.status == NarrationStatus.GENERATING

    second.run()
    assert [pid for pid, _ in ready] == [2]


def test_cancel_drops_pending_result(cache) -> None:
    """After cancel() nothing is delivered and the status is idle."""
    runner = DeferredRunner()
    loader, ready, _failed = make_loader(cache, runner=runner)

    loader.request(make_process(1, subtitle_text=TEXT))
    loader.cancel()
    runner.jobs[0].run()

    assert ready == []
    assert loader.status == NarrationStatus.IDLE


def test_unknown_duration_uses_estimate(cache) -> None:
    """Without a measurable duration the clip is timed by character count."""
    loader, ready, _failed = make_loader(cache, probe=lambda path: None)

    loader.request(make_process(1, subtitle_text=TEXT))

    entry = ready[-1][1].entries[0]
    assert entry.duration == pytest.approx(len(TEXT) / 5.0)
    assert entry.timing == []


def test_cached_timing_skips_probe(cache) -> None:
    """A second build of the same clip reads the stored timing instead of probing."""
    probes = []

    def probe(path):
        probes.append(path)
        return 3.0

    settings = NarrationSettings()
    build_entry(cache, TEXT, settings, probe=probe)
    again = build_entry(cache, TEXT, settings, probe=probe)

    assert len(probes) == 1
    assert again.duration == pytest.approx(3.0)
    assert again.timing


def test_forced_build_probes_again(cache, speech_backend) -> None:
    """Regenerating synthesizes and measures the clip again."""
    probes = []
    settings = NarrationSettings()
    build_entry(cache, TEXT, settings, probe=lambda p: probes.append(p) or 3.0)

    build_entry(cache, TEXT, settings, force=True, probe=lambda p: probes.append(p) or 4.0)

    assert len(probes) == 2
    assert len(speech_backend.calls) == 2


def test_rebuilt_clip_gets_a_new_locator(cache) -> None:
    """Each build names the same file through a different locator, so players reload it."""
    settings = NarrationSettings()
    first = build_entry(cache, TEXT, settings, probe=lambda p: 3.0)
    rebuilt = build_entry(cache, TEXT, settings, force=True, probe=lambda p: 3.0)

    assert rebuilt.src != first.src
    assert locator_to_path(rebuilt.src) == locator_to_path(first.src)


def test_synthesis_failure_is_reported(cache, speech_backend) -> None:
    """Backend failures become a failed signal for the requested process."""
    speech_backend.error = RuntimeError("quota exceeded")
    loader, ready, failed = make_loader(cache)

    loader.request(make_process(7, subtitle_text=TEXT))

    assert ready == []
    assert failed == [(7, "quota exceeded")]
    assert loader.status == NarrationStatus.FAILED


def test_process_without_text_stays_idle(cache, speech_backend) -> None:
    """No narration text means no synthesis and no result."""
    loader, ready, _failed = make_loader(cache)

    loader.request(make_process(1, subtitle_text="  "))

    assert loader.status == NarrationStatus.IDLE
    assert ready == []
    assert speech_backend.calls == []
