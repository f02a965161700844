"""Behavior tests for the before/after compare controller."""

from __future__ import annotations

from typing import List

import pytest

from conftest import FakeLoader, FakeTrack, make_process, make_stage
from kaizen_player.domain import ProcessType, SubtitleMode, VideoType
from kaizen_player.playback.controller import CompareController
from kaizen_player.playback.narration import NarrationEntry, NarrationPlaylist, NarrationStatus
from kaizen_player.playback.policy import Paused, Phase, PlayingLeg


def make_controller(scheduler, clock, processes, global_mode=False, loader=None, reset_rate_on_play=False):
    before = FakeTrack("before", reset_rate_on_play=reset_rate_on_play)
    after = FakeTrack("after", reset_rate_on_play=reset_rate_on_play)
    audio = FakeTrack("narration")
    c = CompareController(before, after, audio, loader=loader, scheduler=scheduler, clock=clock)
    c.set_stage(make_stage(), processes, global_mode=global_mode)
    return c, before, after, audio


def make_playlist(pid: int, mode: SubtitleMode, durations: List[float]) -> NarrationPlaylist:
    entries = [
        NarrationEntry(src=f"local-video:///cache/{pid}_{i}.mp3?t=abc", duration=d, text="解说词")
        for i, d in enumerate(durations)
    ]
    return NarrationPlaylist(process_id=pid, mode=mode, entries=entries)


def finish_videos(c: CompareController, before: FakeTrack, after: FakeTrack) -> None:
    proc = c.current_process
    before.set_position(proc.before_end_time)
    after.set_position(proc.after_end_time)
    c.tick()


# -----------------------------
# Start / pause / resume
# -----------------------------

def test_play_seeks_both_videos_to_window_starts(scheduler, clock) -> None:
    """A fresh start seeks each video to its own window start and plays both."""
    proc = make_process(1, before_start_time=2.0, before_end_time=7.0, after_start_time=10.0, after_end_time=13.0)
    c, before, after, _audio = make_controller(scheduler, clock, [proc])

    assert c.play() is True

    assert c.phase == Phase.PLAYING
    assert before.seeks[-1] == pytest.approx(2.0)
    assert after.seeks[-1] == pytest.approx(10.0)
    assert before.play_calls == 1
    assert after.play_calls == 1


def test_play_resumes_in_place_when_paused(scheduler, clock) -> None:
    """play() without a target resumes a paused segment without resetting narration time."""
    c, before, _after, _audio = make_controller(scheduler, clock, [make_process(1, before_end_time=20.0, after_end_time=20.0)])
    c.play()
    clock.now = 7.3
    c.pause()

    assert isinstance(c.state, Paused)
    assert c.state.elapsed == pytest.approx(7.3)
    seeks = len(before.seeks)

    assert c.play() is True

    assert c.phase == Phase.PLAYING
    assert c.narration_elapsed() == pytest.approx(7.3)
    assert len(before.seeks) == seeks
    assert before.play_calls == 2


def test_play_with_target_restarts_from_zero(scheduler, clock) -> None:
    """An explicit target always starts over, even when paused mid-segment."""
    proc = make_process(1, before_start_time=1.0, before_end_time=20.0, after_end_time=20.0)
    c, before, _after, _audio = make_controller(scheduler, clock, [proc])
    c.play()
    clock.now = 9.0
    c.pause()

    assert c.play(target=proc) is True

    assert c.narration_elapsed() == pytest.approx(0.0)
    assert before.seeks[-1] == pytest.approx(1.0)


def test_pause_does_not_move_tracks(scheduler, clock) -> None:
    """Pausing stops every track but leaves positions alone."""
    c, before, after, _audio = make_controller(scheduler, clock, [make_process(1)])
    c.play()
    before.set_position(1.2)
    seeks = (len(before.seeks), len(after.seeks))

    c.pause()

    assert c.phase == Phase.PAUSED
    assert not before.is_playing() and not after.is_playing()
    assert before.position() == pytest.approx(1.2)
    assert (len(before.seeks), len(after.seeks)) == seeks


# -----------------------------
# Process types
# -----------------------------

def test_new_step_never_plays_before_track(scheduler, clock) -> None:
    """A new_step process only plays the after video and leaves before progress at 0."""
    proc = make_process(1, process_type=ProcessType.NEW_STEP, after_start_time=0.0, after_end_time=3.0)
    c, before, after, _audio = make_controller(scheduler, clock, [proc])

    c.play()
    after.set_position(1.5)
    c.tick()

    assert before.play_calls == 0
    assert after.play_calls == 1
    assert c.progress[VideoType.AFTER] == pytest.approx(50.0)
    assert c.progress[VideoType.BEFORE] == 0.0

    after.set_position(3.0)
    c.tick()

    assert before.play_calls == 0
    assert c.progress[VideoType.BEFORE] == 0.0
    assert c.phase == Phase.IDLE


def test_cancelled_process_never_plays_after_track(scheduler, clock) -> None:
    """A cancelled process only plays the before video."""
    proc = make_process(1, process_type=ProcessType.CANCELLED)
    c, before, after, _audio = make_controller(scheduler, clock, [proc])

    c.play()

    assert before.play_calls == 1
    assert after.play_calls == 0


# -----------------------------
# Drift correction
# -----------------------------

def test_small_drift_is_left_alone(scheduler, clock) -> None:
    """Videos within 150 ms of each other are never re-seeked."""
    c, before, after, _audio = make_controller(scheduler, clock, [make_process(1, before_end_time=10.0, after_end_time=10.0)])
    c.play()
    before.set_position(2.0)
    after.set_position(2.1)
    seeks = len(after.seeks)

    c.tick()

    assert len(after.seeks) == seeks


def test_large_drift_moves_after_video_once(scheduler, clock) -> None:
    """A 200 ms gap produces exactly one corrective seek on the after video."""
    c, before, after, _audio = make_controller(scheduler, clock, [make_process(1, before_end_time=10.0, after_end_time=10.0)])
    c.play()
    before.set_position(2.0)
    after.set_position(2.2)
    before_seeks = len(before.seeks)
    seeks = len(after.seeks)

    c.tick()
    c.tick()

    assert len(after.seeks) == seeks + 1
    assert after.seeks[-1] == pytest.approx(2.0)
    assert len(before.seeks) == before_seeks


def test_drift_is_measured_within_each_window(scheduler, clock) -> None:
    """Elapsed time is relative to each video's own window start."""
    proc = make_process(1, before_start_time=10.0, before_end_time=20.0, after_start_time=30.0, after_end_time=40.0)
    c, before, after, _audio = make_controller(scheduler, clock, [proc])
    c.play()
    before.set_position(13.0)
    after.set_position(33.5)

    c.tick()

    assert after.seeks[-1] == pytest.approx(33.0)


def test_no_drift_correction_after_one_video_finished(scheduler, clock) -> None:
    """Once a video holds its last frame the other one runs freely."""
    c, before, after, _audio = make_controller(scheduler, clock, [make_process(1, before_end_time=5.0, after_end_time=10.0)])
    c.play()
    before.set_position(5.0)
    after.set_position(1.0)
    seeks = len(after.seeks)

    c.tick()

    assert len(after.seeks) == seeks
    assert not before.is_playing()
    assert c.phase == Phase.PLAYING


# -----------------------------
# Segment completion
# -----------------------------

def test_global_mode_stops_after_last_process(scheduler, clock) -> None:
    """Without looping, global playback goes idle after the last process."""
    procs = [make_process(i) for i in (1, 2, 3)]
    c, before, after, _audio = make_controller(scheduler, clock, procs, global_mode=True)
    c.play()

    for expected in (0, 1, 2):
        assert c.index == expected
        assert c.phase == Phase.PLAYING
        finish_videos(c, before, after)
        scheduler.run_all()

    assert c.phase == Phase.IDLE
    assert c.index == 2
    assert scheduler.pending == []

    c.tick()
    assert c.index == 2


def test_global_mode_loop_restarts_the_list(scheduler, clock) -> None:
    """With looping, the last process is followed by the first one."""
    procs = [make_process(i) for i in (1, 2, 3)]
    c, before, after, _audio = make_controller(scheduler, clock, procs, global_mode=True)
    c.set_looping(True)
    c.play()

    for _ in range(3):
        finish_videos(c, before, after)
        scheduler.run_all()

    assert c.index == 0
    assert c.phase == Phase.PLAYING


def test_single_process_loop_replays(scheduler, clock) -> None:
    """Looping a single process replays it from its start."""
    c, before, after, _audio = make_controller(scheduler, clock, [make_process(1, before_start_time=1.0, before_end_time=5.0)])
    c.set_looping(True)
    c.play()
    finish_videos(c, before, after)

    assert c.phase == Phase.IDLE
    assert scheduler.run_all() == 1
    assert c.phase == Phase.PLAYING
    assert before.play_calls == 2
    assert before.seeks[-1] == pytest.approx(1.0)


def test_single_process_without_loop_stops(scheduler, clock) -> None:
    """A single process without looping stops when both videos are done."""
    c, before, after, _audio = make_controller(scheduler, clock, [make_process(1)])
    c.play()
    finish_videos(c, before, after)

    assert c.phase == Phase.IDLE
    assert scheduler.pending == []


def test_end_of_media_counts_as_done(scheduler, clock) -> None:
    """A track reporting end of media is done even short of its window end."""
    c, before, after, _audio = make_controller(scheduler, clock, [make_process(1)])
    c.play()
    before.set_position(4.0, ended=True)
    after.set_position(2.5, ended=True)

    c.tick()

    assert c.phase == Phase.IDLE


# -----------------------------
# Navigation
# -----------------------------

def test_next_process_plays_after_delay(scheduler, clock) -> None:
    """Stepping while playing selects first and starts playback after a short delay."""
    procs = [make_process(1), make_process(2)]
    c, _before, _after, _audio = make_controller(scheduler, clock, procs)
    c.play()

    assert c.next_process() is True
    assert c.index == 1
    assert c.phase == Phase.IDLE
    assert len(scheduler.pending) == 1

    scheduler.run_all()
    assert c.phase == Phase.PLAYING


def test_selection_change_cancels_scheduled_play(scheduler, clock) -> None:
    """A scheduled start is dropped if the selection changes before it fires."""
    procs = [make_process(1), make_process(2)]
    c, _before, _after, _audio = make_controller(scheduler, clock, procs)
    c.play()
    c.next_process()

    c.select_index(0)
    scheduler.run_all()

    assert c.phase == Phase.IDLE
    assert c.index == 0


def test_prev_process_at_start_is_noop(scheduler, clock) -> None:
    """There is nothing before the first process."""
    c, _before, _after, _audio = make_controller(scheduler, clock, [make_process(1), make_process(2)])

    assert c.prev_process() is False
    assert c.index == 0


def test_select_process_by_id(scheduler, clock) -> None:
    """select_process finds the process by id and rejects unknown ids."""
    c, _before, _after, _audio = make_controller(scheduler, clock, [make_process(4), make_process(9)])

    assert c.select_process(9) is True
    assert c.index == 1
    assert c.select_process(42) is False
    assert c.index == 1


def test_restart_in_global_mode_starts_from_first(scheduler, clock) -> None:
    """restart() in global mode begins again at process 0."""
    procs = [make_process(1), make_process(2)]
    c, _before, _after, _audio = make_controller(scheduler, clock, procs, global_mode=True)
    c.select_index(1)

    assert c.restart() is True
    assert c.index == 0
    assert c.phase == Phase.PLAYING


def test_manual_seek_keeps_play_state(scheduler, clock) -> None:
    """seek() moves one video only and never changes the phase."""
    c, before, after, _audio = make_controller(scheduler, clock, [make_process(1)])
    c.play()

    c.seek("after", 2.5)

    assert after.seeks[-1] == pytest.approx(2.5)
    assert c.phase == Phase.PLAYING


def test_non_finite_seek_becomes_zero(scheduler, clock) -> None:
    """NaN and infinite seek targets are replaced by 0."""
    c, before, after, _audio = make_controller(scheduler, clock, [make_process(1)])

    c.seek(VideoType.BEFORE, float("nan"))
    c.seek(VideoType.AFTER, float("inf"))

    assert before.seeks[-1] == 0.0
    assert after.seeks[-1] == 0.0


# -----------------------------
# Rate / mute
# -----------------------------

def test_rate_is_reasserted_after_play(scheduler, clock) -> None:
    """Backends that reset the rate on play still end up at the chosen rate."""
    c, before, after, audio = make_controller(scheduler, clock, [make_process(1)], reset_rate_on_play=True)
    c.set_playback_rate(2.0)

    c.play()

    assert before.rate() == pytest.approx(2.0)
    assert after.rate() == pytest.approx(2.0)
    assert audio.rate() == pytest.approx(1.0)


def test_invalid_rate_is_ignored(scheduler, clock) -> None:
    """Zero, negative and non-finite rates leave the current rate in place."""
    c, before, _after, _audio = make_controller(scheduler, clock, [make_process(1)])
    c.set_playback_rate(3.0)

    for bad in (0, -1.0, float("nan"), "fast"):
        c.set_playback_rate(bad)

    assert c.rate == pytest.approx(3.0)
    assert before.rate() == pytest.approx(3.0)


def test_mute_affects_videos_only(scheduler, clock) -> None:
    """Muting silences the original video sound but not the narration."""
    c, before, after, audio = make_controller(scheduler, clock, [make_process(1)])

    c.set_muted(True)
    c.play()

    assert before.muted and after.muted
    assert audio.muted is False


# -----------------------------
# Track failures
# -----------------------------

def test_all_videos_failing_leaves_idle(scheduler, clock) -> None:
    """If no video can start, play() reports failure and the phase stays idle."""
    c, before, after, _audio = make_controller(scheduler, clock, [make_process(1)])
    before.fail_play = True
    after.fail_play = True

    assert c.play() is False
    assert c.phase == Phase.IDLE


def test_one_failed_video_is_treated_as_absent(scheduler, clock) -> None:
    """A video that refuses to start does not block the other one."""
    c, before, after, _audio = make_controller(scheduler, clock, [make_process(1)])
    before.fail_play = True

    assert c.play() is True
    after.set_position(3.0)
    c.tick()

    assert c.phase == Phase.IDLE


# -----------------------------
# Narration
# -----------------------------

def test_narration_failure_does_not_block_video(scheduler, clock) -> None:
    """A failed synthesis disables narration for the process; the videos still play to the end."""
    loader = FakeLoader()
    c, before, after, audio = make_controller(scheduler, clock, [make_process(1)], loader=loader)
    c.set_narration_enabled(True)

    assert loader.requests[-1] == (1, False)
    assert c.narration_status == NarrationStatus.GENERATING

    loader.failed.emit(1, "service unavailable")

    assert c.narration_status == NarrationStatus.FAILED
    assert c.play() is True
    assert audio.play_calls == 0

    finish_videos(c, before, after)
    assert c.phase == Phase.IDLE


def test_narration_keeps_segment_open_until_clip_ends(scheduler, clock) -> None:
    """Finished videos hold their last frame while the narration is still talking."""
    loader = FakeLoader()
    c, before, after, audio = make_controller(scheduler, clock, [make_process(1)], loader=loader)
    c.set_narration_enabled(True)
    playlist = make_playlist(1, SubtitleMode.COMBINED, [4.0])
    loader.ready.emit(1, playlist)

    c.play()
    assert audio.play_calls == 1
    assert audio.source() == playlist.entries[0].src

    audio.set_position(2.0)
    finish_videos(c, before, after)
    assert c.phase == Phase.PLAYING
    assert not before.is_playing() and not after.is_playing()

    audio.set_position(4.0)
    c.tick()
    assert c.phase == Phase.IDLE


def test_narration_ready_while_playing_attaches_late(scheduler, clock) -> None:
    """Audio that arrives mid-segment starts at the elapsed wall-clock time."""
    loader = FakeLoader()
    c, _before, _after, audio = make_controller(scheduler, clock, [make_process(1)], loader=loader)
    c.set_narration_enabled(True)
    c.play()
    assert audio.play_calls == 0

    clock.now = 1.5
    playlist = make_playlist(1, SubtitleMode.COMBINED, [4.0])
    loader.ready.emit(1, playlist)

    assert c.narration_status == NarrationStatus.READY
    assert audio.play_calls == 1
    assert audio.seeks[-1] == pytest.approx(1.5)
    assert audio.source() == playlist.entries[0].src


def test_narration_ready_while_paused_starts_on_resume(scheduler, clock) -> None:
    """Narration that arrives during a pause joins in when playback resumes."""
    loader = FakeLoader()
    c, _before, _after, audio = make_controller(scheduler, clock, [make_process(1, before_end_time=20.0, after_end_time=20.0)], loader=loader)
    c.set_narration_enabled(True)
    c.play()
    clock.now = 1.0
    c.pause()

    loader.ready.emit(1, make_playlist(1, SubtitleMode.COMBINED, [6.0]))
    assert audio.play_calls == 0

    c.play()
    assert audio.play_calls == 1
    assert audio.seeks[-1] == pytest.approx(1.0)


def test_stale_narration_result_is_ignored(scheduler, clock) -> None:
    """A playlist for a process that is no longer selected is dropped."""
    loader = FakeLoader()
    c, _before, _after, _audio = make_controller(scheduler, clock, [make_process(1), make_process(2)], loader=loader)
    c.set_narration_enabled(True)
    c.select_index(1)

    loader.ready.emit(1, make_playlist(1, SubtitleMode.COMBINED, [3.0]))
    assert c.playlist is None

    fresh = make_playlist(2, SubtitleMode.COMBINED, [3.0])
    loader.ready.emit(2, fresh)
    assert c.playlist is fresh


def test_regenerate_forces_new_synthesis(scheduler, clock) -> None:
    """Regenerating asks the loader to bypass the cache for the current process."""
    loader = FakeLoader()
    c, _before, _after, _audio = make_controller(scheduler, clock, [make_process(1)], loader=loader)
    c.set_narration_enabled(True)

    c.regenerate_narration()

    assert loader.requests[-1] == (1, True)


@pytest.mark.parametrize("outcome", ["ready", "failed"])
def test_regenerate_shows_generating(scheduler, clock, outcome) -> None:
    """The status badge reads generating while a forced rebuild runs, whatever it showed before."""
    loader = FakeLoader()
    c, _before, _after, _audio = make_controller(scheduler, clock, [make_process(1)], loader=loader)
    c.set_narration_enabled(True)
    if outcome == "ready":
        loader.ready.emit(1, make_playlist(1, SubtitleMode.COMBINED, [3.0]))
    else:
        loader.failed.emit(1, "quota exceeded")
    statuses = []
    c.narration_status_changed.connect(statuses.append)

    c.regenerate_narration()

    assert c.narration_status == NarrationStatus.GENERATING
    assert statuses == [NarrationStatus.GENERATING.value]
    assert c.playlist is None


def test_regenerated_clip_is_reloaded(scheduler, clock) -> None:
    """A rebuilt clip at the same path is loaded again rather than reusing the old media."""
    loader = FakeLoader()
    c, _before, _after, audio = make_controller(scheduler, clock, [make_process(1, before_end_time=20.0, after_end_time=20.0)], loader=loader)
    c.set_narration_enabled(True)
    old = NarrationEntry(src="local-video:///cache/abc.mp3?t=abcdef12.1", duration=8.0, text="解说词")
    loader.ready.emit(1, NarrationPlaylist(process_id=1, mode=SubtitleMode.COMBINED, entries=[old]))
    c.play()
    assert audio.source() == old.src

    clock.now = 2.0
    c.regenerate_narration()
    new = NarrationEntry(src="local-video:///cache/abc.mp3?t=abcdef12.2", duration=8.0, text="解说词")
    loader.ready.emit(1, NarrationPlaylist(process_id=1, mode=SubtitleMode.COMBINED, entries=[new]))

    assert audio.source() == new.src
    assert audio.play_calls == 2
    assert audio.seeks[-1] == pytest.approx(2.0)


def test_subtitles_follow_text_while_generating(scheduler, clock) -> None:
    """Before synthesis finishes the overlay gets the clip text with no timing."""
    loader = FakeLoader()
    proc = make_process(1, subtitle_text="改善前说明", subtitle_after="改善后说明", subtitle_mode=SubtitleMode.SEPARATE)
    c, before, _after, _audio = make_controller(scheduler, clock, [proc], loader=loader)
    assert c.subtitle_cue() == ("", [])

    c.set_narration_enabled(True)
    assert c.narration_status == NarrationStatus.GENERATING
    c.play()
    assert c.subtitle_cue() == ("改善前说明", [])

    before.set_position(proc.before_end_time)
    c.tick()
    assert c.subtitle_cue() == ("改善后说明", [])


def test_subtitles_use_clip_timing_once_ready(scheduler, clock) -> None:
    """A ready clip supplies its own text, and a failed synthesis shows nothing."""
    loader = FakeLoader()
    c, _before, _after, _audio = make_controller(scheduler, clock, [make_process(1, subtitle_text="解说词")], loader=loader)
    c.set_narration_enabled(True)
    playlist = make_playlist(1, SubtitleMode.COMBINED, [3.0])
    loader.ready.emit(1, playlist)
    assert c.subtitle_cue() == ("解说词", playlist.entries[0].timing)

    c.regenerate_narration()
    loader.failed.emit(1, "quota exceeded")
    assert c.subtitle_cue() == ("", [])


def test_disabling_narration_cancels_loader(scheduler, clock) -> None:
    """Turning narration off forgets any pending synthesis and returns to idle status."""
    loader = FakeLoader()
    c, _before, _after, _audio = make_controller(scheduler, clock, [make_process(1)], loader=loader)
    c.set_narration_enabled(True)
    cancelled = loader.cancelled

    c.set_narration_enabled(False)

    assert loader.cancelled == cancelled + 1
    assert c.narration_status == NarrationStatus.IDLE
    assert c.narration_on() is False


# -----------------------------
# Separate narration mode
# -----------------------------

def _separate_setup(scheduler, clock):
    loader = FakeLoader()
    proc = make_process(1, subtitle_mode=SubtitleMode.SEPARATE, before_end_time=5.0, after_end_time=3.0)
    c, before, after, audio = make_controller(scheduler, clock, [proc], loader=loader)
    c.set_narration_enabled(True)
    playlist = make_playlist(1, SubtitleMode.SEPARATE, [4.0, 2.0])
    loader.ready.emit(1, playlist)
    c.play()
    return c, before, after, audio, playlist


def test_separate_mode_starts_with_before_leg_only(scheduler, clock) -> None:
    """Only the before video and the first clip run during the first leg."""
    c, before, after, audio, playlist = _separate_setup(scheduler, clock)

    assert c.state == PlayingLeg(VideoType.BEFORE)
    assert before.play_calls == 1
    assert after.play_calls == 0
    assert audio.source() == playlist.entries[0].src


def test_separate_mode_video_waits_for_narration(scheduler, clock) -> None:
    """A leg video that ends first replays from its start; the second leg waits for both."""
    c, before, after, audio, playlist = _separate_setup(scheduler, clock)

    before.set_position(5.0)
    audio.set_position(1.0)
    c.tick()

    assert c.state == PlayingLeg(VideoType.BEFORE)
    assert before.seeks[-1] == pytest.approx(0.0)
    assert after.play_calls == 0
    assert audio.source() == playlist.entries[0].src

    audio.set_position(4.0)
    c.tick()

    assert c.state == PlayingLeg(VideoType.AFTER)
    assert after.play_calls == 1
    assert audio.source() == playlist.entries[1].src
    assert audio.play_calls == 2


def test_separate_mode_narration_waits_for_video(scheduler, clock) -> None:
    """A clip that ends first is paused until its leg video finishes."""
    c, before, after, audio, _playlist = _separate_setup(scheduler, clock)

    before.set_position(2.0)
    audio.set_position(4.0)
    c.tick()

    assert c.state == PlayingLeg(VideoType.BEFORE)
    assert not audio.is_playing()
    assert after.play_calls == 0

    before.set_position(5.0)
    c.tick()

    assert c.state == PlayingLeg(VideoType.AFTER)


def test_separate_mode_completes_after_second_leg(scheduler, clock) -> None:
    """The process is done once the after video and the second clip have both finished."""
    c, before, after, audio, _playlist = _separate_setup(scheduler, clock)
    before.set_position(5.0)
    audio.set_position(4.0)
    c.tick()

    after.set_position(3.0)
    audio.set_position(1.0)
    c.tick()
    assert c.phase == Phase.PLAYING

    audio.set_position(2.0)
    c.tick()
    assert c.phase == Phase.IDLE
