# kaizen_player/playback/policy.py
"""
Playback state machine and the end-of-segment decision table.

State is one of

    Idle
    PlayingLeg(leg)          leg is the narration half currently running
    Paused(elapsed, leg)     elapsed narration time at the moment of pausing

and only `transition(state, event)` produces a new state. Controllers keep
everything else (tracks, flags, clocks) outside of it.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union

from ..domain import VideoType


class Phase(str, Enum):
    IDLE = "idle"
    PLAYING = "playing"
    PAUSED = "paused"


# -----------------------------
# States
# -----------------------------

@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class PlayingLeg:
    leg: VideoType = VideoType.BEFORE


@dataclass(frozen=True)
class Paused:
    elapsed: float
    leg: VideoType = VideoType.BEFORE


PlaybackState = Union[Idle, PlayingLeg, Paused]


def phase_of(state: PlaybackState) -> Phase:
    if isinstance(state, PlayingLeg):
        return Phase.PLAYING
    if isinstance(state, Paused):
        return Phase.PAUSED
    return Phase.IDLE


# -----------------------------
# Events
# -----------------------------

@dataclass(frozen=True)
class Started:
    """Fresh start of the current process from its first leg."""


@dataclass(frozen=True)
class Resumed:
    pass


@dataclass(frozen=True)
class PauseRequested:
    elapsed: float


@dataclass(frozen=True)
class LegFinished:
    pass


@dataclass(frozen=True)
class Stopped:
    """Segment finished, selection changed, or no track could start."""


Event = Union[Started, Resumed, PauseRequested, LegFinished, Stopped]


def transition(state: PlaybackState, event: Event) -> PlaybackState:
    if isinstance(event, Started):
        return PlayingLeg(VideoType.BEFORE)

    if isinstance(event, Stopped):
        return Idle()

    if isinstance(event, Resumed):
        if isinstance(state, Paused):
            return PlayingLeg(state.leg)
        return state

    if isinstance(event, PauseRequested):
        if isinstance(state, PlayingLeg):
            return Paused(max(0.0, float(event.elapsed)), state.leg)
        return state

    if isinstance(event, LegFinished):
        if isinstance(state, PlayingLeg) and state.leg == VideoType.BEFORE:
            return PlayingLeg(VideoType.AFTER)
        return state

    raise TypeError(f"Unknown playback event: {event!r}")


# -----------------------------
# Segment completion
# -----------------------------

class Decision(str, Enum):
    ADVANCE = "advance"            # play the next process
    RESTART_LIST = "restart_list"  # play the whole list again from process 0
    REPLAY = "replay"              # play the same process again
    STOP = "stop"                  # pause everything and go idle


def decide_completion(looping: bool, global_mode: bool, index: int, count: int) -> Decision:
    """What happens once the current process has fully played."""
    has_next = global_mode and 0 <= index < count - 1
    if looping:
        if has_next:
            return Decision.ADVANCE
        if global_mode:
            return Decision.RESTART_LIST
        return Decision.REPLAY
    if has_next:
        return Decision.ADVANCE
    return Decision.STOP
