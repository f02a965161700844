# kaizen_player/timing.py
"""
Word/character level timing for narration subtitles.

The synthesized audio only tells us its total length, so each unit of the
narration text gets a share of that length proportional to a fixed weight
(how long that kind of unit takes to say), and consecutive units are grouped
into display segments short enough to fit on screen.
"""
from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List


class UnitType(str, Enum):
    HAN = "han"                  # one CJK ideograph
    WORD = "word"                # run of latin letters
    NUMBER = "number"            # run of ascii digits
    PUNCT_SHORT = "punct_short"  # ，、；：
    PUNCT_LONG = "punct_long"    # 。！？…
    SPACE = "space"              # run of whitespace
    OTHER = "other"              # anything else, kept with zero weight


MAX_VISIBLE_PER_SEGMENT = 32  # ~2 lines of 16 characters

_UNIT_RE = re.compile(
    r"([一-龥])"
    r"|([a-zA-Z]+)"
    r"|([0-9]+)"
    r"|([，、；：])"
    r"|([。！？…])"
    r"|(\s+)"
    r"|(.)",
    re.DOTALL,
)


@dataclass
class TextUnit:
    text: str
    type: UnitType
    weight: float


@dataclass
class TimingToken:
    text: str
    type: UnitType
    start: float
    end: float
    duration: float

    def is_visible(self) -> bool:
        return self.type not in (UnitType.PUNCT_SHORT, UnitType.PUNCT_LONG, UnitType.SPACE)

    def to_dict(self) -> Dict:
        return {
            "text": self.text,
            "type": self.type.value,
            "start": float(self.start),
            "end": float(self.end),
            "duration": float(self.duration),
        }

    @staticmethod
    def from_dict(d: Dict) -> "TimingToken":
        return TimingToken(
            text=str(d["text"]),
            type=UnitType(str(d["type"])),
            start=float(d["start"]),
            end=float(d["end"]),
            duration=float(d["duration"]),
        )


@dataclass
class TimingSegment:
    tokens: List[TimingToken] = field(default_factory=list)
    start: float = 0.0
    end: float = 0.0

    @property
    def text(self) -> str:
        return "".join(t.text for t in self.tokens)

    def contains(self, t: float) -> bool:
        return self.start <= t < self.end

    def to_dict(self) -> Dict:
        return {
            "tokens": [t.to_dict() for t in self.tokens],
            "start": float(self.start),
            "end": float(self.end),
        }

    @staticmethod
    def from_dict(d: Dict) -> "TimingSegment":
        return TimingSegment(
            tokens=[TimingToken.from_dict(t) for t in (d.get("tokens") or [])],
            start=float(d.get("start", 0.0)),
            end=float(d.get("end", 0.0)),
        )


def tokenize(text: str) -> List[TextUnit]:
    """Split text into weighted units. Every input character lands in exactly one unit."""
    units: List[TextUnit] = []
    for m in _UNIT_RE.finditer(text or ""):
        han, word, num, p_short, p_long, space, other = m.groups()
        if han:
            units.append(TextUnit(han, UnitType.HAN, 1.0))
        elif word:
            units.append(TextUnit(word, UnitType.WORD, max(0.5, len(word) * 0.4)))
        elif num:
            units.append(TextUnit(num, UnitType.NUMBER, max(0.4, len(num) * 0.3)))
        elif p_short:
            units.append(TextUnit(p_short, UnitType.PUNCT_SHORT, 0.6))
        elif p_long:
            units.append(TextUnit(p_long, UnitType.PUNCT_LONG, 1.2))
        elif space:
            units.append(TextUnit(space, UnitType.SPACE, 0.2))
        elif other:
            units.append(TextUnit(other, UnitType.OTHER, 0.0))
    return units


def _assign_times(units: List[TextUnit], total_duration: float) -> List[TimingToken]:
    total_weight = sum(u.weight for u in units)
    if total_weight <= 0:
        return []
    time_per_weight = total_duration / total_weight

    tokens: List[TimingToken] = []
    current = 0.0
    for u in units:
        duration = u.weight * time_per_weight
        start = current
        end = current + duration
        current = end
        tokens.append(TimingToken(text=u.text, type=u.type, start=start, end=end, duration=duration))

    # Pin the tail to the audio length so float accumulation leaves no gap.
    last = tokens[-1]
    last.end = float(total_duration)
    last.duration = last.end - last.start
    return tokens


def _group_segments(tokens: List[TimingToken]) -> List[TimingSegment]:
    segments: List[TimingSegment] = []
    current: List[TimingToken] = []
    visible = 0

    for i, token in enumerate(tokens):
        current.append(token)
        if token.is_visible():
            visible += 1

        is_sentence_end = token.type == UnitType.PUNCT_LONG
        is_soft_break = visible >= MAX_VISIBLE_PER_SEGMENT and token.type in (UnitType.PUNCT_SHORT, UnitType.SPACE)
        is_last = i == len(tokens) - 1

        if is_sentence_end or is_soft_break or is_last:
            segments.append(TimingSegment(tokens=current, start=current[0].start, end=current[-1].end))
            current = []
            visible = 0

    return segments


def generate_timing_map(text: str, total_duration: float) -> List[TimingSegment]:
    """
    Project the units of `text` onto [0, total_duration] and group them into
    display segments.

    Returns [] for empty text, a non-positive duration, or text with no
    weighted units; callers treat that as "no timing data".
    """
    if not text or total_duration is None or not math.isfinite(total_duration) or total_duration <= 0:
        return []
    tokens = _assign_times(tokenize(text), float(total_duration))
    if not tokens:
        return []
    return _group_segments(tokens)


def segments_to_payload(segments: List[TimingSegment]) -> List[Dict]:
    return [s.to_dict() for s in segments]


def segments_from_payload(payload) -> List[TimingSegment]:
    out: List[TimingSegment] = []
    for d in payload or []:
        try:
            out.append(TimingSegment.from_dict(d))
        except (KeyError, TypeError, ValueError):
            return []
    return out
