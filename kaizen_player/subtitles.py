# kaizen_player/subtitles.py
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .timing import TimingSegment, TimingToken


# Keep the last phrase on screen briefly after the audio ends.
END_GRACE_SECONDS = 2.0
# Estimated subtitles appear slightly early to offset perceived lag.
ANTICIPATION_SECONDS = 0.5
# Estimated chunks shorter than this are merged with the next one.
MIN_CHUNK_CHARS = 10

_CHUNK_SPLIT_RE = re.compile(r"([，。！？,.;；! ?])")


# -----------------------------
# Karaoke (precise timing) mode
# -----------------------------

@dataclass
class KaraokeToken:
    text: str
    progress: float  # 0..100, share of the token's width drawn in highlight color


@dataclass
class SubtitleFrame:
    """
    What the overlay should draw for one playhead time.

    mode is "karaoke" (tokens with per-token progress) or "estimate" (a
    plain text chunk).
    """
    mode: str
    text: str = ""
    tokens: List[KaraokeToken] = field(default_factory=list)


def active_segment(segments: List[TimingSegment], current_time: float) -> Optional[TimingSegment]:
    """
    Segment whose [start, end) contains current_time, or the last segment
    during the grace window after the end of the audio.
    """
    if not segments:
        return None
    for seg in segments:
        if seg.contains(current_time):
            return seg
    last = segments[-1]
    if last.end <= current_time < last.end + END_GRACE_SECONDS:
        return last
    return None


def token_progress(token: TimingToken, current_time: float) -> float:
    if token.duration <= 0:
        return 100.0 if current_time >= token.start else 0.0
    ratio = (current_time - token.start) / token.duration
    return max(0.0, min(ratio, 1.0)) * 100.0


def karaoke_tokens(segment: TimingSegment, current_time: float) -> List[KaraokeToken]:
    return [KaraokeToken(text=t.text, progress=token_progress(t, current_time)) for t in segment.tokens]


# -----------------------------
# Estimate (no timing data) mode
# -----------------------------

@dataclass
class SubtitleChunk:
    text: str
    start: float
    end: float


def clean_subtitle_text(text: str) -> str:
    return re.sub(r"[\r\n]+", " ", text or "").strip()


def estimate_chunks(text: str, narration_speed: float) -> List[SubtitleChunk]:
    """
    Split text on sentence punctuation into chunks of at least MIN_CHUNK_CHARS
    characters and time them by character offset / narration_speed.
    """
    clean = clean_subtitle_text(text)
    if not clean or not narration_speed or narration_speed <= 0:
        return []

    parts = _CHUNK_SPLIT_RE.split(clean)
    chunks: List[SubtitleChunk] = []
    pending = ""
    offset = 0
    for i in range(0, len(parts), 2):
        piece = parts[i] + (parts[i + 1] if i + 1 < len(parts) else "")
        pending += piece
        is_last = i + 2 >= len(parts)
        if len(pending.strip()) >= MIN_CHUNK_CHARS or is_last:
            if pending.strip():
                start_idx = offset
                end_idx = offset + len(pending)
                chunks.append(SubtitleChunk(
                    text=pending.strip(),
                    start=start_idx / narration_speed,
                    end=end_idx / narration_speed,
                ))
            offset += len(pending)
            pending = ""
    return chunks


def estimate_chunk_at(chunks: List[SubtitleChunk], current_time: float) -> Optional[SubtitleChunk]:
    """Chunk containing current_time + ANTICIPATION_SECONDS; None before the first and after the last."""
    t = current_time + ANTICIPATION_SECONDS
    for chunk in chunks:
        if chunk.start <= t < chunk.end:
            return chunk
    return None


# -----------------------------
# Renderer
# -----------------------------

class SubtitleRenderer:
    """
    Stateless apart from a cache of the estimated chunks for the current text.
    """

    def __init__(self):
        self._chunk_key = None
        self._chunks: List[SubtitleChunk] = []

    def frame(
        self,
        text: str,
        segments: Optional[List[TimingSegment]],
        current_time: float,
        is_active: bool,
        narration_speed: float = 5.0,
    ) -> Optional[SubtitleFrame]:
        if not is_active or not text:
            return None

        if segments:
            seg = active_segment(segments, current_time)
            if seg is None:
                return None
            return SubtitleFrame(mode="karaoke", text=seg.text, tokens=karaoke_tokens(seg, current_time))

        key = (text, float(narration_speed or 0))
        if key != self._chunk_key:
            self._chunk_key = key
            self._chunks = estimate_chunks(text, narration_speed)
        chunk = estimate_chunk_at(self._chunks, current_time)
        if chunk is None:
            return None
        return SubtitleFrame(mode="estimate", text=chunk.text)


# -----------------------------
# Overlay placement
# -----------------------------

FONT_SIZE_MIN = 12
FONT_SIZE_MAX = 48
FONT_SIZE_STEP = 2

POSITION_X_MAX = 90.0
POSITION_Y_MAX = 95.0


def step_font_size(size: int, direction: int) -> int:
    """One FONT_SIZE_STEP up (direction > 0) or down, kept within the allowed range."""
    step = FONT_SIZE_STEP if direction > 0 else -FONT_SIZE_STEP
    return int(max(FONT_SIZE_MIN, min(int(size) + step, FONT_SIZE_MAX)))


def clamp_position(x_pct: float, y_pct: float) -> Tuple[float, float]:
    return (
        max(0.0, min(float(x_pct), POSITION_X_MAX)),
        max(0.0, min(float(y_pct), POSITION_Y_MAX)),
    )


def drag_position(
    start_pct: Tuple[float, float],
    delta_px: Tuple[float, float],
    area_size: Tuple[float, float],
) -> Tuple[float, float]:
    """New (x%, y%) after dragging by delta_px inside an area of area_size pixels."""
    w, h = area_size
    if w <= 0 or h <= 0:
        return clamp_position(*start_pct)
    return clamp_position(
        start_pct[0] + delta_px[0] / w * 100.0,
        start_pct[1] + delta_px[1] / h * 100.0,
    )
