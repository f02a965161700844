# kaizen_player/timeutils.py
from __future__ import annotations

import math
from typing import Optional

from .logger import get_logger

log = get_logger(__name__)


# -----------------------------
# Time formatting
# -----------------------------

def seconds_to_time_str(sec: Optional[float]) -> str:
    """mm:ss, truncating fractional seconds."""
    if sec is None or not math.isfinite(float(sec)):
        sec = 0.0
    total = max(0, int(math.floor(float(sec))))
    m = total // 60
    s = total % 60
    return f"{m:02d}:{s:02d}"


def ms_to_time_str(ms: Optional[int]) -> str:
    if ms is None:
        ms = 0
    return seconds_to_time_str(int(ms) / 1000.0)


def seconds_to_detailed_str(sec: float) -> str:
    """'1分5.0秒' above a minute, '5.0秒' below."""
    sec = abs(float(sec or 0.0))
    mins = int(sec // 60)
    rest = sec - mins * 60
    if mins > 0:
        return f"{mins}分{rest:.1f}秒"
    return f"{rest:.1f}秒"


def _time_saved_label(time_saved: Optional[float], fmt) -> str:
    if not time_saved:
        return "无变化"
    text = fmt(abs(float(time_saved)))
    return f"节省 {text}" if time_saved > 0 else f"增加 {text}"


def time_saved_str(time_saved: Optional[float]) -> str:
    return _time_saved_label(time_saved, seconds_to_time_str)


def time_saved_detailed_str(time_saved: Optional[float]) -> str:
    return _time_saved_label(time_saved, seconds_to_detailed_str)


# -----------------------------
# Narration helpers
# -----------------------------

def estimate_narration_duration(text: str, chars_per_second: float = 5.0) -> float:
    """Estimated narration length in seconds (used when no synthesized audio exists)."""
    if not text or chars_per_second is None or chars_per_second <= 0:
        return 0.0
    return len(text) / float(chars_per_second)


def narration_rate_percent(speed: float, baseline: float = 5.0) -> str:
    """
    Signed percentage offset of `speed` from `baseline`, as the speech service
    expects it: 6.0 against 5.0 -> "+20%", 4.0 -> "-20%".
    """
    if not baseline or baseline <= 0 or not speed or speed <= 0:
        return "+0%"
    pct = int(round((float(speed) / float(baseline) - 1.0) * 100.0))
    return f"+{pct}%" if pct >= 0 else f"{pct}%"


# -----------------------------
# Seek guards
# -----------------------------

def finite_time(value, context: str = "") -> float:
    """
    Coerce a seek target to a finite, non-negative float.

    Non-finite, negative or unparsable values become 0.0 and are logged.
    """
    try:
        f = float(value)
    except (TypeError, ValueError):
        log.warning("Invalid time value %r%s; using 0", value, f" ({context})" if context else "")
        return 0.0
    if not math.isfinite(f):
        log.warning("Non-finite time value %r%s; using 0", value, f" ({context})" if context else "")
        return 0.0
    if f < 0:
        log.warning("Negative time value %r%s; using 0", value, f" ({context})" if context else "")
        return 0.0
    return f


def clamp_percent(value: float) -> float:
    if not math.isfinite(value):
        return 0.0
    return max(0.0, min(float(value), 100.0))


def window_progress(position: float, start: float, end: float) -> float:
    """Percent (0..100) of `position` through the [start, end] window."""
    span = float(end) - float(start)
    if not math.isfinite(span) or span <= 0:
        return 0.0
    return clamp_percent((float(position) - float(start)) / span * 100.0)
