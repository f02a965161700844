# kaizen_player/domain.py
from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple


# -----------------------------
# Enums
# -----------------------------

class ProcessType(str, Enum):
    NORMAL = "normal"
    NEW_STEP = "new_step"     # no "before" footage
    CANCELLED = "cancelled"   # no "after" footage

    @staticmethod
    def parse(value) -> "ProcessType":
        if isinstance(value, ProcessType):
            return value
        try:
            return ProcessType(str(value or "normal").strip().lower())
        except ValueError:
            return ProcessType.NORMAL


class SubtitleMode(str, Enum):
    COMBINED = "combined"
    SEPARATE = "separate"

    @staticmethod
    def parse(value) -> "SubtitleMode":
        if isinstance(value, SubtitleMode):
            return value
        try:
            return SubtitleMode(str(value or "combined").strip().lower())
        except ValueError:
            return SubtitleMode.COMBINED


class VideoType(str, Enum):
    BEFORE = "before"
    AFTER = "after"


# Timeline marker colors, cycled by process order.
PROCESS_COLOR_PALETTE: List[str] = [
    "#4A90E2", "#50C878", "#F39C12", "#9B59B6",
    "#E74C3C", "#1ABC9C", "#F1C40F", "#E67E22",
]

PLAYBACK_RATES: List[float] = [0.5, 1.0, 2.0, 3.0, 5.0]


def process_color_hex(index: int) -> str:
    return PROCESS_COLOR_PALETTE[int(index) % len(PROCESS_COLOR_PALETTE)]


def _float_or(value, default: float = 0.0) -> float:
    try:
        f = float(value)
    except (TypeError, ValueError):
        return default
    return f if math.isfinite(f) else default


def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(float(value), hi))


# -----------------------------
# Library records
# -----------------------------

@dataclass
class Project:
    id: int
    name: str
    description: str = ""
    created_at: str = ""
    updated_at: str = ""

    def to_dict(self) -> Dict:
        return {
            "id": int(self.id),
            "name": self.name,
            "description": self.description or "",
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @staticmethod
    def from_dict(d: Dict) -> "Project":
        return Project(
            id=int(d["id"]),
            name=str(d.get("name", "")),
            description=str(d.get("description", "") or ""),
            created_at=str(d.get("created_at", "")),
            updated_at=str(d.get("updated_at", "")),
        )


@dataclass
class Stage:
    """
    One improvement stage of a project: a single "before" recording and a
    single "after" recording that all of its processes are cut from.
    """
    id: int
    project_id: int
    name: str
    description: str = ""
    before_video_path: str = ""
    after_video_path: str = ""
    created_at: str = ""

    def video_path(self, video_type: VideoType) -> str:
        return self.before_video_path if video_type == VideoType.BEFORE else self.after_video_path

    def to_dict(self) -> Dict:
        return {
            "id": int(self.id),
            "project_id": int(self.project_id),
            "name": self.name,
            "description": self.description or "",
            "before_video_path": self.before_video_path or "",
            "after_video_path": self.after_video_path or "",
            "created_at": self.created_at,
        }

    @staticmethod
    def from_dict(d: Dict) -> "Stage":
        return Stage(
            id=int(d["id"]),
            project_id=int(d["project_id"]),
            name=str(d.get("name", "")),
            description=str(d.get("description", "") or ""),
            before_video_path=str(d.get("before_video_path", "") or ""),
            after_video_path=str(d.get("after_video_path", "") or ""),
            created_at=str(d.get("created_at", "")),
        )


@dataclass
class Process:
    """
    One improvement step, cut out of the stage's before/after recordings.

    Times are seconds on each recording's own clock. A `new_step` process has
    no before window and a `cancelled` process has no after window.
    """
    id: int
    stage_id: int
    name: str
    before_start_time: float = 0.0
    before_end_time: float = 0.0
    after_start_time: float = 0.0
    after_end_time: float = 0.0
    process_type: ProcessType = ProcessType.NORMAL
    description: str = ""
    improvement_note: str = ""
    subtitle_text: str = ""
    subtitle_after: str = ""
    subtitle_mode: SubtitleMode = SubtitleMode.COMBINED
    sort_order: int = 0
    time_saved: float = 0.0

    def has_before(self) -> bool:
        return self.process_type != ProcessType.NEW_STEP

    def has_after(self) -> bool:
        return self.process_type != ProcessType.CANCELLED

    def has_track(self, video_type: VideoType) -> bool:
        return self.has_before() if video_type == VideoType.BEFORE else self.has_after()

    def window(self, video_type: VideoType) -> Tuple[float, float]:
        if video_type == VideoType.BEFORE:
            return (self.before_start_time, self.before_end_time)
        return (self.after_start_time, self.after_end_time)

    def before_duration(self) -> float:
        if not self.has_before():
            return 0.0
        return max(0.0, self.before_end_time - self.before_start_time)

    def after_duration(self) -> float:
        if not self.has_after():
            return 0.0
        return max(0.0, self.after_end_time - self.after_start_time)

    def duration(self, video_type: VideoType) -> float:
        return self.before_duration() if video_type == VideoType.BEFORE else self.after_duration()

    def compute_time_saved(self) -> float:
        return self.before_duration() - self.after_duration()

    def validate(self) -> None:
        """Raise ValueError if a present leg has an inverted or empty window."""
        if self.has_before() and not self.before_end_time > self.before_start_time:
            raise ValueError("before_end_time must be > before_start_time")
        if self.has_after() and not self.after_end_time > self.after_start_time:
            raise ValueError("after_end_time must be > after_start_time")

    def to_dict(self) -> Dict:
        return {
            "id": int(self.id),
            "stage_id": int(self.stage_id),
            "name": self.name,
            "before_start_time": float(self.before_start_time),
            "before_end_time": float(self.before_end_time),
            "after_start_time": float(self.after_start_time),
            "after_end_time": float(self.after_end_time),
            "process_type": self.process_type.value,
            "description": self.description or "",
            "improvement_note": self.improvement_note or "",
            "subtitle_text": self.subtitle_text or "",
            "subtitle_after": self.subtitle_after or "",
            "subtitle_mode": self.subtitle_mode.value,
            "sort_order": int(self.sort_order),
            "time_saved": float(self.time_saved),
        }

    @staticmethod
    def from_dict(d: Dict) -> "Process":
        # Non-finite times are coerced to 0.0; the player still guards every seek.
        return Process(
            id=int(d["id"]),
            stage_id=int(d.get("stage_id", 0)),
            name=str(d.get("name", "")),
            before_start_time=_float_or(d.get("before_start_time")),
            before_end_time=_float_or(d.get("before_end_time")),
            after_start_time=_float_or(d.get("after_start_time")),
            after_end_time=_float_or(d.get("after_end_time")),
            process_type=ProcessType.parse(d.get("process_type")),
            description=str(d.get("description", "") or ""),
            improvement_note=str(d.get("improvement_note", "") or ""),
            subtitle_text=str(d.get("subtitle_text", "") or ""),
            subtitle_after=str(d.get("subtitle_after", "") or ""),
            subtitle_mode=SubtitleMode.parse(d.get("subtitle_mode")),
            sort_order=int(d.get("sort_order", 0) or 0),
            time_saved=_float_or(d.get("time_saved")),
        )


@dataclass
class Annotation:
    """
    A shape drawn over one of the two recordings.

    Coordinates are normalized (0..1) against the rendered video area, so
    they survive any resize. `end_time=None` keeps the shape visible until the
    end of the recording.
    """
    id: int
    process_id: int
    video_type: VideoType
    type: str                  # "arrow" | "circle" | "rectangle" | "text"
    start_time: float
    end_time: Optional[float] = None
    x: float = 0.0
    y: float = 0.0
    width: Optional[float] = None
    height: Optional[float] = None
    end_x: Optional[float] = None
    end_y: Optional[float] = None
    text: str = ""
    color: str = "#FF0000"
    stroke_width: int = 3

    def is_visible_at(self, t: float) -> bool:
        if t < self.start_time:
            return False
        return self.end_time is None or t <= self.end_time

    def to_dict(self) -> Dict:
        return {
            "id": int(self.id),
            "process_id": int(self.process_id),
            "video_type": self.video_type.value,
            "type": self.type,
            "start_time": float(self.start_time),
            "end_time": None if self.end_time is None else float(self.end_time),
            "x": float(self.x),
            "y": float(self.y),
            "width": self.width,
            "height": self.height,
            "end_x": self.end_x,
            "end_y": self.end_y,
            "text": self.text or "",
            "color": self.color,
            "stroke_width": int(self.stroke_width),
        }

    @staticmethod
    def from_dict(d: Dict) -> "Annotation":
        def opt(key: str) -> Optional[float]:
            v = d.get(key)
            return None if v is None else _float_or(v)

        return Annotation(
            id=int(d["id"]),
            process_id=int(d["process_id"]),
            video_type=VideoType(str(d.get("video_type", "before"))),
            type=str(d.get("type", "arrow")),
            start_time=_float_or(d.get("start_time")),
            end_time=opt("end_time"),
            x=_float_or(d.get("x")),
            y=_float_or(d.get("y")),
            width=opt("width"),
            height=opt("height"),
            end_x=opt("end_x"),
            end_y=opt("end_y"),
            text=str(d.get("text", "") or ""),
            color=str(d.get("color", "#FF0000")),
            stroke_width=int(d.get("stroke_width", 3) or 3),
        )


@dataclass
class Library:
    """
    In-memory copy of <root>/library.json.
    """
    projects: List[Project] = field(default_factory=list)
    stages: List[Stage] = field(default_factory=list)
    processes: List[Process] = field(default_factory=list)
    annotations: List[Annotation] = field(default_factory=list)
    next_ids: Dict[str, int] = field(default_factory=dict)

    def allocate_id(self, kind: str) -> int:
        n = int(self.next_ids.get(kind, 1))
        self.next_ids[kind] = n + 1
        return n

    def get_stage(self, stage_id: int) -> Optional[Stage]:
        for s in self.stages:
            if s.id == int(stage_id):
                return s
        return None

    def get_process(self, process_id: int) -> Optional[Process]:
        for p in self.processes:
            if p.id == int(process_id):
                return p
        return None

    def to_dict(self) -> Dict:
        return {
            "projects": [p.to_dict() for p in self.projects],
            "stages": [s.to_dict() for s in self.stages],
            "processes": [p.to_dict() for p in self.processes],
            "annotations": [a.to_dict() for a in self.annotations],
            "next_ids": {str(k): int(v) for k, v in self.next_ids.items()},
            "library_version": 1,
        }


# -----------------------------
# Config payload
# -----------------------------

@dataclass
class NarrationSettings:
    voice: str = "zh-CN-XiaoxiaoNeural"
    speed: float = 5.0           # characters per second
    baseline_speed: float = 5.0  # speed the voice speaks at with rate "+0%"
    enabled: bool = False
    subtitle_mode: SubtitleMode = SubtitleMode.COMBINED

    def to_dict(self) -> Dict:
        return {
            "voice": self.voice,
            "speed": float(self.speed),
            "baseline_speed": float(self.baseline_speed),
            "enabled": bool(self.enabled),
            "subtitle_mode": self.subtitle_mode.value,
        }

    @staticmethod
    def from_dict(d: Dict) -> "NarrationSettings":
        speed = _float_or(d.get("speed"), 5.0)
        baseline = _float_or(d.get("baseline_speed"), 5.0)
        return NarrationSettings(
            voice=str(d.get("voice") or "zh-CN-XiaoxiaoNeural"),
            speed=speed if speed > 0 else 5.0,
            baseline_speed=baseline if baseline > 0 else 5.0,
            enabled=bool(d.get("enabled", False)),
            subtitle_mode=SubtitleMode.parse(d.get("subtitle_mode")),
        )


@dataclass
class SubtitleSettings:
    font_size: int = 20
    text_color: str = "#FFFFFF"
    highlight_color: str = "#FFD700"
    background_color: str = "#000000"
    background_opacity: float = 0.6
    max_lines: int = 2
    position_x: float = 50.0   # percent of the video width (anchor is centered)
    position_y: float = 85.0   # percent of the video height

    def clamped(self) -> "SubtitleSettings":
        return SubtitleSettings(
            font_size=int(_clamp(self.font_size, 12, 48)),
            text_color=self.text_color,
            highlight_color=self.highlight_color,
            background_color=self.background_color,
            background_opacity=_clamp(self.background_opacity, 0.0, 1.0),
            max_lines=max(1, int(self.max_lines)),
            position_x=_clamp(self.position_x, 0.0, 90.0),
            position_y=_clamp(self.position_y, 0.0, 95.0),
        )

    def to_dict(self) -> Dict:
        return {
            "font_size": int(self.font_size),
            "text_color": self.text_color,
            "highlight_color": self.highlight_color,
            "background_color": self.background_color,
            "background_opacity": float(self.background_opacity),
            "max_lines": int(self.max_lines),
            "position_x": float(self.position_x),
            "position_y": float(self.position_y),
        }

    @staticmethod
    def from_dict(d: Dict) -> "SubtitleSettings":
        return SubtitleSettings(
            font_size=int(_float_or(d.get("font_size"), 20)),
            text_color=str(d.get("text_color") or "#FFFFFF"),
            highlight_color=str(d.get("highlight_color") or "#FFD700"),
            background_color=str(d.get("background_color") or "#000000"),
            background_opacity=_float_or(d.get("background_opacity"), 0.6),
            max_lines=int(_float_or(d.get("max_lines"), 2)),
            position_x=_float_or(d.get("position_x"), 50.0),
            position_y=_float_or(d.get("position_y"), 85.0),
        ).clamped()


@dataclass
class PlaybackSettings:
    rate: float = 1.0
    looping: bool = False
    global_mode: bool = False

    def to_dict(self) -> Dict:
        return {"rate": float(self.rate), "looping": bool(self.looping), "global_mode": bool(self.global_mode)}

    @staticmethod
    def from_dict(d: Dict) -> "PlaybackSettings":
        rate = _float_or(d.get("rate"), 1.0)
        if rate not in PLAYBACK_RATES:
            rate = 1.0
        return PlaybackSettings(
            rate=rate,
            looping=bool(d.get("looping", False)),
            global_mode=bool(d.get("global_mode", False)),
        )


@dataclass
class AppConfig:
    """
    Stored in <root_dir>/config.json
    """
    root_dir: str
    narration: NarrationSettings = field(default_factory=NarrationSettings)
    subtitles: SubtitleSettings = field(default_factory=SubtitleSettings)
    playback: PlaybackSettings = field(default_factory=PlaybackSettings)

    def to_dict(self) -> Dict:
        return {
            "data_root": self.root_dir,
            "narration": self.narration.to_dict(),
            "subtitles": self.subtitles.to_dict(),
            "playback": self.playback.to_dict(),
            "config_version": 1,
        }

    @staticmethod
    def from_dict(d: Dict) -> "AppConfig":
        return AppConfig(
            root_dir=str(d.get("data_root") or d.get("root_dir") or ""),
            narration=NarrationSettings.from_dict(d.get("narration") or {}),
            subtitles=SubtitleSettings.from_dict(d.get("subtitles") or {}),
            playback=PlaybackSettings.from_dict(d.get("playback") or {}),
        )
