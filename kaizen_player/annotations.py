# kaizen_player/annotations.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional

from .domain import Annotation


ANNOTATION_TYPES = ("arrow", "circle", "rectangle", "text")

ANNOTATION_COLORS: List[str] = [
    "#FF0000", "#00FF00", "#0000FF", "#FFFF00",
    "#FF00FF", "#00FFFF", "#FF8000", "#FFFFFF",
]

STROKE_WIDTHS: List[int] = [2, 3, 4, 5, 6]


def visible_annotations(annotations: List[Annotation], t: float) -> List[Annotation]:
    return [a for a in (annotations or []) if a.is_visible_at(t)]


# -----------------------------
# Coordinate transforms
# -----------------------------

@dataclass(frozen=True)
class RenderRect:
    """Where the video image actually lands inside its widget (letterboxing removed)."""
    render_width: float
    render_height: float
    offset_x: float
    offset_y: float
    container_width: float
    container_height: float


def video_render_rect(
    container_width: float,
    container_height: float,
    video_width: float,
    video_height: float,
) -> Optional[RenderRect]:
    """Aspect-fit ("contain") placement of a video frame inside a container."""
    if not video_width or not video_height or not container_width or not container_height:
        return None

    video_ratio = float(video_width) / float(video_height)
    container_ratio = float(container_width) / float(container_height)

    if video_ratio > container_ratio:
        # wider than the container: bars top and bottom
        rw = float(container_width)
        rh = float(container_width) / video_ratio
        ox = 0.0
        oy = (float(container_height) - rh) / 2.0
    else:
        rh = float(container_height)
        rw = float(container_height) * video_ratio
        ox = (float(container_width) - rw) / 2.0
        oy = 0.0

    return RenderRect(rw, rh, ox, oy, float(container_width), float(container_height))


def _clamp01(v: float) -> float:
    return max(0.0, min(float(v), 1.0))


def to_pixel(norm: Dict[str, Optional[float]], rect: Optional[RenderRect]) -> Dict[str, float]:
    """Normalized {x, y, width?, height?, end_x?, end_y?} -> widget pixels."""
    if rect is None:
        return {k: v for k, v in norm.items() if v is not None}

    out = {
        "x": rect.offset_x + float(norm["x"]) * rect.render_width,
        "y": rect.offset_y + float(norm["y"]) * rect.render_height,
    }
    if norm.get("width") is not None:
        out["width"] = float(norm["width"]) * rect.render_width
    if norm.get("height") is not None:
        out["height"] = float(norm["height"]) * rect.render_height
    if norm.get("end_x") is not None:
        out["end_x"] = rect.offset_x + float(norm["end_x"]) * rect.render_width
    if norm.get("end_y") is not None:
        out["end_y"] = rect.offset_y + float(norm["end_y"]) * rect.render_height
    return out


def to_normalized(pixel: Dict[str, Optional[float]], rect: Optional[RenderRect]) -> Dict[str, float]:
    """Widget pixels -> normalized, clamping points into the video area."""
    if rect is None:
        return {k: v for k, v in pixel.items() if v is not None}

    out = {
        "x": _clamp01((float(pixel["x"]) - rect.offset_x) / rect.render_width),
        "y": _clamp01((float(pixel["y"]) - rect.offset_y) / rect.render_height),
    }
    if pixel.get("width") is not None:
        out["width"] = float(pixel["width"]) / rect.render_width
    if pixel.get("height") is not None:
        out["height"] = float(pixel["height"]) / rect.render_height
    if pixel.get("end_x") is not None:
        out["end_x"] = _clamp01((float(pixel["end_x"]) - rect.offset_x) / rect.render_width)
    if pixel.get("end_y") is not None:
        out["end_y"] = _clamp01((float(pixel["end_y"]) - rect.offset_y) / rect.render_height)
    return out


def annotation_geometry(a: Annotation) -> Dict[str, Optional[float]]:
    return {
        "x": a.x,
        "y": a.y,
        "width": a.width,
        "height": a.height,
        "end_x": a.end_x,
        "end_y": a.end_y,
    }


def point_in_video_area(x: float, y: float, rect: Optional[RenderRect]) -> bool:
    if rect is None:
        return False
    return (
        rect.offset_x <= x <= rect.offset_x + rect.render_width
        and rect.offset_y <= y <= rect.offset_y + rect.render_height
    )
