# kaizen_player/media.py
from __future__ import annotations

import os
import re
import subprocess
from typing import List, Optional, Tuple
from urllib.parse import quote, unquote

from .logger import get_logger

log = get_logger(__name__)


LOCAL_SCHEME = "local-video"

# Allowed local extensions (strict)
ALLOWED_VIDEO_EXTS = {
    ".mp4", ".mov", ".mkv", ".avi", ".m4v", ".webm",
}
ALLOWED_AUDIO_EXTS = {".mp3", ".wav", ".m4a"}


# -----------------------------
# Local-resource locators
# -----------------------------

def to_locator(path: str, query: str = "") -> str:
    """
    Absolute path -> "local-video://<path>[?query]".

    The query is used to bust caches (e.g. "?t=<hash>") when a file is
    regenerated under the same name.
    """
    if not path:
        return ""
    abs_path = os.path.abspath(path).replace(os.sep, "/")
    loc = f"{LOCAL_SCHEME}://{quote(abs_path, safe='/:')}"
    return f"{loc}?{query}" if query else loc


def strip_query(locator: str) -> str:
    return (locator or "").split("?", 1)[0].split("#", 1)[0]


def is_locator(s: str) -> bool:
    return bool(s) and s.startswith(f"{LOCAL_SCHEME}://")


def locator_to_path(locator: str) -> str:
    """Plain paths pass through unchanged."""
    if not is_locator(locator):
        return strip_query(locator) if locator else ""
    raw = strip_query(locator)[len(LOCAL_SCHEME) + 3:]
    path = unquote(raw)
    # "local-video:///C:/x" on Windows
    if re.match(r"^/[A-Za-z]:/", path):
        path = path[1:]
    return os.path.normpath(path)


def same_source(a: str, b: str) -> bool:
    """Two locators name the same media once any query suffix is ignored."""
    if not a or not b:
        return False
    return strip_query(a) == strip_query(b)


# -----------------------------
# Validation
# -----------------------------

def ext_lower(path_or_url: str) -> str:
    base = strip_query(path_or_url.strip())
    _, ext = os.path.splitext(base)
    return ext.lower().strip()


def validate_local_video_path(path: str) -> Tuple[bool, str]:
    if not path:
        return (False, "No file selected.")
    if not os.path.exists(path):
        return (False, f"File does not exist: {path}")
    if not os.path.isfile(path):
        return (False, f"Not a file: {path}")
    ext = ext_lower(path)
    if ext not in ALLOWED_VIDEO_EXTS:
        return (False, f"Unsupported file type '{ext}'. Allowed: {sorted(ALLOWED_VIDEO_EXTS)}")
    return (True, "OK")


# -----------------------------
# ffprobe helpers
# -----------------------------

def find_ffprobe() -> str:
    return os.environ.get("FFPROBE_BIN", "ffprobe")


def run_cmd(cmd: List[str]) -> Tuple[int, str]:
    """
    Runs a command and returns (returncode, combined_output).
    """
    proc = subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
    out = (proc.stdout or b"") + b"\n" + (proc.stderr or b"")
    return proc.returncode, out.decode("utf-8", errors="ignore")


def parse_duration_output(out: str) -> Optional[float]:
    for line in (out or "").splitlines():
        line = line.strip()
        if re.fullmatch(r"\d+(\.\d+)?", line):
            value = float(line)
            if value > 0:
                return value
    return None


def probe_duration(path: str) -> Optional[float]:
    """
    Best-effort media duration in seconds. None if ffprobe is unavailable
    or the output can't be parsed.
    """
    cmd = [
        find_ffprobe(),
        "-v", "error",
        "-show_entries", "format=duration",
        "-of", "default=noprint_wrappers=1:nokey=1",
        path,
    ]
    try:
        code, out = run_cmd(cmd)
    except OSError as e:
        log.warning("ffprobe not runnable (%s): %s", cmd[0], e)
        return None
    if code != 0:
        log.warning("ffprobe failed for %s: %s", path, out.strip())
        return None
    return parse_duration_output(out)
