# kaizen_player/persistence.py
from __future__ import annotations

import json
import os
import tempfile
from datetime import datetime
from typing import Dict, List, Optional

from .domain import (
    Annotation,
    AppConfig,
    Library,
    Process,
    ProcessType,
    Project,
    Stage,
    SubtitleMode,
    VideoType,
)
from .logger import get_logger

log = get_logger(__name__)


# Filenames (within the data root)
ROOT_CONFIG_FILENAME = "config.json"
LIBRARY_FILENAME = "library.json"


# -----------------------------
# Atomic file helpers
# -----------------------------

def _atomic_write_text(path: str, text: str, encoding: str = "utf-8") -> None:
    d = os.path.dirname(path) or "."
    os.makedirs(d, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(prefix=".tmp_", dir=d)
    try:
        with os.fdopen(fd, "w", encoding=encoding, newline="") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    finally:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)


def _atomic_write_json(path: str, payload: Dict) -> None:
    text = json.dumps(payload, indent=2, ensure_ascii=False)
    _atomic_write_text(path, text + "\n")


def _read_json(path: str) -> Dict:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def _now() -> str:
    return datetime.now().isoformat(timespec="seconds")


# -----------------------------
# Root config (root/config.json)
# -----------------------------

def root_config_path(root_dir: str) -> str:
    return os.path.join(root_dir, ROOT_CONFIG_FILENAME)


def load_root_config(root_dir: str) -> AppConfig:
    """
    Loads <root_dir>/config.json.

    A missing or invalid file yields defaults.
    """
    path = root_config_path(root_dir)
    if not os.path.exists(path):
        return AppConfig(root_dir=root_dir)
    try:
        cfg = AppConfig.from_dict(_read_json(path))
    except (OSError, ValueError, TypeError, AttributeError) as e:
        log.warning("Invalid config at %s (%s); using defaults", path, e)
        return AppConfig(root_dir=root_dir)
    # Ensure correct root_dir is used
    cfg.root_dir = root_dir
    return cfg


def save_root_config(cfg: AppConfig) -> None:
    if not cfg.root_dir:
        raise ValueError("AppConfig.root_dir is required")
    _atomic_write_json(root_config_path(cfg.root_dir), cfg.to_dict())


# -----------------------------
# Library (root/library.json)
# -----------------------------

def _load_records(items, factory, kind: str) -> List:
    out = []
    for d in items or []:
        try:
            out.append(factory(d))
        except (KeyError, TypeError, ValueError) as e:
            # skip malformed records
            log.warning("Skipping malformed %s record: %s", kind, e)
    return out


def load_library(path: str) -> Library:
    if not os.path.exists(path):
        return Library()
    try:
        data = _read_json(path)
    except (OSError, ValueError) as e:
        log.warning("Unreadable library %s (%s); starting empty", path, e)
        return Library()

    lib = Library(
        projects=_load_records(data.get("projects"), Project.from_dict, "project"),
        stages=_load_records(data.get("stages"), Stage.from_dict, "stage"),
        processes=_load_records(data.get("processes"), Process.from_dict, "process"),
        annotations=_load_records(data.get("annotations"), Annotation.from_dict, "annotation"),
        next_ids={str(k): int(v) for k, v in (data.get("next_ids") or {}).items()},
    )
    # Never hand out an id that is already taken.
    for kind, items in (
        ("project", lib.projects),
        ("stage", lib.stages),
        ("process", lib.processes),
        ("annotation", lib.annotations),
    ):
        top = max((r.id for r in items), default=0)
        lib.next_ids[kind] = max(int(lib.next_ids.get(kind, 1)), top + 1)
    return lib


class LibraryStore:
    """
    Projects -> stages -> processes, plus annotations, in one JSON file.

    Every mutating call writes the whole file atomically.
    """

    def __init__(self, root_dir: str):
        if not root_dir:
            raise ValueError("root_dir is required")
        self.root_dir = root_dir
        self.path = os.path.join(root_dir, LIBRARY_FILENAME)
        self.library = load_library(self.path)

    def save(self) -> None:
        _atomic_write_json(self.path, self.library.to_dict())

    # projects

    def create_project(self, name: str, description: str = "") -> Project:
        if not (name or "").strip():
            raise ValueError("Project name is required")
        now = _now()
        p = Project(id=self.library.allocate_id("project"), name=name.strip(), description=description,
                    created_at=now, updated_at=now)
        self.library.projects.append(p)
        self.save()
        return p

    def get_all_projects(self) -> List[Project]:
        return sorted(self.library.projects, key=lambda p: p.updated_at, reverse=True)

    def get_project(self, project_id: int) -> Optional[Project]:
        return next((p for p in self.library.projects if p.id == int(project_id)), None)

    def update_project(self, project_id: int, name: Optional[str] = None, description: Optional[str] = None) -> Project:
        p = self.get_project(project_id)
        if p is None:
            raise ValueError(f"Unknown project id: {project_id}")
        if name is not None:
            if not name.strip():
                raise ValueError("Project name is required")
            p.name = name.strip()
        if description is not None:
            p.description = description
        p.updated_at = _now()
        self.save()
        return p

    def delete_project(self, project_id: int) -> None:
        for s in self.get_stages_by_project(project_id):
            self._drop_stage(s.id)
        self.library.projects = [p for p in self.library.projects if p.id != int(project_id)]
        self.save()

    # stages

    def create_stage(
        self,
        project_id: int,
        name: str,
        description: str = "",
        before_video_path: str = "",
        after_video_path: str = "",
    ) -> Stage:
        if self.get_project(project_id) is None:
            raise ValueError(f"Unknown project id: {project_id}")
        s = Stage(
            id=self.library.allocate_id("stage"),
            project_id=int(project_id),
            name=name,
            description=description,
            before_video_path=before_video_path,
            after_video_path=after_video_path,
            created_at=_now(),
        )
        self.library.stages.append(s)
        self.save()
        return s

    def get_stages_by_project(self, project_id: int) -> List[Stage]:
        return [s for s in self.library.stages if s.project_id == int(project_id)]

    def get_stage(self, stage_id: int) -> Optional[Stage]:
        return self.library.get_stage(stage_id)

    def update_stage(self, stage_id: int, **fields) -> Stage:
        s = self.get_stage(stage_id)
        if s is None:
            raise ValueError(f"Unknown stage id: {stage_id}")
        for key in ("name", "description", "before_video_path", "after_video_path"):
            if key in fields and fields[key] is not None:
                setattr(s, key, str(fields[key]))
        self.save()
        return s

    def _drop_stage(self, stage_id: int) -> None:
        for p in self.get_processes_by_stage(stage_id):
            self._drop_process(p.id)
        self.library.stages = [s for s in self.library.stages if s.id != int(stage_id)]

    def delete_stage(self, stage_id: int) -> None:
        self._drop_stage(stage_id)
        self.save()

    # processes

    def create_process(
        self,
        stage_id: int,
        name: str,
        before_start_time: float = 0.0,
        before_end_time: float = 0.0,
        after_start_time: float = 0.0,
        after_end_time: float = 0.0,
        process_type=ProcessType.NORMAL,
        description: str = "",
        improvement_note: str = "",
        subtitle_text: str = "",
        subtitle_after: str = "",
        subtitle_mode=SubtitleMode.COMBINED,
    ) -> Process:
        if self.get_stage(stage_id) is None:
            raise ValueError(f"Unknown stage id: {stage_id}")
        siblings = self.get_processes_by_stage(stage_id)
        p = Process(
            id=self.library.allocate_id("process"),
            stage_id=int(stage_id),
            name=name,
            before_start_time=float(before_start_time),
            before_end_time=float(before_end_time),
            after_start_time=float(after_start_time),
            after_end_time=float(after_end_time),
            process_type=ProcessType.parse(process_type),
            description=description,
            improvement_note=improvement_note,
            subtitle_text=subtitle_text,
            subtitle_after=subtitle_after,
            subtitle_mode=SubtitleMode.parse(subtitle_mode),
            sort_order=max((s.sort_order for s in siblings), default=0) + 1,
        )
        p.validate()
        p.time_saved = p.compute_time_saved()
        self.library.processes.append(p)
        self.save()
        return p

    def get_processes_by_stage(self, stage_id: int) -> List[Process]:
        return sorted(
            (p for p in self.library.processes if p.stage_id == int(stage_id)),
            key=lambda p: (p.sort_order, p.id),
        )

    def get_process(self, process_id: int) -> Optional[Process]:
        return self.library.get_process(process_id)

    def update_process(self, process_id: int, **fields) -> Process:
        p = self.get_process(process_id)
        if p is None:
            raise ValueError(f"Unknown process id: {process_id}")
        d = p.to_dict()
        for key, value in fields.items():
            if key not in d or key in ("id", "stage_id", "time_saved"):
                raise ValueError(f"Cannot update process field: {key}")
            if value is not None:
                d[key] = value.value if isinstance(value, (ProcessType, SubtitleMode)) else value
        updated = Process.from_dict(d)
        updated.validate()
        updated.time_saved = updated.compute_time_saved()
        idx = self.library.processes.index(p)
        self.library.processes[idx] = updated
        self.save()
        return updated

    def _drop_process(self, process_id: int) -> None:
        self.library.annotations = [a for a in self.library.annotations if a.process_id != int(process_id)]
        self.library.processes = [p for p in self.library.processes if p.id != int(process_id)]

    def delete_process(self, process_id: int) -> None:
        self._drop_process(process_id)
        self.save()

    def reorder_process(self, process_id: int, new_order: int) -> List[Process]:
        """
        Move a process to position `new_order` (0-based) within its stage and
        renumber the stage 1..n. Returns the stage's new ordering.
        """
        p = self.get_process(process_id)
        if p is None:
            raise ValueError(f"Unknown process id: {process_id}")
        ordered = [x for x in self.get_processes_by_stage(p.stage_id) if x.id != p.id]
        idx = max(0, min(int(new_order), len(ordered)))
        ordered.insert(idx, p)
        for i, item in enumerate(ordered, start=1):
            item.sort_order = i
        self.save()
        return ordered

    def get_stage_total_time_saved(self, stage_id: int) -> float:
        return sum(p.time_saved for p in self.get_processes_by_stage(stage_id))

    # annotations

    def create_annotation(self, process_id: int, video_type, type: str, start_time: float, **fields) -> Annotation:
        if self.get_process(process_id) is None:
            raise ValueError(f"Unknown process id: {process_id}")
        d = {
            "id": self.library.allocate_id("annotation"),
            "process_id": int(process_id),
            "video_type": VideoType(video_type).value,
            "type": type,
            "start_time": start_time,
        }
        d.update(fields)
        a = Annotation.from_dict(d)
        if a.end_time is not None and a.end_time < a.start_time:
            raise ValueError("Annotation end_time must be >= start_time")
        self.library.annotations.append(a)
        self.save()
        return a

    def get_annotation(self, annotation_id: int) -> Optional[Annotation]:
        return next((a for a in self.library.annotations if a.id == int(annotation_id)), None)

    def update_annotation(self, annotation_id: int, **fields) -> Annotation:
        a = self.get_annotation(annotation_id)
        if a is None:
            raise ValueError(f"Unknown annotation id: {annotation_id}")
        d = a.to_dict()
        for key, value in fields.items():
            if key not in d or key in ("id", "process_id"):
                raise ValueError(f"Cannot update annotation field: {key}")
            d[key] = value.value if isinstance(value, VideoType) else value
        updated = Annotation.from_dict(d)
        if updated.end_time is not None and updated.end_time < updated.start_time:
            raise ValueError("Annotation end_time must be >= start_time")
        idx = self.library.annotations.index(a)
        self.library.annotations[idx] = updated
        self.save()
        return updated

    def delete_annotation(self, annotation_id: int) -> None:
        self.library.annotations = [a for a in self.library.annotations if a.id != int(annotation_id)]
        self.save()

    def get_annotations_by_process(self, process_id: int, video_type) -> List[Annotation]:
        vt = VideoType(video_type)
        return sorted(
            (a for a in self.library.annotations if a.process_id == int(process_id) and a.video_type == vt),
            key=lambda a: (a.start_time, a.id),
        )
