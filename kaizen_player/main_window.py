# kaizen_player/main_window.py
from __future__ import annotations

import os
from typing import List, Optional

from PyQt5.QtCore import Qt
from PyQt5.QtGui import QKeySequence
from PyQt5.QtWidgets import (
    QCheckBox,
    QComboBox,
    QDialog,
    QFileDialog,
    QGroupBox,
    QHBoxLayout,
    QInputDialog,
    QLabel,
    QListWidget,
    QListWidgetItem,
    QMainWindow,
    QMessageBox,
    QPushButton,
    QShortcut,
    QSplitter,
    QStackedWidget,
    QVBoxLayout,
    QWidget,
)

from .dialogs.process_dialog import ProcessDialog
from .dialogs.stage_dialog import StageDialog
from .domain import (
    PLAYBACK_RATES,
    AppConfig,
    Process,
    ProcessType,
    Stage,
    SubtitleSettings,
    VideoType,
)
from .logger import get_logger
from .persistence import LibraryStore, load_root_config, save_root_config
from .playback.controller import CompareController
from .playback.narration import NarrationLoader, NarrationStatus
from .playback.policy import Phase
from .playback.single import SingleTrackController
from .speech import AzureSpeechBackend, SpeechCache, default_cache_dir
from .timeutils import time_saved_str
from .widgets.compare_panel import ComparePanel
from .widgets.preview_panel import PreviewPanel

log = get_logger(__name__)


MODE_COMPARE = 0
MODE_PREVIEW = 1

TYPE_TAGS = {
    ProcessType.NORMAL: "",
    ProcessType.NEW_STEP: "［新增］",
    ProcessType.CANCELLED: "［取消］",
}

STATUS_BADGES = {
    NarrationStatus.IDLE: ("解说：空闲", "#888888"),
    NarrationStatus.GENERATING: ("解说：生成中…", "#F39C12"),
    NarrationStatus.READY: ("解说：就绪", "#27AE60"),
    NarrationStatus.FAILED: ("解说：失败", "#C0392B"),
}

# Number keys select these rates.
RATE_KEYS = {"1": 1.0, "2": 2.0, "3": 3.0, "5": 5.0}


class MainWindow(QMainWindow):
    def __init__(self, root_dir: Optional[str] = None):
        super().__init__()
        self.setWindowTitle("Kaizen Player (改善前后对比播放)")
        self.resize(1600, 960)

        self.root_dir: Optional[str] = None
        self.cfg: AppConfig = AppConfig(root_dir="")
        self.store: Optional[LibraryStore] = None
        self.stage: Optional[Stage] = None
        self.processes: List[Process] = []

        self.speech_backend = AzureSpeechBackend()

        self._build_ui()
        self._build_shortcuts()
        self.set_root_dir(root_dir)

    # ---------------- UI ----------------

    def _build_ui(self):
        central = QWidget()
        self.setCentralWidget(central)

        main_layout = QVBoxLayout(central)
        main_layout.setContentsMargins(6, 6, 6, 6)
        main_layout.setSpacing(6)

        # ===== Top: root + project + stage =====
        top = QHBoxLayout()
        top.setSpacing(10)
        main_layout.addLayout(top)

        root_box = QGroupBox("数据目录")
        root_lay = QHBoxLayout(root_box)
        root_lay.setContentsMargins(6, 6, 6, 6)
        self.root_label = QLabel("未设置")
        self.btn_set_root = QPushButton("选择目录")
        self.btn_set_root.clicked.connect(self._choose_root_dir)
        root_lay.addWidget(self.root_label, stretch=1)
        root_lay.addWidget(self.btn_set_root)
        top.addWidget(root_box, stretch=3)

        proj_box = QGroupBox("项目 / 阶段")
        proj_lay = QHBoxLayout(proj_box)
        proj_lay.setContentsMargins(6, 6, 6, 6)
        self.combo_project = QComboBox()
        self.combo_project.setMinimumWidth(180)
        self.combo_project.currentIndexChanged.connect(self._on_project_changed)
        self.btn_new_project = QPushButton("新建项目")
        self.btn_new_project.clicked.connect(self._create_project)
        self.combo_stage = QComboBox()
        self.combo_stage.setMinimumWidth(180)
        self.combo_stage.currentIndexChanged.connect(self._on_stage_changed)
        self.btn_new_stage = QPushButton("新建阶段")
        self.btn_new_stage.clicked.connect(self._create_stage)
        self.btn_edit_stage = QPushButton("编辑阶段")
        self.btn_edit_stage.clicked.connect(self._edit_stage)
        for w in (self.combo_project, self.btn_new_project, self.combo_stage, self.btn_new_stage, self.btn_edit_stage):
            proj_lay.addWidget(w)
        proj_lay.addStretch()
        top.addWidget(proj_box, stretch=5)

        # ===== Middle: process list (left) + players (right) =====
        split = QSplitter(Qt.Horizontal)
        main_layout.addWidget(split, stretch=12)

        left = QWidget()
        left_lay = QVBoxLayout(left)
        left_lay.setContentsMargins(0, 0, 0, 0)
        left_lay.addWidget(QLabel("工序"))
        self.process_list = QListWidget()
        self.process_list.currentRowChanged.connect(self._on_process_row_changed)
        self.process_list.itemDoubleClicked.connect(lambda _it: self._edit_process())
        left_lay.addWidget(self.process_list, stretch=1)

        proc_btns = QHBoxLayout()
        self.btn_add_process = QPushButton("新增")
        self.btn_edit_process = QPushButton("编辑")
        self.btn_delete_process = QPushButton("删除")
        self.btn_move_up = QPushButton("上移")
        self.btn_move_down = QPushButton("下移")
        self.btn_add_process.clicked.connect(self._add_process)
        self.btn_edit_process.clicked.connect(self._edit_process)
        self.btn_delete_process.clicked.connect(self._delete_process)
        self.btn_move_up.clicked.connect(lambda: self._move_process(-1))
        self.btn_move_down.clicked.connect(lambda: self._move_process(1))
        for b in (self.btn_add_process, self.btn_edit_process, self.btn_delete_process, self.btn_move_up, self.btn_move_down):
            proc_btns.addWidget(b)
        left_lay.addLayout(proc_btns)
        split.addWidget(left)

        right = QWidget()
        right_lay = QVBoxLayout(right)
        right_lay.setContentsMargins(0, 0, 0, 0)

        mode_bar = QHBoxLayout()
        self.combo_mode = QComboBox()
        self.combo_mode.addItems(["前后对比", "单视频预览"])
        self.combo_mode.currentIndexChanged.connect(self._on_mode_changed)
        self.combo_view = QComboBox()
        self.combo_view.addItem("改善前", VideoType.BEFORE.value)
        self.combo_view.addItem("改善后", VideoType.AFTER.value)
        self.combo_view.currentIndexChanged.connect(self._on_view_changed)
        self.combo_view.setEnabled(False)
        mode_bar.addWidget(QLabel("模式："))
        mode_bar.addWidget(self.combo_mode)
        mode_bar.addSpacing(12)
        mode_bar.addWidget(QLabel("预览视频："))
        mode_bar.addWidget(self.combo_view)
        mode_bar.addStretch()
        right_lay.addLayout(mode_bar)

        self.stack = QStackedWidget()
        self.compare_panel = ComparePanel(self.cfg.subtitles)
        self.preview_panel = PreviewPanel(self.cfg.subtitles)
        self.stack.addWidget(self.compare_panel)
        self.stack.addWidget(self.preview_panel)
        right_lay.addWidget(self.stack, stretch=1)

        # Playback controls
        play_bar = QHBoxLayout()
        play_bar.setSpacing(8)
        self.btn_prev = QPushButton("上一步")
        self.btn_play = QPushButton("播放")
        self.btn_next = QPushButton("下一步")
        self.btn_restart = QPushButton("重新开始")
        self.btn_prev.clicked.connect(lambda: self._step(-1))
        self.btn_play.clicked.connect(self._toggle_play)
        self.btn_next.clicked.connect(lambda: self._step(1))
        self.btn_restart.clicked.connect(self._restart)

        self.combo_rate = QComboBox()
        for r in PLAYBACK_RATES:
            self.combo_rate.addItem(f"{r:g}x", r)
        self.combo_rate.currentIndexChanged.connect(self._on_rate_changed)

        self.chk_loop = QCheckBox("循环")
        self.chk_loop.toggled.connect(self._on_loop_toggled)
        self.chk_global = QCheckBox("全局播放")
        self.chk_global.toggled.connect(self._on_global_toggled)
        self.chk_mute = QCheckBox("静音原声")
        self.chk_mute.toggled.connect(self._on_mute_toggled)
        self.chk_narration = QCheckBox("解说")
        self.chk_narration.toggled.connect(self._on_narration_toggled)
        self.btn_regenerate = QPushButton("重新生成解说")
        self.btn_regenerate.clicked.connect(self._regenerate_narration)
        self.status_badge = QLabel("")

        for w in (self.btn_prev, self.btn_play, self.btn_next, self.btn_restart):
            play_bar.addWidget(w)
        play_bar.addSpacing(12)
        play_bar.addWidget(QLabel("倍速："))
        play_bar.addWidget(self.combo_rate)
        for w in (self.chk_loop, self.chk_global, self.chk_mute, self.chk_narration, self.btn_regenerate):
            play_bar.addWidget(w)
        play_bar.addStretch()
        play_bar.addWidget(self.status_badge)
        right_lay.addLayout(play_bar)

        split.addWidget(right)
        split.setStretchFactor(0, 1)
        split.setStretchFactor(1, 4)

        # ===== Controllers =====
        self.compare_loader = NarrationLoader(self._speech_cache(), self.cfg.narration, parent=self)
        self.compare = CompareController(
            self.compare_panel.tracks[VideoType.BEFORE],
            self.compare_panel.tracks[VideoType.AFTER],
            self.compare_panel.narration_track,
            loader=self.compare_loader,
            parent=self,
        )
        self.compare_panel.bind(self.compare)

        self.preview_loader = NarrationLoader(self._speech_cache(), self.cfg.narration, parent=self)
        self.preview = SingleTrackController(
            self.preview_panel.track,
            self.preview_panel.narration_track,
            loader=self.preview_loader,
            parent=self,
        )
        self.preview_panel.bind(self.preview)

        for ctl in (self.compare, self.preview):
            ctl.phase_changed.connect(lambda _p: self._update_play_button())
            ctl.narration_status_changed.connect(lambda _s: self._update_badge())
        self.compare.process_changed.connect(self._on_compare_process_changed)

        self.compare_panel.subtitles.settings_changed.connect(self._on_subtitle_settings_changed)
        self.preview_panel.subtitles.settings_changed.connect(self._on_subtitle_settings_changed)

        for b in self.findChildren(QPushButton):
            b.setCursor(Qt.PointingHandCursor)

        self._update_badge()
        self._update_enabled_state()

    def _build_shortcuts(self) -> None:
        QShortcut(QKeySequence(Qt.Key_Space), self, activated=self._toggle_play)
        QShortcut(QKeySequence(Qt.Key_Left), self, activated=lambda: self._step(-1))
        QShortcut(QKeySequence(Qt.Key_Right), self, activated=lambda: self._step(1))
        QShortcut(QKeySequence(Qt.Key_L), self, activated=self.chk_loop.toggle)
        for key, rate in RATE_KEYS.items():
            QShortcut(QKeySequence(key), self, activated=lambda _r=rate: self._select_rate(_r))

    # ---------------- Root config ----------------

    def _choose_root_dir(self):
        d = QFileDialog.getExistingDirectory(self, "选择数据目录")
        if d:
            self.set_root_dir(d)

    def set_root_dir(self, root_dir: Optional[str]) -> None:
        self._pause_all()
        if root_dir:
            self.root_dir = root_dir
            self.root_label.setText(root_dir)
            self.cfg = load_root_config(root_dir)
            self.store = LibraryStore(root_dir)
        else:
            self.root_dir = None
            self.root_label.setText("未设置")
            self.cfg = AppConfig(root_dir="")
            self.store = None

        cache = self._speech_cache()
        for loader in (self.compare_loader, self.preview_loader):
            loader.cache = cache
            loader.settings = self.cfg.narration
        self._apply_config()
        self._reload_projects()
        self._update_enabled_state()

    def _speech_cache(self) -> SpeechCache:
        root = self.root_dir or os.path.join(os.path.expanduser("~"), ".kaizen_player")
        return SpeechCache(default_cache_dir(root), self.speech_backend)

    def _apply_config(self) -> None:
        cfg = self.cfg
        for w in (self.combo_rate, self.chk_loop, self.chk_global, self.chk_narration):
            w.blockSignals(True)
        idx = self.combo_rate.findData(cfg.playback.rate)
        self.combo_rate.setCurrentIndex(idx if idx >= 0 else self.combo_rate.findData(1.0))
        self.chk_loop.setChecked(cfg.playback.looping)
        self.chk_global.setChecked(cfg.playback.global_mode)
        self.chk_narration.setChecked(cfg.narration.enabled)
        for w in (self.combo_rate, self.chk_loop, self.chk_global, self.chk_narration):
            w.blockSignals(False)

        for ctl in (self.compare, self.preview):
            ctl.set_playback_rate(cfg.playback.rate)
            ctl.set_looping(cfg.playback.looping)
            ctl.set_narration_enabled(cfg.narration.enabled)
        self.compare.global_mode = cfg.playback.global_mode

        for panel in (self.compare_panel, self.preview_panel):
            panel.set_subtitle_settings(cfg.subtitles)
            panel.narration_speed = cfg.narration.speed

    def _save_config(self) -> None:
        if not self.root_dir:
            return
        try:
            save_root_config(self.cfg)
        except (OSError, ValueError) as e:
            log.warning("Could not save config: %s", e)

    # ---------------- Projects / stages ----------------

    def _reload_projects(self, select_id: Optional[int] = None) -> None:
        self.combo_project.blockSignals(True)
        self.combo_project.clear()
        if self.store is not None:
            for p in self.store.get_all_projects():
                self.combo_project.addItem(p.name, p.id)
        if select_id is not None:
            self.combo_project.setCurrentIndex(max(0, self.combo_project.findData(select_id)))
        self.combo_project.blockSignals(False)
        self._on_project_changed()

    def _current_project_id(self) -> Optional[int]:
        data = self.combo_project.currentData()
        return int(data) if data is not None else None

    def _on_project_changed(self, *_):
        self._reload_stages()

    def _reload_stages(self, select_id: Optional[int] = None) -> None:
        self.combo_stage.blockSignals(True)
        self.combo_stage.clear()
        pid = self._current_project_id()
        if self.store is not None and pid is not None:
            for s in self.store.get_stages_by_project(pid):
                self.combo_stage.addItem(s.name, s.id)
        if select_id is not None:
            self.combo_stage.setCurrentIndex(max(0, self.combo_stage.findData(select_id)))
        self.combo_stage.blockSignals(False)
        self._on_stage_changed()

    def _on_stage_changed(self, *_):
        data = self.combo_stage.currentData()
        self.stage = self.store.get_stage(int(data)) if (self.store is not None and data is not None) else None
        self._reload_processes()

    def _create_project(self):
        if self.store is None:
            return
        name, ok = QInputDialog.getText(self, "新建项目", "项目名称：")
        name = (name or "").strip()
        if not ok or not name:
            return
        p = self.store.create_project(name)
        self._reload_projects(select_id=p.id)

    def _create_stage(self):
        pid = self._current_project_id()
        if self.store is None or pid is None:
            return
        dlg = StageDialog(self)
        if dlg.exec_() != QDialog.Accepted:
            return
        try:
            s = self.store.create_stage(pid, **dlg.values())
        except ValueError as e:
            QMessageBox.warning(self, "无法创建阶段", str(e))
            return
        self._reload_stages(select_id=s.id)

    def _edit_stage(self):
        if self.store is None or self.stage is None:
            return
        dlg = StageDialog(self, stage=self.stage)
        if dlg.exec_() != QDialog.Accepted:
            return
        try:
            s = self.store.update_stage(self.stage.id, **dlg.values())
        except ValueError as e:
            QMessageBox.warning(self, "无法保存阶段", str(e))
            return
        self._reload_stages(select_id=s.id)

    # ---------------- Processes ----------------

    def _reload_processes(self, select_row: int = 0) -> None:
        self._pause_all()
        if self.store is not None and self.stage is not None:
            self.processes = self.store.get_processes_by_stage(self.stage.id)
            total = self.store.get_stage_total_time_saved(self.stage.id)
        else:
            self.processes = []
            total = 0.0
        row = max(0, min(select_row, len(self.processes) - 1)) if self.processes else -1

        self.process_list.blockSignals(True)
        self.process_list.clear()
        for i, p in enumerate(self.processes):
            it = QListWidgetItem(f"{i + 1}. {p.name} {TYPE_TAGS[p.process_type]}  {time_saved_str(p.time_saved)}")
            it.setData(Qt.UserRole, p.id)
            self.process_list.addItem(it)
        self.process_list.setCurrentRow(row)
        self.process_list.blockSignals(False)

        self.compare_panel.set_processes(self.processes, self.compare.global_mode, total)
        self.compare.set_stage(self.stage, self.processes, global_mode=self.compare.global_mode, index=max(0, row))
        self._sync_preview()
        self._update_enabled_state()

    def _current_process(self) -> Optional[Process]:
        row = self.process_list.currentRow()
        if 0 <= row < len(self.processes):
            return self.processes[row]
        return None

    def _on_process_row_changed(self, row: int):
        if not (0 <= row < len(self.processes)):
            return
        if self.compare.index != row:
            self.compare.select_index(row)
        self._sync_preview()

    def _on_compare_process_changed(self, index: int):
        if 0 <= index < len(self.processes):
            p = self.processes[index]
            for vt in (VideoType.BEFORE, VideoType.AFTER):
                anns = self.store.get_annotations_by_process(p.id, vt) if self.store is not None else []
                self.compare_panel.set_annotations(vt, anns)
            if self.process_list.currentRow() != index:
                self.process_list.blockSignals(True)
                self.process_list.setCurrentRow(index)
                self.process_list.blockSignals(False)

    def _sync_preview(self) -> None:
        p = self._current_process()
        if p is not None and self.store is not None:
            before = self.store.get_annotations_by_process(p.id, VideoType.BEFORE)
            after = self.store.get_annotations_by_process(p.id, VideoType.AFTER)
        else:
            before, after = [], []
        self.preview.set_process(self.stage, p)
        self.preview_panel.set_process(p, before, after)
        self.combo_view.blockSignals(True)
        self.combo_view.setCurrentIndex(max(0, self.combo_view.findData(self.preview.view.value)))
        self.combo_view.blockSignals(False)

    def _add_process(self):
        if self.store is None or self.stage is None:
            return
        dlg = ProcessDialog(self)
        if dlg.exec_() != QDialog.Accepted:
            return
        try:
            self.store.create_process(self.stage.id, **dlg.values())
        except ValueError as e:
            QMessageBox.warning(self, "无法创建工序", str(e))
            return
        self._reload_processes(select_row=len(self.processes))

    def _edit_process(self):
        p = self._current_process()
        if self.store is None or p is None:
            return
        row = self.process_list.currentRow()
        dlg = ProcessDialog(self, process=p)
        if dlg.exec_() != QDialog.Accepted:
            return
        try:
            self.store.update_process(p.id, **dlg.values())
        except ValueError as e:
            QMessageBox.warning(self, "无法保存工序", str(e))
            return
        self._reload_processes(select_row=row)

    def _delete_process(self):
        p = self._current_process()
        if self.store is None or p is None:
            return
        ans = QMessageBox.question(self, "删除工序", f"确定删除工序「{p.name}」及其标注？")
        if ans != QMessageBox.Yes:
            return
        row = self.process_list.currentRow()
        self.store.delete_process(p.id)
        self._reload_processes(select_row=max(0, row - 1))

    def _move_process(self, delta: int):
        p = self._current_process()
        if self.store is None or p is None:
            return
        row = self.process_list.currentRow()
        target = row + delta
        if not (0 <= target < len(self.processes)):
            return
        self.store.reorder_process(p.id, target)
        self._reload_processes(select_row=target)

    # ---------------- Playback ----------------

    def _active(self):
        return self.preview if self.stack.currentIndex() == MODE_PREVIEW else self.compare

    def _pause_all(self) -> None:
        self.compare.pause()
        self.preview.pause()

    def _toggle_play(self):
        if not self.processes:
            return
        ctl = self._active()
        if ctl.phase == Phase.PLAYING:
            ctl.pause()
        elif not ctl.play():
            self.statusBar().showMessage("无法开始播放：视频不可用", 4000)

    def _restart(self):
        if not self._active().restart() and self.processes:
            self.statusBar().showMessage("无法开始播放：视频不可用", 4000)

    def _step(self, delta: int):
        if not self.processes:
            return
        if self.stack.currentIndex() == MODE_COMPARE:
            if delta > 0:
                self.compare.next_process()
            else:
                self.compare.prev_process()
            return
        row = self.process_list.currentRow() + delta
        if 0 <= row < len(self.processes):
            was_playing = self.preview.phase == Phase.PLAYING
            self.process_list.setCurrentRow(row)
            if was_playing:
                self.preview.play()

    def _on_mode_changed(self, index: int):
        self._pause_all()
        self.stack.setCurrentIndex(index)
        self.combo_view.setEnabled(index == MODE_PREVIEW)
        self.chk_global.setEnabled(index == MODE_COMPARE and bool(self.processes))
        if index == MODE_PREVIEW:
            self._sync_preview()
        self._update_play_button()
        self._update_badge()

    def _on_view_changed(self, *_):
        vt = VideoType(self.combo_view.currentData())
        self.preview.set_view(vt)
        p = self._current_process()
        if p is not None and self.store is not None:
            self.preview_panel.set_process(
                p,
                self.store.get_annotations_by_process(p.id, VideoType.BEFORE),
                self.store.get_annotations_by_process(p.id, VideoType.AFTER),
            )

    def _select_rate(self, rate: float) -> None:
        idx = self.combo_rate.findData(rate)
        if idx >= 0:
            self.combo_rate.setCurrentIndex(idx)

    def _on_rate_changed(self, *_):
        rate = float(self.combo_rate.currentData() or 1.0)
        for ctl in (self.compare, self.preview):
            ctl.set_playback_rate(rate)
        self.cfg.playback.rate = rate
        self._save_config()

    def _on_loop_toggled(self, checked: bool):
        for ctl in (self.compare, self.preview):
            ctl.set_looping(checked)
        self.cfg.playback.looping = bool(checked)
        self._save_config()

    def _on_global_toggled(self, checked: bool):
        self.compare.set_global_mode(checked)
        total = self.store.get_stage_total_time_saved(self.stage.id) if (self.store and self.stage) else 0.0
        self.compare_panel.set_processes(self.processes, self.compare.global_mode, total)
        self.cfg.playback.global_mode = bool(checked)
        self._save_config()

    def _on_mute_toggled(self, checked: bool):
        for ctl in (self.compare, self.preview):
            ctl.set_muted(checked)

    def _on_narration_toggled(self, checked: bool):
        for ctl in (self.compare, self.preview):
            ctl.set_narration_enabled(checked)
        self.cfg.narration.enabled = bool(checked)
        self._save_config()
        self._update_badge()

    def _regenerate_narration(self):
        self._active().regenerate_narration()

    def _on_subtitle_settings_changed(self, settings: SubtitleSettings):
        self.cfg.subtitles = settings
        for panel in (self.compare_panel, self.preview_panel):
            if panel.subtitles.settings != settings:
                panel.set_subtitle_settings(settings)
        self._save_config()

    # ---------------- Helpers ----------------

    def _update_play_button(self) -> None:
        playing = self._active().phase == Phase.PLAYING
        self.btn_play.setText("暂停" if playing else "播放")

    def _update_badge(self) -> None:
        ctl = self._active()
        if not ctl.narration_enabled:
            self.status_badge.setText("解说：关闭")
            self.status_badge.setStyleSheet("color: #888888;")
            self.btn_regenerate.setEnabled(False)
            return
        text, color = STATUS_BADGES[ctl.narration_status]
        self.status_badge.setText(text)
        self.status_badge.setStyleSheet(f"color: {color}; font-weight: bold;")
        self.btn_regenerate.setEnabled(bool(self.processes))

    def _update_enabled_state(self):
        has_root = self.store is not None
        has_project = has_root and self._current_project_id() is not None
        has_stage = self.stage is not None
        has_processes = bool(self.processes)

        self.btn_new_project.setEnabled(has_root)
        self.btn_new_stage.setEnabled(has_project)
        self.btn_edit_stage.setEnabled(has_stage)
        self.btn_add_process.setEnabled(has_stage)
        for b in (self.btn_edit_process, self.btn_delete_process, self.btn_move_up, self.btn_move_down):
            b.setEnabled(has_processes)
        for b in (self.btn_prev, self.btn_play, self.btn_next, self.btn_restart):
            b.setEnabled(has_processes)
        self.chk_global.setEnabled(has_processes and self.stack.currentIndex() == MODE_COMPARE)
        self._update_play_button()
        self._update_badge()

    def closeEvent(self, event):
        self._pause_all()
        self._save_config()
        super().closeEvent(event)
