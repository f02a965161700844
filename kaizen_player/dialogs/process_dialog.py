# kaizen_player/dialogs/process_dialog.py
from __future__ import annotations

from typing import Dict, Optional

from PyQt5.QtWidgets import (
    QComboBox,
    QDialog,
    QDialogButtonBox,
    QDoubleSpinBox,
    QFormLayout,
    QLineEdit,
    QMessageBox,
    QPlainTextEdit,
    QVBoxLayout,
)

from ..domain import Process, ProcessType, SubtitleMode


PROCESS_TYPE_LABELS = [
    (ProcessType.NORMAL, "常规"),
    (ProcessType.NEW_STEP, "新增步骤（无改善前）"),
    (ProcessType.CANCELLED, "取消步骤（无改善后）"),
]
SUBTITLE_MODE_LABELS = [
    (SubtitleMode.COMBINED, "合并解说"),
    (SubtitleMode.SEPARATE, "分段解说（先改善前，后改善后）"),
]


def _time_spin() -> QDoubleSpinBox:
    s = QDoubleSpinBox()
    s.setDecimals(2)
    s.setRange(0.0, 24 * 3600.0)
    s.setSingleStep(0.5)
    s.setSuffix(" 秒")
    return s


class ProcessDialog(QDialog):
    """
    Edits one process: its before/after windows, type, narration text and
    improvement note. values() returns keyword arguments for
    LibraryStore.create_process / update_process.
    """

    def __init__(self, parent=None, process: Optional[Process] = None):
        super().__init__(parent)
        self.setWindowTitle("编辑工序" if process else "新建工序")
        self.setModal(True)
        self.resize(560, 560)
        self._build_ui()
        if process is not None:
            self._load(process)
        self._on_type_changed()
        self._on_mode_changed()

    def _build_ui(self):
        layout = QVBoxLayout(self)
        form = QFormLayout()

        self.name_edit = QLineEdit()
        self.combo_type = QComboBox()
        for pt, label in PROCESS_TYPE_LABELS:
            self.combo_type.addItem(label, pt.value)
        self.combo_type.currentIndexChanged.connect(self._on_type_changed)

        self.before_start = _time_spin()
        self.before_end = _time_spin()
        self.after_start = _time_spin()
        self.after_end = _time_spin()

        self.combo_mode = QComboBox()
        for mode, label in SUBTITLE_MODE_LABELS:
            self.combo_mode.addItem(label, mode.value)
        self.combo_mode.currentIndexChanged.connect(self._on_mode_changed)

        self.subtitle_edit = QPlainTextEdit()
        self.subtitle_edit.setPlaceholderText("解说词")
        self.subtitle_after_edit = QPlainTextEdit()
        self.subtitle_after_edit.setPlaceholderText("改善后解说词")
        self.note_edit = QLineEdit()

        form.addRow("工序名称：", self.name_edit)
        form.addRow("类型：", self.combo_type)
        form.addRow("改善前开始：", self.before_start)
        form.addRow("改善前结束：", self.before_end)
        form.addRow("改善后开始：", self.after_start)
        form.addRow("改善后结束：", self.after_end)
        form.addRow("解说模式：", self.combo_mode)
        form.addRow("解说词：", self.subtitle_edit)
        form.addRow("改善后解说词：", self.subtitle_after_edit)
        form.addRow("改善说明：", self.note_edit)
        layout.addLayout(form)

        buttons = QDialogButtonBox(QDialogButtonBox.Ok | QDialogButtonBox.Cancel)
        buttons.accepted.connect(self._on_accept)
        buttons.rejected.connect(self.reject)
        layout.addWidget(buttons)

    def _load(self, p: Process) -> None:
        self.name_edit.setText(p.name)
        self.combo_type.setCurrentIndex(max(0, self.combo_type.findData(p.process_type.value)))
        self.before_start.setValue(p.before_start_time)
        self.before_end.setValue(p.before_end_time)
        self.after_start.setValue(p.after_start_time)
        self.after_end.setValue(p.after_end_time)
        self.combo_mode.setCurrentIndex(max(0, self.combo_mode.findData(p.subtitle_mode.value)))
        self.subtitle_edit.setPlainText(p.subtitle_text)
        self.subtitle_after_edit.setPlainText(p.subtitle_after)
        self.note_edit.setText(p.improvement_note)

    # ---------------- Public API ----------------

    def process_type(self) -> ProcessType:
        return ProcessType.parse(self.combo_type.currentData())

    def values(self) -> Dict:
        return {
            "name": self.name_edit.text().strip(),
            "process_type": self.process_type(),
            "before_start_time": self.before_start.value(),
            "before_end_time": self.before_end.value(),
            "after_start_time": self.after_start.value(),
            "after_end_time": self.after_end.value(),
            "subtitle_mode": SubtitleMode.parse(self.combo_mode.currentData()),
            "subtitle_text": self.subtitle_edit.toPlainText().strip(),
            "subtitle_after": self.subtitle_after_edit.toPlainText().strip(),
            "improvement_note": self.note_edit.text().strip(),
        }

    # ---------------- Actions ----------------

    def _on_type_changed(self, *_):
        pt = self.process_type()
        self.before_start.setEnabled(pt != ProcessType.NEW_STEP)
        self.before_end.setEnabled(pt != ProcessType.NEW_STEP)
        self.after_start.setEnabled(pt != ProcessType.CANCELLED)
        self.after_end.setEnabled(pt != ProcessType.CANCELLED)

    def _on_mode_changed(self, *_):
        separate = SubtitleMode.parse(self.combo_mode.currentData()) == SubtitleMode.SEPARATE
        self.subtitle_after_edit.setEnabled(separate)

    def _on_accept(self):
        vals = self.values()
        if not vals["name"]:
            QMessageBox.warning(self, "缺少名称", "请输入工序名称。")
            return
        check = Process(
            id=0,
            stage_id=0,
            name=vals["name"],
            before_start_time=vals["before_start_time"],
            before_end_time=vals["before_end_time"],
            after_start_time=vals["after_start_time"],
            after_end_time=vals["after_end_time"],
            process_type=vals["process_type"],
        )
        try:
            check.validate()
        except ValueError as e:
            QMessageBox.warning(self, "时间区间无效", str(e))
            return
        self.accept()
