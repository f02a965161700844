# kaizen_player/dialogs/stage_dialog.py
from __future__ import annotations

from typing import Dict, Optional

from PyQt5.QtCore import Qt
from PyQt5.QtWidgets import (
    QDialog,
    QDialogButtonBox,
    QFileDialog,
    QFormLayout,
    QHBoxLayout,
    QLineEdit,
    QMessageBox,
    QPushButton,
    QVBoxLayout,
    QWidget,
)

from ..domain import Stage, VideoType
from ..media import validate_local_video_path


VIDEO_FILTER = "Video Files (*.mp4 *.mov *.mkv *.avi *.m4v *.webm);;All Files (*)"


class StageDialog(QDialog):
    """
    Collects a stage name and its two recordings.

    Does NOT write anything itself; the main window commits the values via
    the library store.
    """

    def __init__(self, parent=None, stage: Optional[Stage] = None):
        super().__init__(parent)
        self.setWindowTitle("编辑阶段" if stage else "新建阶段")
        self.setModal(True)
        self.resize(640, 220)

        self._paths: Dict[VideoType, QLineEdit] = {}
        self._build_ui()

        if stage is not None:
            self.name_edit.setText(stage.name)
            self.desc_edit.setText(stage.description)
            self._paths[VideoType.BEFORE].setText(stage.before_video_path)
            self._paths[VideoType.AFTER].setText(stage.after_video_path)

    # ---------------- UI ----------------

    def _build_ui(self):
        layout = QVBoxLayout(self)
        layout.setSpacing(10)

        form = QFormLayout()
        self.name_edit = QLineEdit()
        self.name_edit.setPlaceholderText("例如：第一阶段")
        self.desc_edit = QLineEdit()
        form.addRow("阶段名称：", self.name_edit)
        form.addRow("说明：", self.desc_edit)

        for vt, label in ((VideoType.BEFORE, "改善前视频："), (VideoType.AFTER, "改善后视频：")):
            row = QWidget()
            row_lay = QHBoxLayout(row)
            row_lay.setContentsMargins(0, 0, 0, 0)
            edit = QLineEdit()
            btn = QPushButton("浏览…")
            btn.setCursor(Qt.PointingHandCursor)
            btn.clicked.connect(lambda _=False, _vt=vt: self._browse(_vt))
            row_lay.addWidget(edit, stretch=1)
            row_lay.addWidget(btn)
            form.addRow(label, row)
            self._paths[vt] = edit
        layout.addLayout(form)

        buttons = QDialogButtonBox(QDialogButtonBox.Ok | QDialogButtonBox.Cancel)
        buttons.accepted.connect(self._on_accept)
        buttons.rejected.connect(self.reject)
        layout.addWidget(buttons)

    # ---------------- Public API ----------------

    def values(self) -> Dict[str, str]:
        return {
            "name": self.name_edit.text().strip(),
            "description": self.desc_edit.text().strip(),
            "before_video_path": self._paths[VideoType.BEFORE].text().strip(),
            "after_video_path": self._paths[VideoType.AFTER].text().strip(),
        }

    # ---------------- Actions ----------------

    def _browse(self, vt: VideoType):
        path, _ = QFileDialog.getOpenFileName(self, "选择视频文件", "", VIDEO_FILTER)
        if path:
            self._paths[vt].setText(path)

    def _on_accept(self):
        vals = self.values()
        if not vals["name"]:
            QMessageBox.warning(self, "缺少名称", "请输入阶段名称。")
            return
        # An empty path is allowed (recording added later); a given one must be valid.
        for key in ("before_video_path", "after_video_path"):
            if vals[key]:
                ok, msg = validate_local_video_path(vals[key])
                if not ok:
                    QMessageBox.warning(self, "无效文件", msg)
                    return
        self.accept()
