# kaizen_player/app.py
from __future__ import annotations

import sys
from typing import Optional

from PyQt5.QtWidgets import QApplication, QFileDialog, QMessageBox

from .logger import configure_logging, get_logger
from .main_window import MainWindow

log = get_logger(__name__)


def choose_root_dir(parent=None) -> Optional[str]:
    d = QFileDialog.getExistingDirectory(parent, "选择数据目录")
    return d or None


def run_app(root_dir: Optional[str] = None) -> int:
    configure_logging()
    app = QApplication(sys.argv)
    app.setApplicationName("Kaizen Player")

    win = MainWindow(root_dir=root_dir)
    win.show()
    log.info("Started with data root %s", root_dir or "(unset)")

    # If root not set, prompt once (non-blocking for main window usage)
    if not root_dir and not win.root_dir:
        QMessageBox.information(
            win,
            "选择数据目录",
            "请选择一个数据目录，用于保存项目库 library.json 和配置 config.json。",
        )
        d = choose_root_dir(win)
        if d:
            win.set_root_dir(d)

    return app.exec_()
