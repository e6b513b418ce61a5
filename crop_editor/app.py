"""
Application entry point, main window and dark-theme stylesheet.

Usage:
    python -m crop_editor [IMAGE]
    crop-editor [IMAGE]          (after pip install)
"""

import logging
import sys
from pathlib import Path

from PyQt6.QtWidgets import (
    QApplication, QMainWindow, QFileDialog, QMessageBox, QStatusBar,
    QToolBar, QCheckBox, QComboBox, QLabel,
)
from PyQt6.QtGui import QAction, QKeySequence

from crop_editor.config import APP_NAME, ASPECT_PRESETS, IMAGE_EXTENSIONS
from crop_editor.crop_widget import CropEditorWidget
from crop_editor.models import CropStatus, EditorOptions, Rect

logger = logging.getLogger(__name__)

DARK_STYLESHEET = """
    QMainWindow { background: #2b2b2b; }
    QWidget { background: #2b2b2b; color: #ddd; font-size: 10pt; }
    QPushButton { background: #3a3a3a; border: 1px solid #555; border-radius: 4px; padding: 6px 12px; }
    QPushButton:hover { background: #4a4a4a; }
    QPushButton:pressed { background: #2a2a2a; }
    QToolBar { background: #333; border-bottom: 1px solid #444; spacing: 4px; padding: 4px; }
    QStatusBar { background: #333; border-top: 1px solid #444; }
"""

_STATUS_MESSAGES = {
    CropStatus.IDLE: "Open an image to begin.",
    CropStatus.LOADING: "Loading image…",
    CropStatus.READY: "Drag the selection or its corners, then Crop & Save.",
    CropStatus.CROPPING: "Cropping…",
}


class MainWindow(QMainWindow):
    def __init__(self, options: EditorOptions | None = None):
        super().__init__()
        self.setWindowTitle("Crop Editor")
        self.setMinimumSize(640, 480)
        self.resize(1024, 768)

        self._source_path: Path | None = None

        self._editor = CropEditorWidget(options or EditorOptions(base_color=(30, 30, 30, 255)))
        self._editor.status_changed.connect(self._on_status_changed)
        self._editor.moved.connect(self._on_moved)
        self._editor.cropped.connect(self._on_cropped)
        self._editor.error.connect(self._on_error)
        self.setCentralWidget(self._editor)

        self._build_toolbar()

        self._status = QStatusBar()
        self.setStatusBar(self._status)
        self._size_label = QLabel("")
        self._status.addPermanentWidget(self._size_label)
        self._status.showMessage(_STATUS_MESSAGES[CropStatus.IDLE])

    # =========================================================================
    # UI construction
    # =========================================================================

    def _build_toolbar(self):
        toolbar = QToolBar("Main")
        toolbar.setMovable(False)
        self.addToolBar(toolbar)

        act_open = QAction("📂 Open Image", self)
        act_open.setShortcut(QKeySequence.StandardKey.Open)
        act_open.triggered.connect(self._select_image)
        toolbar.addAction(act_open)

        toolbar.addSeparator()

        toolbar.addWidget(QLabel(" Aspect: "))
        self._aspect_combo = QComboBox()
        for label, ratio in ASPECT_PRESETS:
            self._aspect_combo.addItem(label, ratio)
        self._aspect_combo.currentIndexChanged.connect(self._on_aspect_changed)
        toolbar.addWidget(self._aspect_combo)

        self._circle_check = QCheckBox("Circle")
        self._circle_check.setStyleSheet("QCheckBox { padding: 4px 8px; }")
        self._circle_check.toggled.connect(self._on_circle_toggled)
        toolbar.addWidget(self._circle_check)

        toolbar.addSeparator()

        act_crop = QAction("✂ Crop && Save", self)
        act_crop.setShortcut(QKeySequence.StandardKey.Save)
        act_crop.triggered.connect(self._crop)
        toolbar.addAction(act_crop)
        self._act_crop = act_crop
        self._act_crop.setEnabled(False)

    # =========================================================================
    # Actions
    # =========================================================================

    def _select_image(self):
        patterns = " ".join(f"*{ext}" for ext in sorted(IMAGE_EXTENSIONS))
        path, _ = QFileDialog.getOpenFileName(self, "Open Image", "", f"Images ({patterns})")
        if path:
            self.open_image(Path(path))

    def open_image(self, path: Path):
        try:
            data = path.read_bytes()
        except OSError as exc:
            QMessageBox.critical(self, "Open Failed", f"Could not read {path}:\n{exc}")
            return
        logger.info("Opening %s (%d bytes)", path, len(data))
        self._source_path = path
        self.setWindowTitle(f"Crop Editor - {path.name}")
        self._editor.set_image_bytes(data)

    def _on_aspect_changed(self, index: int):
        self._editor.set_aspect_ratio(self._aspect_combo.itemData(index))

    def _on_circle_toggled(self, checked: bool):
        self._aspect_combo.setEnabled(not checked)
        self._editor.set_circle_mode(checked)

    def _crop(self):
        self._editor.crop()

    # =========================================================================
    # Editor callbacks
    # =========================================================================

    def _on_status_changed(self, status: CropStatus):
        self._status.showMessage(_STATUS_MESSAGES[status])
        self._act_crop.setEnabled(status is CropStatus.READY)

    def _on_moved(self, rect: Rect):
        controller = self._editor.controller
        if controller.source_image is None or controller.image_rect is None:
            return
        pixel = controller.pixel_rect()
        self._size_label.setText(f"{int(pixel.width)} × {int(pixel.height)}")

    def _on_cropped(self, data: bytes):
        stem = self._source_path.stem if self._source_path else "image"
        default = str(Path.home() / f"{stem}-cropped.png")
        path, _ = QFileDialog.getSaveFileName(self, "Save Cropped Image", default, "PNG (*.png)")
        if not path:
            return
        try:
            Path(path).write_bytes(data)
        except OSError as exc:
            logger.error("Could not write %s: %s", path, exc)
            QMessageBox.critical(self, "Save Failed", f"Failed to save cropped image:\n{exc}")
            return
        logger.info("Saved cropped image to %s", path)
        self._status.showMessage(f"Saved {path}", 5000)

    def _on_error(self, message: str):
        QMessageBox.warning(self, "Crop Editor", message)

    def closeEvent(self, event):
        self._editor.shutdown()
        super().closeEvent(event)


def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    app = QApplication(sys.argv)
    app.setApplicationName(APP_NAME)
    app.setStyleSheet(DARK_STYLESHEET)

    window = MainWindow()
    window.show()
    if len(sys.argv) > 1:
        window.open_image(Path(sys.argv[1]))

    try:
        sys.exit(app.exec())
    except (SystemExit, KeyboardInterrupt):
        pass


if __name__ == "__main__":
    main()
