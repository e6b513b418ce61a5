"""
Interactive crop editor widget and Qt image helpers.

This module is the only place where Qt meets the crop engine.  The widget
reports its size and the user's drag deltas to a ``SelectionController``
and paints whatever state the controller holds: the fitted image, a mask
with a rectangular or circular cut-out, and the four corner dots.
Background results are hopped back to the GUI thread through a queued
signal before the controller applies them.
"""

import logging

from PIL import Image
from PyQt6.QtWidgets import QWidget, QSizePolicy
from PyQt6.QtCore import Qt, QRectF, QPointF, pyqtSignal
from PyQt6.QtGui import (
    QPainter, QPainterPath, QPixmap, QColor, QBrush, QImage,
    QKeyEvent, QMouseEvent, QPaintEvent, QResizeEvent,
)

from crop_editor.config import DOT_COLOR, DOT_PADDING, DOT_TOTAL_SIZE, NUDGE_LARGE, NUDGE_SMALL
from crop_editor.controller import SelectionController
from crop_editor.models import Corner, CropStatus, EditorOptions, Rect, Size
from crop_editor.worker import PixelPipeline

logger = logging.getLogger(__name__)


# =============================================================================
# Qt ↔ PIL helpers
# =============================================================================

def pil_to_qpixmap(pil_img: Image.Image) -> QPixmap:
    """Convert a PIL Image to QPixmap."""
    img_rgba = pil_img.convert("RGBA")
    data = img_rgba.tobytes("raw", "RGBA")
    qimg = QImage(data, img_rgba.width, img_rgba.height, QImage.Format.Format_RGBA8888)
    # QImage does not own *data*; copy before it goes out of scope
    return QPixmap.fromImage(qimg.copy())


def _qcolor(rgba: tuple[int, int, int, int]) -> QColor:
    return QColor(*rgba)


def _qrect(rect: Rect) -> QRectF:
    return QRectF(rect.left, rect.top, rect.width, rect.height)


# =============================================================================
# Crop Editor Widget: image with an interactive selection overlay
# =============================================================================

class CropEditorWidget(QWidget):
    """Widget that displays an image with a draggable, resizable selection."""

    status_changed = pyqtSignal(object)   # CropStatus
    moved = pyqtSignal(object)            # Rect in widget coordinates
    cropped = pyqtSignal(bytes)
    error = pyqtSignal(str)

    # Carries controller continuations from pipeline threads to the GUI thread
    _invoke = pyqtSignal(object)

    MODE_NONE = 0
    MODE_MOVE = 1
    MODE_RESIZE = 2

    def __init__(self, options: EditorOptions | None = None, pipeline: PixelPipeline | None = None, parent=None):
        super().__init__(parent)
        self.setMinimumSize(200, 200)
        self.setFocusPolicy(Qt.FocusPolicy.StrongFocus)
        self.setSizePolicy(QSizePolicy.Policy.Expanding, QSizePolicy.Policy.Expanding)

        self._invoke.connect(self._run_invoked)
        self._controller = SelectionController(
            options=options,
            pipeline=pipeline,
            dispatch=self._invoke.emit,
            on_status_changed=self._on_status_changed,
            on_moved=self._on_moved,
            on_cropped=self.cropped.emit,
            on_error=lambda exc: self.error.emit(str(exc)),
        )
        self._pixmap: QPixmap | None = None
        self._pixmap_source = None

        # Interaction state
        self._mode = self.MODE_NONE
        self._active_corner: Corner | None = None
        self._last_pos = QPointF()

    @property
    def controller(self) -> SelectionController:
        return self._controller

    # --- Public API ---

    def set_image_bytes(self, data: bytes):
        """Load new source bytes; decoding happens in the background."""
        self._controller.on_viewport_resized(Size(self.width(), self.height()))
        self._controller.set_image(data)

    def set_aspect_ratio(self, aspect_ratio: float | None):
        self._controller.set_aspect_ratio(aspect_ratio)

    def set_circle_mode(self, enabled: bool):
        self._controller.set_circle_mode(enabled)
        self.update()

    def crop(self, circular: bool | None = None):
        """Request a crop; the PNG bytes arrive through ``cropped``."""
        self._controller.request_crop(circular)

    def shutdown(self):
        self._controller.close()

    # --- Controller callbacks (GUI thread) ---

    def _run_invoked(self, fn):
        fn()

    def _on_status_changed(self, status: CropStatus):
        source = self._controller.source_image
        if source is not None and source is not self._pixmap_source:
            self._pixmap = pil_to_qpixmap(source.pixels)
            self._pixmap_source = source
        self.status_changed.emit(status)
        self.update()

    def _on_moved(self, rect: Rect):
        self.moved.emit(rect)
        self.update()

    # --- Handle hit testing ---

    def _dot_rects(self) -> dict[Corner, QRectF]:
        """Return widget-coordinate rectangles for the 4 corner dots."""
        rect = self._controller.rect
        if rect is None or self._controller.options.fixed_area:
            return {}
        half = DOT_TOTAL_SIZE / 2
        rects = {}
        for corner in Corner:
            x, y = rect.corner(corner)
            rects[corner] = QRectF(x - half, y - half, DOT_TOTAL_SIZE, DOT_TOTAL_SIZE)
        return rects

    def _hit_test(self, pos: QPointF) -> tuple[int, Corner | None]:
        """Returns (mode, corner) for a widget position."""
        for corner, dot in self._dot_rects().items():
            if dot.contains(pos):
                return self.MODE_RESIZE, corner
        rect = self._controller.rect
        if rect is not None and _qrect(rect).contains(pos):
            return self.MODE_MOVE, None
        return self.MODE_NONE, None

    # --- Painting ---

    def paintEvent(self, event: QPaintEvent):
        painter = QPainter(self)
        painter.setRenderHint(QPainter.RenderHint.SmoothPixmapTransform)
        painter.setRenderHint(QPainter.RenderHint.Antialiasing)
        options = self._controller.options
        painter.fillRect(self.rect(), _qcolor(options.base_color))

        image_rect = self._controller.image_rect
        selection = self._controller.rect
        if self._controller.status is CropStatus.LOADING or self._pixmap is None or image_rect is None:
            painter.setPen(QColor(128, 128, 128))
            loading = self._controller.status is CropStatus.LOADING
            msg = "Loading image…" if loading else "No image loaded"
            painter.drawText(self.rect(), Qt.AlignmentFlag.AlignCenter, msg)
            painter.end()
            return

        painter.drawPixmap(_qrect(image_rect), self._pixmap, QRectF(self._pixmap.rect()))

        if selection is not None:
            # Mask everything but the selection
            mask = QPainterPath()
            mask.setFillRule(Qt.FillRule.OddEvenFill)
            mask.addRect(QRectF(self.rect()))
            if self._controller.circle_mode:
                cx, cy = selection.center
                radius = selection.width / 2
                mask.addEllipse(QPointF(cx, cy), radius, radius)
            else:
                mask.addRect(_qrect(selection))
            painter.fillPath(mask, QBrush(_qcolor(options.mask_color)))

            # Corner dots
            painter.setPen(Qt.PenStyle.NoPen)
            painter.setBrush(QBrush(_qcolor(DOT_COLOR)))
            for dot in self._dot_rects().values():
                painter.drawEllipse(dot.adjusted(DOT_PADDING, DOT_PADDING, -DOT_PADDING, -DOT_PADDING))

        painter.end()

    def resizeEvent(self, event: QResizeEvent):
        self._controller.on_viewport_resized(Size(event.size().width(), event.size().height()))
        super().resizeEvent(event)

    # --- Mouse interaction ---

    def mousePressEvent(self, event: QMouseEvent):
        if event.button() != Qt.MouseButton.LeftButton or self._controller.status is not CropStatus.READY:
            return
        pos = event.position()
        self._mode, self._active_corner = self._hit_test(pos)
        self._last_pos = pos

    def mouseMoveEvent(self, event: QMouseEvent):
        pos = event.position()

        # Update cursor
        if self._mode == self.MODE_NONE:
            mode, corner = self._hit_test(pos)
            if mode == self.MODE_RESIZE:
                if corner in (Corner.TOP_LEFT, Corner.BOTTOM_RIGHT):
                    self.setCursor(Qt.CursorShape.SizeFDiagCursor)
                else:
                    self.setCursor(Qt.CursorShape.SizeBDiagCursor)
            elif mode == self.MODE_MOVE:
                self.setCursor(Qt.CursorShape.SizeAllCursor)
            else:
                self.setCursor(Qt.CursorShape.ArrowCursor)
            return

        delta = pos - self._last_pos
        self._last_pos = pos
        if self._mode == self.MODE_MOVE:
            self._controller.move_selection(delta.x(), delta.y())
        elif self._mode == self.MODE_RESIZE:
            self._controller.move_corner(self._active_corner, delta.x(), delta.y())

    def mouseReleaseEvent(self, event: QMouseEvent):
        if event.button() == Qt.MouseButton.LeftButton:
            self._mode = self.MODE_NONE
            self._active_corner = None

    # --- Keyboard nudge ---

    def keyPressEvent(self, event: QKeyEvent):
        if self._controller.status is not CropStatus.READY:
            super().keyPressEvent(event)
            return
        amount = NUDGE_LARGE if event.modifiers() & Qt.KeyboardModifier.ShiftModifier else NUDGE_SMALL
        deltas = {
            Qt.Key.Key_Left: (-amount, 0),
            Qt.Key.Key_Right: (amount, 0),
            Qt.Key.Key_Up: (0, -amount),
            Qt.Key.Key_Down: (0, amount),
        }
        delta = deltas.get(event.key())
        if delta is None:
            super().keyPressEvent(event)
            return
        self._controller.move_selection(*delta)
