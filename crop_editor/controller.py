"""
Selection controller: owns the editor state and routes intents.

The controller holds the displayed image rectangle, the selection
rectangle, the effective aspect ratio and the ``CropStatus``.  Geometry
intents are applied synchronously through the calculator of the current
fit mode.  Decode and crop jobs go to the ``PixelPipeline``; their
results are applied through ``dispatch`` only if the finishing future is
still the latest one of its kind, so a slow, superseded job can never
overwrite newer state.

Results are only ever applied on the thread that created the controller.
Without a ``dispatch`` a completion arriving on a pipeline thread is queued
until that thread calls ``process_pending``.  This module is Qt-free; the
Qt adapter passes a ``dispatch`` that hops back to the GUI thread.
"""

import logging
import queue
import threading
from collections.abc import Callable
from concurrent.futures import Future
from functools import partial, wraps

from crop_editor.config import DEFAULT_INITIAL_SIZE
from crop_editor.errors import CropEditorError, DecodeError, InvalidStateError
from crop_editor.geometry import (
    calculator_for, from_pixel_rect, resolve_fit, to_pixel_rect,
)
from crop_editor.models import (
    Corner, CropStatus, EditorOptions, FitMode, Rect, Size, SourceImage,
)
from crop_editor.worker import PixelPipeline

logger = logging.getLogger(__name__)


def _ignore_invalid_state(method):
    """Log and drop calls made before an image is ready."""
    @wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except InvalidStateError as exc:
            logger.warning("Ignoring %s: %s", method.__name__, exc)
            return None
    return wrapper


class SelectionController:
    """State machine behind one crop editor."""

    def __init__(
        self,
        options: EditorOptions | None = None,
        pipeline: PixelPipeline | None = None,
        dispatch: Callable[[Callable[[], None]], None] | None = None,
        viewport: Size | None = None,
        on_status_changed: Callable[[CropStatus], None] | None = None,
        on_moved: Callable[[Rect], None] | None = None,
        on_cropped: Callable[[bytes], None] | None = None,
        on_error: Callable[[Exception], None] | None = None,
    ):
        self._options = options or EditorOptions()
        self._pipeline = pipeline or PixelPipeline()
        self._owner_thread = threading.get_ident()
        self._queued_calls: queue.SimpleQueue = queue.SimpleQueue()
        self._dispatch = dispatch or self._dispatch_to_owner
        self._closed = False
        self._on_status_changed = on_status_changed
        self._on_moved = on_moved
        self._on_cropped = on_cropped
        self._on_error = on_error

        self._status = CropStatus.IDLE
        self._status_before_load = CropStatus.IDLE
        self._viewport = viewport if viewport is not None and not viewport.is_empty else None
        self._source: SourceImage | None = None
        self._fit_mode = FitMode.FIT_WIDTH
        self._image_rect: Rect | None = None
        self._rect: Rect | None = None

        # Caller-requested ratio; circle mode overrides it without losing it
        self._requested_aspect_ratio = self._options.aspect_ratio
        self._circle_mode = self._options.with_circle_ui

        # Staleness tokens: only the latest future of each kind may apply
        self._pending_decode: Future | None = None
        self._pending_crop: Future | None = None

    # =========================================================================
    # Read-only state
    # =========================================================================

    @property
    def options(self) -> EditorOptions:
        return self._options

    @property
    def status(self) -> CropStatus:
        return self._status

    @property
    def rect(self) -> Rect | None:
        """Current selection in viewport space."""
        return self._rect

    @property
    def image_rect(self) -> Rect | None:
        return self._image_rect

    @property
    def fit_mode(self) -> FitMode:
        return self._fit_mode

    @property
    def viewport(self) -> Size | None:
        return self._viewport

    @property
    def source_image(self) -> SourceImage | None:
        return self._source

    @property
    def circle_mode(self) -> bool:
        return self._circle_mode

    @property
    def aspect_ratio(self) -> float | None:
        """Effective aspect ratio (1.0 in circle mode)."""
        return 1.0 if self._circle_mode else self._requested_aspect_ratio

    @property
    def calculator(self):
        return calculator_for(self._fit_mode)

    # =========================================================================
    # Internal helpers
    # =========================================================================

    def _dispatch_to_owner(self, fn: Callable[[], None]) -> None:
        if threading.get_ident() == self._owner_thread:
            fn()
        else:
            self._queued_calls.put(fn)

    def process_pending(self) -> int:
        """Apply results that finished on pipeline threads.

        Must be called from the thread that created the controller.
        Returns the number of continuations run.
        """
        applied = 0
        while True:
            try:
                fn = self._queued_calls.get_nowait()
            except queue.Empty:
                return applied
            fn()
            applied += 1

    def _set_status(self, status: CropStatus) -> None:
        if status == self._status:
            return
        logger.debug("Status %s -> %s", self._status.value, status.value)
        self._status = status
        if self._on_status_changed:
            self._on_status_changed(status)

    def _store_rect(self, rect: Rect) -> None:
        self._rect = rect
        if self._on_moved:
            self._on_moved(rect)

    def _report_error(self, exc: Exception) -> None:
        if self._on_error:
            self._on_error(exc)

    def _require_image(self) -> None:
        if self._source is None:
            raise InvalidStateError("no image has been decoded yet")
        if self._image_rect is None:
            raise InvalidStateError("viewport size is not known yet")

    def _screen_size_ratio(self) -> float:
        return self.calculator.screen_size_ratio(self._source.size, self._viewport)

    def _refit(self) -> None:
        """Recompute fit mode and image rectangle for the current pairing."""
        if self._source is None or self._viewport is None:
            return
        self._fit_mode, self._image_rect = resolve_fit(self._viewport, self._source.size.aspect_ratio)
        logger.debug("Fit %s: image rect %s", self._fit_mode.value, self._image_rect)

    def _reset_selection(self, area: Rect | None = None) -> None:
        """Replace the selection with a centered initial rect, or with *area* (pixel space)."""
        if area is None:
            initial_size = self._options.initial_size or DEFAULT_INITIAL_SIZE
            rect = self.calculator.initial_selection_rect(
                self._viewport, self._image_rect, self.aspect_ratio, initial_size,
            )
        else:
            rect = from_pixel_rect(area, self._image_rect, self._screen_size_ratio())
            rect = self.calculator.correct(rect, self._image_rect)
        self._store_rect(rect)

    # =========================================================================
    # Layout
    # =========================================================================

    def on_viewport_resized(self, viewport: Size) -> None:
        """Called by the UI layer whenever the editor area changes size.

        An existing selection keeps covering the same source pixels.
        """
        if viewport.is_empty or viewport == self._viewport:
            return
        previous_area = None
        if self._rect is not None and self._image_rect is not None:
            previous_area = to_pixel_rect(self._rect, self._image_rect, self._screen_size_ratio())

        self._viewport = viewport
        self._refit()
        if self._image_rect is None:
            return
        if previous_area is None:
            self._reset_selection(self._options.initial_area)
        else:
            rect = from_pixel_rect(previous_area, self._image_rect, self._screen_size_ratio())
            self._store_rect(self.calculator.correct(rect, self._image_rect))

    # =========================================================================
    # Image loading
    # =========================================================================

    def set_image(self, data: bytes) -> Future:
        """Submit new source bytes; the editor becomes READY once decoded."""
        if self._status is CropStatus.CROPPING:
            self._status_before_load = CropStatus.READY
        elif self._status is not CropStatus.LOADING:
            self._status_before_load = self._status
        # A crop of the previous image must not be delivered any more
        self._pending_crop = None
        self._set_status(CropStatus.LOADING)

        future = self._pipeline.submit_decode(data)
        self._pending_decode = future
        future.add_done_callback(lambda f: self._dispatch(partial(self._on_decoded, f)))
        return future

    def _on_decoded(self, future: Future) -> None:
        if self._closed or future is not self._pending_decode:
            logger.debug("Discarding stale decode result")
            return
        self._pending_decode = None

        exc = future.exception()
        if exc is not None:
            logger.error("Image decode failed: %s", exc)
            self._set_status(self._status_before_load)
            if not isinstance(exc, CropEditorError):
                exc = DecodeError(str(exc))
            self._report_error(exc)
            return

        self._source = future.result()
        self._rect = None
        self._image_rect = None
        self._refit()
        if self._image_rect is not None:
            self._reset_selection(self._options.initial_area)
        self._set_status(CropStatus.READY)

    # =========================================================================
    # Selection intents
    # =========================================================================

    @_ignore_invalid_state
    def set_aspect_ratio(self, aspect_ratio: float | None) -> Rect:
        """Change the requested ratio and reset to a centered selection."""
        if aspect_ratio is not None and aspect_ratio <= 0:
            raise ValueError(f"aspect_ratio must be positive, got {aspect_ratio!r}")
        self._requested_aspect_ratio = aspect_ratio
        self._require_image()
        self._reset_selection()
        return self._rect

    @_ignore_invalid_state
    def set_circle_mode(self, enabled: bool) -> Rect:
        """Toggle the circular constraint and reset to a centered selection."""
        self._circle_mode = bool(enabled)
        self._require_image()
        self._reset_selection()
        return self._rect

    @_ignore_invalid_state
    def set_rect(self, rect: Rect) -> Rect:
        """Apply an externally supplied viewport-space rectangle."""
        self._require_image()
        self._store_rect(self.calculator.correct(rect, self._image_rect))
        return self._rect

    @_ignore_invalid_state
    def set_area(self, area: Rect) -> Rect | None:
        """Apply an externally supplied source-pixel-space area."""
        self._require_image()
        if self._options.fixed_area:
            logger.warning("Ignoring set_area: crop area is fixed")
            return None
        self._reset_selection(area)
        return self._rect

    @_ignore_invalid_state
    def move_selection(self, dx: float, dy: float) -> Rect:
        """Drag the whole selection by a viewport-space delta."""
        self._require_image()
        self._store_rect(self.calculator.move_selection(self._rect, dx, dy, self._image_rect))
        return self._rect

    @_ignore_invalid_state
    def move_corner(self, corner: Corner, dx: float, dy: float) -> Rect | None:
        """Drag one corner handle by a viewport-space delta."""
        self._require_image()
        if self._options.fixed_area:
            return None
        rect = self.calculator.move_corner(
            corner, self._rect, dx, dy, self._image_rect, self.aspect_ratio,
        )
        self._store_rect(rect)
        return rect

    def pixel_rect(self) -> Rect:
        """Current selection in source-pixel space."""
        self._require_image()
        return to_pixel_rect(self._rect, self._image_rect, self._screen_size_ratio())

    # =========================================================================
    # Cropping
    # =========================================================================

    @_ignore_invalid_state
    def request_crop(self, circular: bool | None = None) -> Future:
        """Crop the current selection in the background.

        *circular* defaults to the current circle mode.  The PNG bytes are
        delivered to ``on_cropped``.
        """
        self._require_image()
        if self._status is CropStatus.LOADING:
            raise InvalidStateError("a new image is still loading")
        if circular is None:
            circular = self._circle_mode
        rect = self.pixel_rect()
        self._set_status(CropStatus.CROPPING)

        future = self._pipeline.submit_crop(self._source, rect, circular)
        self._pending_crop = future
        future.add_done_callback(lambda f: self._dispatch(partial(self._on_cropped_done, f)))
        return future

    def _on_cropped_done(self, future: Future) -> None:
        if self._closed or future is not self._pending_crop:
            logger.debug("Discarding stale crop result")
            return
        self._pending_crop = None

        exc = future.exception()
        self._set_status(CropStatus.READY)
        if exc is not None:
            logger.error("Crop failed: %s", exc)
            self._report_error(exc)
            return
        if self._on_cropped:
            self._on_cropped(future.result())

    def close(self) -> None:
        """Release the pipeline's worker threads; results still in flight are dropped."""
        self._closed = True
        self._pending_decode = None
        self._pending_crop = None
        while not self._queued_calls.empty():
            self._queued_calls.get_nowait()
        self._pipeline.shutdown(wait=False)
