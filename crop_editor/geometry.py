"""
Crop-geometry engine: fit resolution and selection-rectangle math.

``resolve_fit`` decides how a source image is fitted into the viewport.
The two calculator strategies (fit-width and fit-height) share the
selection math and differ only in their dominant axis, which drives the
displayed image rectangle and the viewport-to-pixel scale.

Every function here is pure: the same inputs always give the same Rect,
and every returned selection lies inside the image rectangle it was
computed against.  This module is Qt-free.
"""

from crop_editor.config import DEFAULT_INITIAL_SIZE, MIN_SELECTION_SIZE
from crop_editor.models import Corner, FitMode, Rect, Size


# =============================================================================
# Helpers
# =============================================================================
def _clamp(value: float, low: float, high: float) -> float:
    """Clamp *value* to [low, high]; *low* wins when the range is empty."""
    return max(low, min(value, high))


def _largest_with_ratio(bounds: Size, aspect_ratio: float) -> Size:
    """Largest size with *aspect_ratio* that fits inside *bounds*."""
    if bounds.aspect_ratio > aspect_ratio:
        return Size(bounds.height * aspect_ratio, bounds.height)
    return Size(bounds.width, bounds.width / aspect_ratio)


def to_pixel_rect(selection: Rect, image_rect: Rect, screen_size_ratio: float) -> Rect:
    """Map a viewport-space selection to source-pixel space."""
    return selection.translate(-image_rect.left, -image_rect.top).scale(screen_size_ratio)


def from_pixel_rect(area: Rect, image_rect: Rect, screen_size_ratio: float) -> Rect:
    """Map a source-pixel-space area to viewport space."""
    return area.scale(1 / screen_size_ratio).translate(image_rect.left, image_rect.top)


# =============================================================================
# Calculators
# =============================================================================
class Calculator:
    """Selection math shared by both fit modes.

    Subclasses define the dominant axis through ``image_rect`` and
    ``screen_size_ratio``.
    """

    fit_mode: FitMode

    def image_rect(self, viewport: Size, image_aspect_ratio: float) -> Rect:
        raise NotImplementedError

    def screen_size_ratio(self, image_size: Size, viewport: Size) -> float:
        raise NotImplementedError

    def initial_selection_rect(
        self,
        viewport: Size,
        image_rect: Rect,
        aspect_ratio: float | None,
        initial_size: float = DEFAULT_INITIAL_SIZE,
    ) -> Rect:
        """Centered selection, as large as *initial_size* allows.

        Without an aspect ratio the editor opens on a square; later drags
        stay unconstrained.
        """
        size = _largest_with_ratio(image_rect.size, aspect_ratio if aspect_ratio is not None else 1.0)
        width = size.width * initial_size
        height = size.height * initial_size
        return Rect.from_center(image_rect.center, width, height)

    def move_selection(self, current: Rect, dx: float, dy: float, image_rect: Rect) -> Rect:
        """Translate the whole selection, pinning it at the image edges per axis."""
        left = _clamp(current.left + dx, image_rect.left, image_rect.right - current.width)
        top = _clamp(current.top + dy, image_rect.top, image_rect.bottom - current.height)
        return Rect(left, top, current.width, current.height)

    def move_corner(
        self,
        corner: Corner,
        current: Rect,
        dx: float,
        dy: float,
        image_rect: Rect,
        aspect_ratio: float | None = None,
    ) -> Rect:
        """Resize from *corner*, keeping the opposite corner fixed."""
        pivot_x, pivot_y = current.corner(corner.opposite)
        drag_x, drag_y = current.corner(corner)
        drag_x = _clamp(drag_x + dx, image_rect.left, image_rect.right)
        drag_y = _clamp(drag_y + dy, image_rect.top, image_rect.bottom)

        # Room from the pivot to the image edge on the dragged side
        if corner.is_left:
            max_w = pivot_x - image_rect.left
            width = pivot_x - drag_x
        else:
            max_w = image_rect.right - pivot_x
            width = drag_x - pivot_x
        if corner.is_top:
            max_h = pivot_y - image_rect.top
            height = pivot_y - drag_y
        else:
            max_h = image_rect.bottom - pivot_y
            height = drag_y - pivot_y

        if aspect_ratio is None:
            # The image bounds win over the size floor
            width = min(max(width, MIN_SELECTION_SIZE), max_w)
            height = min(max(height, MIN_SELECTION_SIZE), max_h)
        else:
            width, height = self._fit_ratio(width, height, abs(dx) >= abs(dy), aspect_ratio, max_w, max_h)

        left = pivot_x - width if corner.is_left else pivot_x
        top = pivot_y - height if corner.is_top else pivot_y
        return Rect(left, top, width, height)

    @staticmethod
    def _fit_ratio(
        width: float,
        height: float,
        width_driven: bool,
        aspect_ratio: float,
        max_w: float,
        max_h: float,
    ) -> tuple[float, float]:
        """Derive the locked extent from the dominant one, then floor and shrink to the room."""
        if width_driven:
            height = width / aspect_ratio
        else:
            width = height * aspect_ratio

        if width < MIN_SELECTION_SIZE or height < MIN_SELECTION_SIZE:
            if aspect_ratio >= 1:
                height = MIN_SELECTION_SIZE
                width = height * aspect_ratio
            else:
                width = MIN_SELECTION_SIZE
                height = width / aspect_ratio

        if width > max_w:
            width = max_w
            height = width / aspect_ratio
        if height > max_h:
            height = max_h
            width = height * aspect_ratio
        return width, height

    def correct(self, rect: Rect, image_rect: Rect) -> Rect:
        """Clamp an externally supplied rectangle into the image rectangle."""
        width = min(rect.width, image_rect.width)
        height = min(rect.height, image_rect.height)
        left = _clamp(rect.left, image_rect.left, image_rect.right - width)
        top = _clamp(rect.top, image_rect.top, image_rect.bottom - height)
        return Rect(left, top, width, height)


class FitWidthCalculator(Calculator):
    """Image fills the viewport width and is centered vertically."""

    fit_mode = FitMode.FIT_WIDTH

    def image_rect(self, viewport: Size, image_aspect_ratio: float) -> Rect:
        height = viewport.width / image_aspect_ratio
        return Rect(0.0, (viewport.height - height) / 2, viewport.width, height)

    def screen_size_ratio(self, image_size: Size, viewport: Size) -> float:
        return image_size.width / viewport.width


class FitHeightCalculator(Calculator):
    """Image fills the viewport height and is centered horizontally."""

    fit_mode = FitMode.FIT_HEIGHT

    def image_rect(self, viewport: Size, image_aspect_ratio: float) -> Rect:
        width = viewport.height * image_aspect_ratio
        return Rect((viewport.width - width) / 2, 0.0, width, viewport.height)

    def screen_size_ratio(self, image_size: Size, viewport: Size) -> float:
        return image_size.height / viewport.height


_CALCULATORS = {
    FitMode.FIT_WIDTH: FitWidthCalculator(),
    FitMode.FIT_HEIGHT: FitHeightCalculator(),
}


def calculator_for(fit_mode: FitMode) -> Calculator:
    return _CALCULATORS[fit_mode]


# =============================================================================
# Fit resolution
# =============================================================================
def resolve_fit_mode(viewport: Size, image_aspect_ratio: float) -> FitMode:
    """Relatively taller images fit by height, wider (or equal) ones by width."""
    if image_aspect_ratio < viewport.aspect_ratio:
        return FitMode.FIT_HEIGHT
    return FitMode.FIT_WIDTH


def resolve_fit(viewport: Size, image_aspect_ratio: float) -> tuple[FitMode, Rect]:
    """Return the fit mode and the displayed image rectangle for a viewport."""
    mode = resolve_fit_mode(viewport, image_aspect_ratio)
    return mode, calculator_for(mode).image_rect(viewport, image_aspect_ratio)
