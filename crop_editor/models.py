"""
Data models shared by the geometry engine, the controller and the pipeline.

``Size`` and ``Rect`` are immutable float value types.  ``Rect`` is always
normalized: it never holds a negative width or height.  The enums describe
the fit mode of a displayed image, the four corner handles and the
lifecycle of an editor.  ``SourceImage`` wraps a decoded, upright Pillow
image and is never mutated after decode.

This module is Qt-free.
"""

from dataclasses import dataclass
from enum import Enum

from PIL import Image

from crop_editor.config import DEFAULT_BASE_COLOR, DEFAULT_MASK_COLOR


# =============================================================================
# Enums
# =============================================================================
class FitMode(Enum):
    """Which viewport dimension the displayed image fills exactly."""
    FIT_WIDTH = "fit_width"
    FIT_HEIGHT = "fit_height"


class Corner(Enum):
    TOP_LEFT = "top_left"
    TOP_RIGHT = "top_right"
    BOTTOM_LEFT = "bottom_left"
    BOTTOM_RIGHT = "bottom_right"

    @property
    def opposite(self) -> "Corner":
        return _OPPOSITE_CORNERS[self]

    @property
    def is_left(self) -> bool:
        return self in (Corner.TOP_LEFT, Corner.BOTTOM_LEFT)

    @property
    def is_top(self) -> bool:
        return self in (Corner.TOP_LEFT, Corner.TOP_RIGHT)


_OPPOSITE_CORNERS = {
    Corner.TOP_LEFT: Corner.BOTTOM_RIGHT,
    Corner.TOP_RIGHT: Corner.BOTTOM_LEFT,
    Corner.BOTTOM_LEFT: Corner.TOP_RIGHT,
    Corner.BOTTOM_RIGHT: Corner.TOP_LEFT,
}


class CropStatus(Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    CROPPING = "cropping"


# =============================================================================
# Value types
# =============================================================================
@dataclass(frozen=True)
class Size:
    width: float = 0.0
    height: float = 0.0

    @property
    def aspect_ratio(self) -> float:
        if self.height == 0:
            return 0.0
        return self.width / self.height

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle in either viewport or pixel space."""
    left: float = 0.0
    top: float = 0.0
    width: float = 0.0
    height: float = 0.0

    def __post_init__(self):
        # Normalize negative extents by flipping the origin
        if self.width < 0:
            object.__setattr__(self, "left", self.left + self.width)
            object.__setattr__(self, "width", -self.width)
        if self.height < 0:
            object.__setattr__(self, "top", self.top + self.height)
            object.__setattr__(self, "height", -self.height)

    @classmethod
    def from_ltrb(cls, left: float, top: float, right: float, bottom: float) -> "Rect":
        return cls(left, top, right - left, bottom - top)

    @classmethod
    def from_points(cls, a: tuple[float, float], b: tuple[float, float]) -> "Rect":
        """Rectangle spanned by two arbitrary opposite points."""
        return cls.from_ltrb(min(a[0], b[0]), min(a[1], b[1]), max(a[0], b[0]), max(a[1], b[1]))

    @classmethod
    def from_center(cls, center: tuple[float, float], width: float, height: float) -> "Rect":
        cx, cy = center
        return cls(cx - width / 2, cy - height / 2, width, height)

    @property
    def right(self) -> float:
        return self.left + self.width

    @property
    def bottom(self) -> float:
        return self.top + self.height

    @property
    def center(self) -> tuple[float, float]:
        return (self.left + self.width / 2, self.top + self.height / 2)

    @property
    def size(self) -> Size:
        return Size(self.width, self.height)

    @property
    def aspect_ratio(self) -> float:
        return self.size.aspect_ratio

    def corner(self, corner: Corner) -> tuple[float, float]:
        x = self.left if corner.is_left else self.right
        y = self.top if corner.is_top else self.bottom
        return (x, y)

    def translate(self, dx: float, dy: float) -> "Rect":
        return Rect(self.left + dx, self.top + dy, self.width, self.height)

    def scale(self, factor: float) -> "Rect":
        return Rect(self.left * factor, self.top * factor, self.width * factor, self.height * factor)

    def contains_rect(self, other: "Rect", tolerance: float = 0.0) -> bool:
        return (
            other.left >= self.left - tolerance
            and other.top >= self.top - tolerance
            and other.right <= self.right + tolerance
            and other.bottom <= self.bottom + tolerance
        )

    def to_tuple(self) -> tuple[float, float, float, float]:
        return (self.left, self.top, self.width, self.height)


# =============================================================================
# Decoded image & editor configuration
# =============================================================================
@dataclass(frozen=True)
class SourceImage:
    """Decoded, upright source image."""
    pixels: Image.Image

    @property
    def width(self) -> int:
        return self.pixels.width

    @property
    def height(self) -> int:
        return self.pixels.height

    @property
    def size(self) -> Size:
        return Size(float(self.pixels.width), float(self.pixels.height))


@dataclass(frozen=True)
class EditorOptions:
    """Construction-time configuration of one crop editor.

    ``initial_area`` is expressed in source-pixel space and takes
    precedence over ``initial_size``.  ``base_color`` and ``mask_color``
    are only read by the UI layer.
    """
    fixed_area: bool = False
    aspect_ratio: float | None = None
    initial_size: float | None = None
    initial_area: Rect | None = None
    with_circle_ui: bool = False
    base_color: tuple[int, int, int, int] = DEFAULT_BASE_COLOR
    mask_color: tuple[int, int, int, int] = DEFAULT_MASK_COLOR

    def __post_init__(self):
        if self.initial_size is not None and not 0 < self.initial_size <= 1.0:
            raise ValueError(
                f"initial_size must be in (0, 1], or None meaning not specified, got {self.initial_size!r}"
            )
        if self.aspect_ratio is not None and self.aspect_ratio <= 0:
            raise ValueError(f"aspect_ratio must be positive, got {self.aspect_ratio!r}")
